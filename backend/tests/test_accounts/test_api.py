"""
API tests for the public buyer and supplier discovery endpoints.
"""

import uuid
from unittest.mock import AsyncMock

import pytest

from marketplace.api.deps import get_account_service, get_product_service
from marketplace.database.models.account import Buyer, Supplier
from marketplace.database.models.party import PartyKind
from marketplace.main import app
from marketplace.services.accounts.service import AccountNotFoundError, AccountService
from marketplace.services.products.service import ProductService


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_account_service() -> AsyncMock:
    service = AsyncMock(spec=AccountService)
    app.dependency_overrides[get_account_service] = lambda: service
    return service


@pytest.fixture
def mock_product_service() -> AsyncMock:
    service = AsyncMock(spec=ProductService)
    app.dependency_overrides[get_product_service] = lambda: service
    return service


@pytest.fixture
def supplier() -> Supplier:
    return Supplier(
        id=uuid.uuid4(),
        full_name="Sunil Fernando",
        business_name="Fernando Farms",
        location="Dambulla",
        contact_number="0712345678",
        email="sunil@example.com",
        password_hash="x",
        is_active=True,
        is_verified=True,
    )


# ============================================================================
# Integration Tests - Profiles
# ============================================================================


class TestPublicProfileEndpoints:
    """Test GET /api/v1/buyers/{id} and /api/v1/suppliers/{id}."""

    def test_supplier_profile_hides_email(self, test_client, mock_account_service, supplier):
        mock_account_service.get_public_profile.return_value = supplier

        response = test_client.get(f"/api/v1/suppliers/{supplier.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["business_name"] == "Fernando Farms"
        assert "email" not in data
        mock_account_service.get_public_profile.assert_awaited_once_with(
            PartyKind.SUPPLIER, supplier.id
        )

    def test_buyer_profile_hides_bank_details(self, test_client, mock_account_service):
        buyer = Buyer(
            id=uuid.uuid4(),
            shop_name="Kamal Stores",
            shop_owner_name="Kamal",
            shop_location="Kandy",
            contact_number="0771234567",
            email="kamal@example.com",
            bank_account_number="0012345",
            is_active=True,
            is_verified=False,
        )
        mock_account_service.get_public_profile.return_value = buyer

        response = test_client.get(f"/api/v1/buyers/{buyer.id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["shop_name"] == "Kamal Stores"
        assert "bank_account_number" not in data
        assert "email" not in data

    def test_unknown_buyer(self, test_client, mock_account_service):
        mock_account_service.get_public_profile.side_effect = AccountNotFoundError(
            "Buyer not found"
        )

        response = test_client.get(f"/api/v1/buyers/{uuid.uuid4()}")

        assert response.status_code == 404


# ============================================================================
# Integration Tests - Directory and Shop Search
# ============================================================================


class TestDiscoveryEndpoints:
    """Test the supplier directory and the shops-by-product search."""

    def test_list_suppliers(self, test_client, mock_account_service, supplier):
        mock_account_service.list_suppliers.return_value = {
            "items": [supplier],
            "total": 1,
            "page": 1,
            "limit": 10,
        }

        response = test_client.get("/api/v1/suppliers/", params={"search": "fernando"})

        assert response.status_code == 200
        assert response.json()["data"]["items"][0]["full_name"] == "Sunil Fernando"
        mock_account_service.list_suppliers.assert_awaited_once_with(
            page=1, limit=10, search="fernando"
        )

    def test_find_shops(self, test_client, mock_product_service, supplier):
        mock_product_service.find_shops.return_value = {
            "product_name": "onion",
            "total": 1,
            "shops": [
                {
                    "shop_kind": PartyKind.SUPPLIER,
                    "shop_id": supplier.id,
                    "shop_name": "Fernando Farms",
                    "shop_location": "Dambulla",
                    "contact_number": "0712345678",
                    "product_id": uuid.uuid4(),
                    "product_name": "Red Onions",
                    "price": "250.00",
                    "unit": "kg",
                    "stock": 40,
                    "product_count": 2,
                }
            ],
        }

        response = test_client.get("/api/v1/products/shops", params={"product_name": "onion"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["shops"][0]["shop_name"] == "Fernando Farms"
        mock_product_service.find_shops.assert_awaited_once_with("onion", limit=50)

    def test_find_shops_requires_name(self, test_client, mock_product_service):
        response = test_client.get("/api/v1/products/shops")

        assert response.status_code == 400
        mock_product_service.find_shops.assert_not_awaited()
