"""
API tests for the public reservation tracking endpoint.
"""

from unittest.mock import AsyncMock

import pytest

from marketplace.api.deps import get_reservation_service
from marketplace.core.exceptions import ValidationError
from marketplace.main import app
from marketplace.services.reservations.service import ReservationService


@pytest.fixture
def mock_reservation_service() -> AsyncMock:
    service = AsyncMock(spec=ReservationService)
    app.dependency_overrides[get_reservation_service] = lambda: service
    return service


class TestTrackReservationsEndpoint:
    """Test GET /api/v1/reservations/public/{contact_number}."""

    def test_track_without_token(
        self, test_client, mock_reservation_service, make_reservation, supplier_actor
    ):
        """
        Verifies:
        - No bearer token is needed
        - The view carries status but no bank details
        """
        # Arrange
        reservation = make_reservation(shop=supplier_actor.party)
        mock_reservation_service.track_reservations.return_value = {
            "items": [reservation],
            "total": 1,
            "page": 1,
            "limit": 10,
        }

        # Act
        response = test_client.get("/api/v1/reservations/public/0771234567")

        # Assert
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 1
        item = data["items"][0]
        assert item["reservation_number"] == reservation.reservation_number
        assert item["status"] == "pending"
        assert "bank_account_number" not in item
        assert "requester_contact" not in item
        mock_reservation_service.track_reservations.assert_awaited_once_with(
            "0771234567", page=1, limit=10
        )

    def test_blank_contact_rejected(self, test_client, mock_reservation_service):
        mock_reservation_service.track_reservations.side_effect = ValidationError(
            "Contact number is required"
        )

        response = test_client.get("/api/v1/reservations/public/%20")

        assert response.status_code == 400
        assert response.json()["success"] is False
