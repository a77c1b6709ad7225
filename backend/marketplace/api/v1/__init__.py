"""
API v1 package initialization.

Collects the v1 routers under a single router mounted at the API prefix.
"""

from fastapi import APIRouter

from marketplace.api.v1.buyers import router as buyers_router
from marketplace.api.v1.notifications import router as notifications_router
from marketplace.api.v1.orders import router as orders_router
from marketplace.api.v1.payments import router as payments_router
from marketplace.api.v1.products import router as products_router
from marketplace.api.v1.ratings import router as ratings_router
from marketplace.api.v1.reservations import router as reservations_router
from marketplace.api.v1.suppliers import router as suppliers_router

api_router = APIRouter()
api_router.include_router(buyers_router)
api_router.include_router(suppliers_router)
api_router.include_router(products_router)
api_router.include_router(orders_router)
api_router.include_router(reservations_router)
api_router.include_router(payments_router)
api_router.include_router(ratings_router)
api_router.include_router(notifications_router)

__all__ = ["api_router"]
