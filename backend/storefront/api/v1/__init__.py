"""
API v1 package initialization.

Collects the v1 routers under a single router mounted at the API prefix.
"""

from fastapi import APIRouter

from storefront.api.v1.delivery import router as delivery_router
from storefront.api.v1.orders import router as orders_router
from storefront.api.v1.payments import router as payments_router

api_router = APIRouter()
api_router.include_router(delivery_router)
api_router.include_router(orders_router)
api_router.include_router(payments_router)

__all__ = ["api_router"]
