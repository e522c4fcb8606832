"""
Database models package initialization.

This module exports all database models so they are registered with the Base
metadata for Alembic and for relationship resolution.
"""

from storefront.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from storefront.database.models.cart import CartItem
from storefront.database.models.catalog import Product, ProductColor, ProductSize
from storefront.database.models.delivery import DeliveryZone, RegionType, ZoneRegion
from storefront.database.models.order import (
    Address,
    Order,
    OrderItem,
    OrderStatusHistory,
)

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "CartItem",
    "Product",
    "ProductColor",
    "ProductSize",
    "DeliveryZone",
    "RegionType",
    "ZoneRegion",
    "Address",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
]
