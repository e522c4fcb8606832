"""
Catalog rows consumed by checkout.

Only the columns needed to price a cart line and freeze its snapshot into an
order item are modelled here. ``ProductSize`` is the per-variant stock row:
its ``stock_quantity`` is mutated exclusively by the stock reservation engine.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel


class Product(BaseModel):
    """Sellable product with list and discounted price."""

    __tablename__ = "products"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price_original: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_discounted: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    colors: Mapped[list["ProductColor"]] = relationship(back_populates="product")
    sizes: Mapped[list["ProductSize"]] = relationship(back_populates="product")

    @property
    def effective_price(self) -> Decimal:
        """Price a customer pays: the discounted price when one is set."""
        return self.price_discounted or self.price_original


class ProductColor(BaseModel):
    """Color variant of a product."""

    __tablename__ = "product_colors"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color_code: Mapped[str] = mapped_column(String(20), nullable=False)

    product: Mapped[Product] = relationship(back_populates="colors")


class ProductSize(BaseModel):
    """
    Purchasable size variant and its live stock.

    Invariants:
        stock_quantity >= 0 (check constraint)
        in_stock == (stock_quantity > 0), maintained by every stock update
    """

    __tablename__ = "product_sizes"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )
    color_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("product_colors.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    product: Mapped[Product] = relationship(back_populates="sizes")
    color: Mapped[ProductColor] = relationship()

    __table_args__ = (
        CheckConstraint(
            "stock_quantity >= 0",
            name="ck_product_sizes_stock_non_negative",
        ),
        Index("ix_product_sizes_product_color", "product_id", "color_id"),
    )
