"""
Cart line pricing.

Prices cart lines against the live catalog and captures the product, size and
color names that are frozen into order items at checkout.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.catalog import Product, ProductColor, ProductSize
from storefront.services.delivery.service import to_money

logger = get_logger(__name__)


class CartPricingError(Exception):
    """Base exception for cart pricing errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidCartLineError(CartPricingError, ValueError):
    """Raised when a cart line is malformed."""


class CartItemUnavailableError(CartPricingError):
    """Raised when a cart line references a product variant that no longer exists."""


@dataclass(frozen=True)
class CartLine:
    """One requested product variant and quantity."""

    product_id: uuid.UUID
    color_id: uuid.UUID
    size_id: uuid.UUID
    quantity: int

    def __post_init__(self) -> None:
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise InvalidCartLineError(
                "Cart line quantity must be a positive integer",
                size_id=str(self.size_id),
                quantity=self.quantity,
            )


@dataclass(frozen=True)
class PricedLine:
    """Cart line with the catalog snapshot taken at pricing time."""

    line: CartLine
    product_title: str
    size_name: str
    color_name: str
    color_code: str
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price * self.line.quantity)


def compute_subtotal(lines: Iterable[PricedLine]) -> Decimal:
    """Sum of line totals."""
    return to_money(sum((line.total_price for line in lines), Decimal("0")))


class CartPricing:
    """Price cart lines from catalog rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def price_lines(self, lines: Sequence[CartLine]) -> list[PricedLine]:
        """
        Price every line at the product's effective price.

        Args:
            lines: Cart lines to price

        Returns:
            Priced lines in the input order

        Raises:
            CartItemUnavailableError: If a size is unknown or does not belong
                to the line's product and color
            CartPricingError: If the catalog query fails
        """
        if not lines:
            return []

        size_ids = {line.size_id for line in lines}
        try:
            result = await self.session.execute(
                select(ProductSize, Product, ProductColor)
                .join(Product, ProductSize.product_id == Product.id)
                .join(ProductColor, ProductSize.color_id == ProductColor.id)
                .where(ProductSize.id.in_(size_ids))
            )
            rows = {size.id: (size, product, color) for size, product, color in result.all()}
        except SQLAlchemyError as e:
            logger.error("Failed to load catalog rows for pricing", error=str(e))
            raise CartPricingError("Failed to price cart", error=str(e)) from e

        priced = []
        for line in lines:
            row = rows.get(line.size_id)
            if (
                row is None
                or row[0].product_id != line.product_id
                or row[0].color_id != line.color_id
            ):
                logger.warning(
                    "Cart line references unavailable variant",
                    product_id=str(line.product_id),
                    color_id=str(line.color_id),
                    size_id=str(line.size_id),
                )
                raise CartItemUnavailableError(
                    "Product variant is no longer available",
                    product_id=str(line.product_id),
                    size_id=str(line.size_id),
                )

            size, product, color = row
            priced.append(
                PricedLine(
                    line=line,
                    product_title=product.title,
                    size_name=size.name,
                    color_name=color.name,
                    color_code=color.color_code,
                    unit_price=to_money(product.effective_price),
                )
            )

        return priced
