"""
Authenticated cart data access.
"""

import uuid
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.cart import CartItem
from storefront.services.cart.pricing import CartLine

logger = get_logger(__name__)


class CartRepositoryError(Exception):
    """Base exception for cart repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class CartRepository:
    """Repository for a signed-in customer's cart rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_lines(self, customer_id: uuid.UUID) -> list[CartLine]:
        """
        Load the customer's cart as cart lines, oldest first.

        Raises:
            CartRepositoryError: If the query fails
        """
        try:
            result = await self.session.execute(
                select(CartItem)
                .where(CartItem.customer_id == customer_id)
                .order_by(CartItem.created_at)
            )
            items = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to load cart",
                customer_id=str(customer_id),
                error=str(e),
            )
            raise CartRepositoryError(
                "Failed to load cart",
                customer_id=str(customer_id),
                error=str(e),
            ) from e

        return [
            CartLine(
                product_id=item.product_id,
                color_id=item.color_id,
                size_id=item.size_id,
                quantity=item.quantity,
            )
            for item in items
        ]

    async def clear(self, customer_id: uuid.UUID) -> int:
        """
        Delete every cart row of a customer.

        Returns:
            Number of rows deleted

        Raises:
            CartRepositoryError: If the delete fails
        """
        try:
            result = await self.session.execute(
                delete(CartItem).where(CartItem.customer_id == customer_id)
            )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to clear cart",
                customer_id=str(customer_id),
                error=str(e),
            )
            raise CartRepositoryError(
                "Failed to clear cart",
                customer_id=str(customer_id),
                error=str(e),
            ) from e

        logger.info(
            "Cart cleared",
            customer_id=str(customer_id),
            removed=result.rowcount,
        )
        return result.rowcount
