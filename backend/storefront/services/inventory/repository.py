"""
Per-size stock data access.

Every mutation of ``product_sizes.stock_quantity`` is a single conditional
UPDATE statement so concurrent checkouts cannot oversell: the floor check and
the decrement happen in the same row update, and ``in_stock`` is recomputed
in that same statement.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.catalog import Product, ProductSize

logger = get_logger(__name__)


class StockRepositoryError(Exception):
    """Base exception for stock repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


@dataclass(frozen=True)
class StockLevel:
    """Current stock of one size variant."""

    size_id: uuid.UUID
    product_id: uuid.UUID
    product_title: str
    stock_quantity: int
    in_stock: bool


class SizeStockRepository:
    """Repository for atomic stock reads and updates."""

    def __init__(self, session: AsyncSession):
        """
        Initialize stock repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def get_stock_levels(
        self,
        size_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, StockLevel]:
        """
        Read current stock for the given sizes.

        Unknown size ids are absent from the result.

        Raises:
            StockRepositoryError: If the query fails
        """
        size_ids = set(size_ids)
        if not size_ids:
            return {}

        try:
            result = await self.session.execute(
                select(
                    ProductSize.id,
                    ProductSize.product_id,
                    Product.title,
                    ProductSize.stock_quantity,
                    ProductSize.in_stock,
                )
                .join(Product, ProductSize.product_id == Product.id)
                .where(ProductSize.id.in_(size_ids))
            )
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Failed to read stock levels", error=str(e))
            raise StockRepositoryError(
                "Failed to read stock levels",
                error=str(e),
            ) from e

        return {
            row.id: StockLevel(
                size_id=row.id,
                product_id=row.product_id,
                product_title=row.title,
                stock_quantity=row.stock_quantity,
                in_stock=bool(row.in_stock),
            )
            for row in rows
        }

    async def decrement(self, size_id: uuid.UUID, quantity: int) -> Optional[int]:
        """
        Atomically take ``quantity`` units if at least that many remain.

        Args:
            size_id: Size variant identifier
            quantity: Units to take

        Returns:
            Remaining stock, or None when the row is missing or holds fewer
            than ``quantity`` units (nothing is changed in that case)
        """
        remaining_expr = ProductSize.stock_quantity - quantity
        stmt = (
            update(ProductSize)
            .where(
                ProductSize.id == size_id,
                ProductSize.stock_quantity >= quantity,
            )
            .values(
                stock_quantity=remaining_expr,
                in_stock=remaining_expr > 0,
            )
            .returning(ProductSize.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        remaining = result.scalar_one_or_none()

        logger.debug(
            "Stock decrement executed",
            size_id=str(size_id),
            quantity=quantity,
            applied=remaining is not None,
            remaining=remaining,
        )
        return remaining

    async def increment(self, size_id: uuid.UUID, quantity: int) -> Optional[int]:
        """
        Atomically return ``quantity`` units to stock.

        Runs inside a savepoint so a failed statement rolls back only this
        line and leaves the enclosing transaction usable.

        Returns:
            New stock level, or None when the size row no longer exists
        """
        restored_expr = ProductSize.stock_quantity + quantity
        stmt = (
            update(ProductSize)
            .where(ProductSize.id == size_id)
            .values(
                stock_quantity=restored_expr,
                in_stock=restored_expr > 0,
            )
            .returning(ProductSize.stock_quantity)
            .execution_options(synchronize_session=False)
        )
        async with self.session.begin_nested():
            result = await self.session.execute(stmt)
            restored = result.scalar_one_or_none()

        logger.debug(
            "Stock increment executed",
            size_id=str(size_id),
            quantity=quantity,
            applied=restored is not None,
            stock_quantity=restored,
        )
        return restored
