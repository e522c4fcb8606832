"""
Stock reservation engine.

Validates requested quantities against live per-size stock, reserves stock
with atomic conditional decrements and restores it as compensation when an
order cannot be completed.

Reservation is line by line: a failure partway through leaves earlier lines
decremented. The error raised carries those lines so the caller can restore
them or roll back the surrounding transaction.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

from storefront.core.logging import get_logger
from storefront.services.cart.pricing import CartLine
from storefront.services.inventory.repository import SizeStockRepository

logger = get_logger(__name__)


class StockReservationError(Exception):
    """Base exception for stock reservation operations."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context


class InsufficientStockError(StockReservationError):
    """Raised when a line requests more units than are in stock."""

    def __init__(
        self,
        product_title: Optional[str],
        size_id: uuid.UUID,
        requested: int,
        available: int,
        code: str = "INSUFFICIENT_STOCK",
    ):
        label = product_title or f"size {size_id}"
        super().__init__(
            f"Only {available} left in stock for {label}",
            code=code,
            product_title=product_title,
            size_id=str(size_id),
            requested=requested,
            available=available,
        )
        self.product_title = product_title
        self.size_id = size_id
        self.requested = requested
        self.available = available


class PartialReservationError(InsufficientStockError):
    """
    Raised when reservation stops partway through a cart.

    ``reserved_lines`` holds the lines already decremented before the failing
    line.
    """

    def __init__(
        self,
        product_title: Optional[str],
        size_id: uuid.UUID,
        requested: int,
        available: int,
        reserved_lines: Sequence[CartLine] = (),
    ):
        super().__init__(
            product_title,
            size_id,
            requested,
            available,
            code="PARTIAL_RESERVATION",
        )
        self.reserved_lines: Tuple[CartLine, ...] = tuple(reserved_lines)
        self.context["reserved_count"] = len(self.reserved_lines)


class CompensationFailedError(StockReservationError):
    """Describes a restore that could not be applied. Logged, never raised."""

    def __init__(self, line: CartLine, reason: str):
        super().__init__(
            f"Failed to restore stock for size {line.size_id}: {reason}",
            code="COMPENSATION_FAILED",
            size_id=str(line.size_id),
            quantity=line.quantity,
            reason=reason,
        )
        self.line = line


@dataclass(frozen=True)
class ReservationResult:
    """Lines reserved and the stock left on each size afterwards."""

    reserved_lines: Tuple[CartLine, ...]
    remaining: dict[uuid.UUID, int] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a compensation run."""

    restored_lines: Tuple[CartLine, ...] = ()
    failures: Tuple[CompensationFailedError, ...] = ()

    @property
    def failed_lines(self) -> Tuple[CartLine, ...]:
        return tuple(failure.line for failure in self.failures)

    @property
    def succeeded(self) -> bool:
        return not self.failures


class StockReservationEngine:
    """Validate, reserve and restore per-size stock."""

    def __init__(self, repository: SizeStockRepository):
        """
        Initialize stock reservation engine.

        Args:
            repository: Stock repository bound to the caller's session
        """
        self.repository = repository

    async def validate(self, lines: Sequence[CartLine]) -> None:
        """
        Check every line against current stock without changing it.

        Unknown sizes count as zero available.

        Raises:
            InsufficientStockError: For the first line requesting more than
                is in stock
        """
        levels = await self.repository.get_stock_levels(line.size_id for line in lines)

        for line in lines:
            level = levels.get(line.size_id)
            available = level.stock_quantity if level else 0
            if line.quantity > available:
                logger.info(
                    "Stock validation failed",
                    size_id=str(line.size_id),
                    requested=line.quantity,
                    available=available,
                )
                raise InsufficientStockError(
                    level.product_title if level else None,
                    line.size_id,
                    line.quantity,
                    available,
                )

    async def reserve(self, lines: Sequence[CartLine]) -> ReservationResult:
        """
        Decrement stock for every line, one atomic statement per line.

        Returns:
            Reservation result listing all lines

        Raises:
            PartialReservationError: When a line cannot be reserved; carries
                the lines reserved before it
        """
        reserved: list[CartLine] = []
        remaining: dict[uuid.UUID, int] = {}

        for line in lines:
            left = await self.repository.decrement(line.size_id, line.quantity)
            if left is None:
                levels = await self.repository.get_stock_levels([line.size_id])
                level = levels.get(line.size_id)
                logger.warning(
                    "Stock reservation failed",
                    size_id=str(line.size_id),
                    requested=line.quantity,
                    available=level.stock_quantity if level else 0,
                    reserved_count=len(reserved),
                )
                raise PartialReservationError(
                    level.product_title if level else None,
                    line.size_id,
                    line.quantity,
                    level.stock_quantity if level else 0,
                    reserved_lines=reserved,
                )

            reserved.append(line)
            remaining[line.size_id] = left

        logger.info("Stock reserved", line_count=len(reserved))
        return ReservationResult(reserved_lines=tuple(reserved), remaining=remaining)

    async def restore(self, lines: Sequence[CartLine]) -> RestoreResult:
        """
        Return stock for every line.

        Never raises: a line that cannot be restored is logged as a
        compensation failure and reported in the result.
        """
        restored: list[CartLine] = []
        failures: list[CompensationFailedError] = []

        for line in lines:
            try:
                new_level = await self.repository.increment(line.size_id, line.quantity)
            except Exception as e:
                failure = CompensationFailedError(line, f"{type(e).__name__}: {e}")
            else:
                if new_level is not None:
                    restored.append(line)
                    continue
                failure = CompensationFailedError(line, "size no longer exists")

            logger.error(
                "Compensation failed",
                error=failure.message,
                **failure.context,
            )
            failures.append(failure)

        logger.info(
            "Stock restored",
            restored_count=len(restored),
            failed_count=len(failures),
        )
        return RestoreResult(restored_lines=tuple(restored), failures=tuple(failures))
