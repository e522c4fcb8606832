"""
Order data access repository.

Creates addresses, orders, order items and status history records inside the
caller's transaction, and performs the conditional payment status updates
that make payment callbacks idempotent.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.order import (
    Address,
    Order,
    OrderItem,
    OrderStatusHistory,
)
from storefront.services.cart.pricing import CartLine, PricedLine
from storefront.services.orders.enums import PaymentStatus

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when order is not found."""

    def __init__(self, order_id: uuid.UUID):
        super().__init__(f"Order {order_id} not found", order_id=str(order_id))
        self.order_id = order_id


@dataclass(frozen=True)
class PaymentTransition:
    """Row returned by a payment status update that took effect."""

    order_id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    from_stored_cart: bool = False


class OrderRepository:
    """
    Repository for order data access operations.

    Methods only add and flush; committing or rolling back is left to the
    caller so several writes can share one transaction.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize order repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def create_address(self, customer_id: uuid.UUID, **fields: Any) -> Address:
        """Insert a delivery address snapshot for one order."""
        address = Address(customer_id=customer_id, is_default=False, **fields)
        self.session.add(address)
        await self.session.flush()
        return address

    async def create_order(
        self,
        order_number: str,
        customer_id: uuid.UUID,
        delivery_address_id: uuid.UUID,
        subtotal_amount: Decimal,
        delivery_charge: Decimal,
        delivery_pincode: str,
        payment_method: str,
        delivery_zone_id: Optional[uuid.UUID] = None,
        estimated_delivery_days: Optional[str] = None,
        from_stored_cart: bool = False,
    ) -> Order:
        """
        Insert an order with ``payment_status=pending``.

        Returns:
            Created order (flushed, id assigned)
        """
        order = Order(
            order_number=order_number,
            customer_id=customer_id,
            delivery_address_id=delivery_address_id,
            subtotal_amount=subtotal_amount,
            delivery_charge=delivery_charge,
            total_amount=subtotal_amount + delivery_charge,
            payment_status=PaymentStatus.PENDING,
            payment_method=payment_method,
            delivery_zone_id=delivery_zone_id,
            delivery_pincode=delivery_pincode,
            estimated_delivery_days=estimated_delivery_days,
            from_stored_cart=from_stored_cart,
        )
        self.session.add(order)
        await self.session.flush()

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=order_number,
            total_amount=str(order.total_amount),
        )
        return order

    async def add_items(
        self,
        order_id: uuid.UUID,
        lines: Sequence[PricedLine],
    ) -> list[OrderItem]:
        """Insert one denormalized item per priced line."""
        items = [
            OrderItem(
                order_id=order_id,
                product_id=priced.line.product_id,
                size_id=priced.line.size_id,
                color_id=priced.line.color_id,
                quantity=priced.line.quantity,
                unit_price=priced.unit_price,
                total_price=priced.total_price,
                product_title=priced.product_title,
                size_name=priced.size_name,
                color_name=priced.color_name,
                color_code=priced.color_code,
            )
            for priced in lines
        ]
        self.session.add_all(items)
        await self.session.flush()
        return items

    def add_status_event(self, record: OrderStatusHistory) -> None:
        """Stage a status history record; written on the next flush."""
        self.session.add(record)

    async def get_order(
        self,
        order_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Get an order with items, address and history loaded.

        Args:
            order_id: Order identifier
            customer_id: When given, orders of other customers are reported
                as not found

        Raises:
            OrderNotFoundError: If the order does not exist or is not visible
            OrderRepositoryError: If the query fails
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        if customer_id is not None:
            stmt = stmt.where(Order.customer_id == customer_id)

        try:
            result = await self.session.execute(stmt)
            order = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to fetch order", order_id=str(order_id), error=str(e))
            raise OrderRepositoryError(
                "Failed to fetch order",
                order_id=str(order_id),
                error=str(e),
            ) from e

        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_status_history(self, order_id: uuid.UUID) -> list[OrderStatusHistory]:
        """Status records of an order, oldest first."""
        result = await self.session.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.sequence)
        )
        return list(result.scalars().all())

    async def get_order_lines(self, order_id: uuid.UUID) -> list[CartLine]:
        """Rebuild the reserved cart lines of an order from its items."""
        result = await self.session.execute(
            select(
                OrderItem.product_id,
                OrderItem.color_id,
                OrderItem.size_id,
                OrderItem.quantity,
            ).where(OrderItem.order_id == order_id)
        )
        return [
            CartLine(
                product_id=row.product_id,
                color_id=row.color_id,
                size_id=row.size_id,
                quantity=row.quantity,
            )
            for row in result.all()
        ]

    async def transition_payment_status(
        self,
        order_id: uuid.UUID,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
        payment_reference: Optional[str] = None,
    ) -> Optional[PaymentTransition]:
        """
        Conditionally move the payment status of an order.

        The update only applies while the order is still in ``from_status``,
        so concurrent or repeated callbacks change the row at most once.

        Returns:
            The updated row, or None when the order was not in ``from_status``
        """
        values: dict[str, Any] = {"payment_status": to_status}
        if payment_reference:
            values["payment_reference"] = payment_reference

        result = await self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.payment_status == from_status)
            .values(**values)
            .returning(
                Order.id,
                Order.order_number,
                Order.customer_id,
                Order.from_stored_cart,
            )
            .execution_options(synchronize_session=False)
        )
        row = result.one_or_none()

        logger.info(
            "Payment status update executed",
            order_id=str(order_id),
            from_status=from_status.value,
            to_status=to_status.value,
            applied=row is not None,
        )

        if row is None:
            return None
        return PaymentTransition(
            order_id=row.id,
            order_number=row.order_number,
            customer_id=row.customer_id,
            from_stored_cart=row.from_stored_cart,
        )
