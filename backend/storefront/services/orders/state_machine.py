"""Fulfillment status machine over the append-only status history.

The fulfillment status of an order is never stored as a mutable column. Each
transition appends one ``OrderStatusHistory`` record with the next sequence
number, and the current status is the status of the last record.
"""

import uuid
from datetime import date
from typing import Any, Optional, Sequence, Set

from storefront.core.logging import get_logger
from storefront.database.models.order import Order, OrderStatusHistory
from storefront.services.orders.enums import (
    FulfillmentStatus,
    PaymentStatus,
    get_allowed_fulfillment_transitions,
    validate_fulfillment_transition,
)

logger = get_logger(__name__)

# Forward progress requires a settled payment; cancellation does not.
_REQUIRES_PAYMENT: Set[FulfillmentStatus] = {
    FulfillmentStatus.CONFIRMED,
    FulfillmentStatus.SHIPPED,
    FulfillmentStatus.DELIVERED,
}


class StatusTransitionError(Exception):
    """Raised when a fulfillment transition is not allowed."""

    def __init__(
        self,
        message: str,
        current_status: Optional[FulfillmentStatus],
        target_status: FulfillmentStatus,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.current_status = current_status
        self.target_status = target_status
        self.context = context


def project_status(
    history: Sequence[OrderStatusHistory],
) -> Optional[FulfillmentStatus]:
    """Current status: the status of the record with the highest sequence."""
    if not history:
        return None
    return max(history, key=lambda record: record.sequence).status


class FulfillmentStateMachine:
    """Validates fulfillment transitions and builds history records.

    The machine does not touch the database; callers add the returned record
    to their session.
    """

    def initial_event(
        self,
        order_id: uuid.UUID,
        changed_by: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Build the first ``ordered`` record of a new order."""
        return OrderStatusHistory(
            order_id=order_id,
            sequence=1,
            status=FulfillmentStatus.ORDERED,
            changed_by=changed_by,
            notes="Order placed",
        )

    def allowed_transitions(
        self,
        history: Sequence[OrderStatusHistory],
        payment_status: PaymentStatus,
    ) -> Set[FulfillmentStatus]:
        """Statuses an admin may move the order to next."""
        current = project_status(history)
        if current is None:
            return set()
        allowed = get_allowed_fulfillment_transitions(current)
        if payment_status is not PaymentStatus.PAID:
            allowed = allowed - _REQUIRES_PAYMENT
        return set(allowed)

    def validate_transition(
        self,
        order: Order,
        history: Sequence[OrderStatusHistory],
        target_status: FulfillmentStatus,
    ) -> FulfillmentStatus:
        """Check ``target_status`` against the current projection.

        Returns:
            The current status

        Raises:
            StatusTransitionError: If the order has no history, is in a
                terminal status, the transition is not allowed, or the
                target requires a paid order
        """
        current = project_status(history)

        if current is None:
            raise StatusTransitionError(
                "Order has no status history",
                current_status=None,
                target_status=target_status,
                order_id=str(order.id),
            )

        if current.is_terminal():
            raise StatusTransitionError(
                f"Order is {current.value} and can no longer change",
                current_status=current,
                target_status=target_status,
                order_id=str(order.id),
            )

        if not validate_fulfillment_transition(current, target_status):
            allowed = get_allowed_fulfillment_transitions(current)
            raise StatusTransitionError(
                f"Invalid transition from {current.value} to {target_status.value}",
                current_status=current,
                target_status=target_status,
                order_id=str(order.id),
                allowed_transitions=sorted(s.value for s in allowed),
            )

        if (
            target_status in _REQUIRES_PAYMENT
            and order.payment_status is not PaymentStatus.PAID
        ):
            raise StatusTransitionError(
                f"Order must be paid before it is {target_status.value}",
                current_status=current,
                target_status=target_status,
                order_id=str(order.id),
                payment_status=order.payment_status.value,
            )

        return current

    def next_event(
        self,
        order: Order,
        history: Sequence[OrderStatusHistory],
        target_status: FulfillmentStatus,
        changed_by: Optional[str] = None,
        notes: Optional[str] = None,
        delivery_partner: Optional[str] = None,
        shipment_id: Optional[str] = None,
        delivery_date: Optional[date] = None,
    ) -> OrderStatusHistory:
        """Validate a transition and build the record that appends it.

        Raises:
            StatusTransitionError: If the transition is not allowed
        """
        current = self.validate_transition(order, history, target_status)
        sequence = max(record.sequence for record in history) + 1

        logger.info(
            "Fulfillment transition validated",
            order_id=str(order.id),
            transition=f"{current.value}->{target_status.value}",
            sequence=sequence,
            changed_by=changed_by,
        )

        return OrderStatusHistory(
            order_id=order.id,
            sequence=sequence,
            status=target_status,
            changed_by=changed_by,
            notes=notes,
            delivery_partner=delivery_partner,
            shipment_id=shipment_id,
            delivery_date=delivery_date,
        )
