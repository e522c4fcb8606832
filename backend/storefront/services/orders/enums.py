"""Order status enums and fulfillment transition rules.

This module defines the two independent status axes of an order: the payment
axis driven by checkout (``pending -> paid | failed``) and the fulfillment axis
driven by admin updates, with its allowed transitions. Customers move the
fulfillment axis only by raising a cancel or return request.
"""

from enum import Enum
from typing import Dict, Set


class PaymentStatus(str, Enum):
    """Payment status of an order.

    Valid transitions:
    - PENDING -> PAID, FAILED
    - PAID, FAILED -> (terminal for checkout)
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    def is_settled(self) -> bool:
        """Check whether the payment outcome is known."""
        return self is not PaymentStatus.PENDING


class FulfillmentStatus(str, Enum):
    """Fulfillment status of an order.

    Valid transitions:
    - ORDERED -> CONFIRMED, CANCEL_REQUEST, CANCELLED
    - CONFIRMED -> SHIPPED, CANCEL_REQUEST, CANCELLED
    - SHIPPED -> DELIVERED
    - DELIVERED -> RETURN_REQUEST
    - CANCEL_REQUEST -> CANCELLED, CONFIRMED (request declined)
    - RETURN_REQUEST -> RETURN, DELIVERED (request declined)
    - RETURN -> REFUND
    - CANCELLED, REFUND -> (terminal states)
    """

    ORDERED = "ordered"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCEL_REQUEST = "cancel request"
    CANCELLED = "cancelled"
    RETURN_REQUEST = "return request"
    RETURN = "return"
    REFUND = "refund"

    @classmethod
    def from_string(cls, value: str) -> "FulfillmentStatus":
        """Convert a string such as ``"Cancel Request"`` or ``"cancel_request"``.

        Raises:
            ValueError: If value is not a valid status
        """
        normalized = value.strip().lower().replace("_", " ")
        try:
            return cls(normalized)
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid fulfillment status: {value}. "
                f"Valid values are: {valid_values}"
            )

    def is_terminal(self) -> bool:
        """Check if no further transition is allowed from this status."""
        return self in {FulfillmentStatus.CANCELLED, FulfillmentStatus.REFUND}


class CustomerRequestKind(str, Enum):
    """Change a customer may ask for on their own order."""

    CANCEL = "cancel"
    RETURN = "return"

    @property
    def requested_status(self) -> FulfillmentStatus:
        if self is CustomerRequestKind.CANCEL:
            return FulfillmentStatus.CANCEL_REQUEST
        return FulfillmentStatus.RETURN_REQUEST


FULFILLMENT_TRANSITIONS: Dict[FulfillmentStatus, Set[FulfillmentStatus]] = {
    FulfillmentStatus.ORDERED: {
        FulfillmentStatus.CONFIRMED,
        FulfillmentStatus.CANCEL_REQUEST,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.CONFIRMED: {
        FulfillmentStatus.SHIPPED,
        FulfillmentStatus.CANCEL_REQUEST,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: {FulfillmentStatus.RETURN_REQUEST},
    FulfillmentStatus.CANCEL_REQUEST: {
        FulfillmentStatus.CANCELLED,
        FulfillmentStatus.CONFIRMED,
    },
    FulfillmentStatus.RETURN_REQUEST: {
        FulfillmentStatus.RETURN,
        FulfillmentStatus.DELIVERED,
    },
    FulfillmentStatus.RETURN: {FulfillmentStatus.REFUND},
    FulfillmentStatus.CANCELLED: set(),
    FulfillmentStatus.REFUND: set(),
}


def get_allowed_fulfillment_transitions(
    current: FulfillmentStatus,
) -> Set[FulfillmentStatus]:
    """Get the statuses reachable from ``current`` in one step."""
    return FULFILLMENT_TRANSITIONS.get(current, set())


def validate_fulfillment_transition(
    current: FulfillmentStatus,
    target: FulfillmentStatus,
) -> bool:
    """Check whether ``current -> target`` is an allowed transition."""
    return target in get_allowed_fulfillment_transitions(current)
