"""
Test suite for the fulfillment state machine and status enums.
"""

import uuid

import pytest

from storefront.database.models.order import Order, OrderStatusHistory
from storefront.services.orders.enums import (
    FulfillmentStatus,
    PaymentStatus,
    validate_fulfillment_transition,
)
from storefront.services.orders.state_machine import (
    FulfillmentStateMachine,
    StatusTransitionError,
    project_status,
)


def make_order(payment_status: PaymentStatus = PaymentStatus.PAID) -> Order:
    return Order(id=uuid.uuid4(), payment_status=payment_status)


def history_of(order: Order, *statuses: FulfillmentStatus) -> list[OrderStatusHistory]:
    return [
        OrderStatusHistory(order_id=order.id, sequence=index, status=status)
        for index, status in enumerate(statuses, start=1)
    ]


@pytest.fixture
def machine() -> FulfillmentStateMachine:
    return FulfillmentStateMachine()


class TestFulfillmentStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("ordered", FulfillmentStatus.ORDERED),
            ("Cancel Request", FulfillmentStatus.CANCEL_REQUEST),
            ("return_request", FulfillmentStatus.RETURN_REQUEST),
            ("  SHIPPED ", FulfillmentStatus.SHIPPED),
        ],
    )
    def test_from_string(self, raw, expected):
        assert FulfillmentStatus.from_string(raw) is expected

    def test_from_string_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid fulfillment status"):
            FulfillmentStatus.from_string("lost")

    def test_terminal_statuses(self):
        terminal = {status for status in FulfillmentStatus if status.is_terminal()}

        assert terminal == {FulfillmentStatus.CANCELLED, FulfillmentStatus.REFUND}

    def test_return_branch_follows_delivery(self):
        assert validate_fulfillment_transition(
            FulfillmentStatus.DELIVERED, FulfillmentStatus.RETURN_REQUEST
        )
        assert not validate_fulfillment_transition(
            FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED
        )

    def test_payment_settled(self):
        assert not PaymentStatus.PENDING.is_settled()
        assert PaymentStatus.FAILED.is_settled()


class TestProjection:
    def test_latest_sequence_wins_regardless_of_order(self):
        order = make_order()
        history = history_of(
            order,
            FulfillmentStatus.ORDERED,
            FulfillmentStatus.CONFIRMED,
            FulfillmentStatus.SHIPPED,
        )

        assert project_status(list(reversed(history))) is FulfillmentStatus.SHIPPED

    def test_empty_history_has_no_status(self):
        assert project_status([]) is None


class TestStateMachine:
    def test_initial_event(self, machine):
        order_id = uuid.uuid4()

        record = machine.initial_event(order_id, changed_by="customer")

        assert record.sequence == 1
        assert record.status is FulfillmentStatus.ORDERED
        assert record.order_id == order_id

    def test_next_event_appends_sequence(self, machine):
        order = make_order()
        history = history_of(order, FulfillmentStatus.ORDERED, FulfillmentStatus.CONFIRMED)

        record = machine.next_event(
            order,
            history,
            FulfillmentStatus.SHIPPED,
            changed_by="ops@example.com",
            delivery_partner="BlueDart",
            shipment_id="BD123",
        )

        assert record.sequence == 3
        assert record.status is FulfillmentStatus.SHIPPED
        assert record.delivery_partner == "BlueDart"
        assert record.shipment_id == "BD123"

    def test_skipping_a_step_is_rejected(self, machine):
        order = make_order()
        history = history_of(order, FulfillmentStatus.ORDERED)

        with pytest.raises(StatusTransitionError) as exc_info:
            machine.next_event(order, history, FulfillmentStatus.DELIVERED)

        assert exc_info.value.current_status is FulfillmentStatus.ORDERED
        assert "confirmed" in exc_info.value.context["allowed_transitions"]

    @pytest.mark.parametrize("terminal", [FulfillmentStatus.CANCELLED, FulfillmentStatus.REFUND])
    def test_terminal_status_cannot_change(self, machine, terminal):
        order = make_order()
        history = history_of(order, FulfillmentStatus.ORDERED, terminal)

        with pytest.raises(StatusTransitionError, match="can no longer change"):
            machine.next_event(order, history, FulfillmentStatus.CONFIRMED)

    @pytest.mark.parametrize("payment", [PaymentStatus.PENDING, PaymentStatus.FAILED])
    def test_forward_progress_requires_payment(self, machine, payment):
        order = make_order(payment)
        history = history_of(order, FulfillmentStatus.ORDERED)

        with pytest.raises(StatusTransitionError, match="must be paid"):
            machine.next_event(order, history, FulfillmentStatus.CONFIRMED)

    def test_unpaid_order_can_be_cancelled(self, machine):
        order = make_order(PaymentStatus.FAILED)
        history = history_of(order, FulfillmentStatus.ORDERED)

        record = machine.next_event(order, history, FulfillmentStatus.CANCELLED)

        assert record.status is FulfillmentStatus.CANCELLED

    def test_allowed_transitions_respect_payment(self, machine):
        order = make_order()
        history = history_of(order, FulfillmentStatus.ORDERED)

        paid = machine.allowed_transitions(history, PaymentStatus.PAID)
        unpaid = machine.allowed_transitions(history, PaymentStatus.PENDING)

        assert FulfillmentStatus.CONFIRMED in paid
        assert unpaid == {FulfillmentStatus.CANCEL_REQUEST, FulfillmentStatus.CANCELLED}

    def test_order_without_history_is_rejected(self, machine):
        with pytest.raises(StatusTransitionError, match="no status history"):
            machine.next_event(make_order(), [], FulfillmentStatus.CONFIRMED)
