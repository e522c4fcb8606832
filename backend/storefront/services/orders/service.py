"""
Checkout orchestration.

``OrderOrchestrator.place_order`` sequences address validation, delivery
quoting, stock validation, order persistence with stock reservation in a
single transaction, and the payment hand-off. Payment outcomes arrive through
``complete_payment`` and ``fail_payment``, either directly from the gateway
callbacks or later from the provider webhook via ``handle_payment_event``.
Both are conditional on the order still being ``pending``, so stock is
restored exactly once however often a failure is reported.
"""

import secrets
import time
import uuid
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger, log_performance
from storefront.database.models.order import Order, OrderStatusHistory
from storefront.services.cart.pricing import (
    CartLine,
    CartPricing,
    PricedLine,
    compute_subtotal,
)
from storefront.services.cart.repository import CartRepository
from storefront.services.delivery.pincode_resolver import PincodeNotResolvableError
from storefront.services.delivery.service import DeliveryQuote, DeliveryService
from storefront.services.delivery.zone_matcher import NoZoneConfiguredError
from storefront.services.inventory.repository import SizeStockRepository
from storefront.services.inventory.stock_reservation import (
    InsufficientStockError,
    RestoreResult,
    StockReservationEngine,
)
from storefront.services.orders.enums import (
    CustomerRequestKind,
    FulfillmentStatus,
    PaymentStatus,
)
from storefront.services.orders.repository import OrderRepository
from storefront.services.orders.state_machine import (
    FulfillmentStateMachine,
    StatusTransitionError,
    project_status,
)
from storefront.services.payments.gateway import (
    CustomerContact,
    PaymentConfirmation,
    PaymentEvent,
    PaymentFailure,
    PaymentGateway,
    PaymentOutcome,
    PaymentRequest,
)

logger = get_logger(__name__)

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


class OrderServiceError(Exception):
    """Base exception for checkout errors."""

    def __init__(self, message: str, code: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context


class CheckoutValidationError(OrderServiceError):
    """Raised when checkout input is incomplete."""


class InvalidAddressError(CheckoutValidationError):
    """Raised when required address fields are missing."""

    def __init__(self, missing_fields: Sequence[str]):
        super().__init__(
            f"Missing required address fields: {', '.join(missing_fields)}",
            code="INVALID_ADDRESS",
            missing_fields=list(missing_fields),
        )
        self.missing_fields = list(missing_fields)


class EmptyCartError(CheckoutValidationError):
    """Raised when checkout is attempted with no cart lines."""

    def __init__(self):
        super().__init__("Cart is empty", code="EMPTY_CART")


class DeliveryUnavailableError(OrderServiceError):
    """Raised when no delivery zone can be determined for a pincode."""

    def __init__(self, pincode: str, reason: str):
        super().__init__(
            "Delivery not available for this pincode",
            code="DELIVERY_UNAVAILABLE",
            pincode=pincode,
            reason=reason,
        )
        self.pincode = pincode


class PaymentFailedError(OrderServiceError):
    """Raised when the provider refuses payment; stock has been restored."""

    def __init__(
        self,
        order_id: uuid.UUID,
        order_number: str,
        provider_error: str,
        retryable: bool = True,
    ):
        super().__init__(
            f"Payment failed for order {order_number}: {provider_error}",
            code="PAYMENT_FAILED",
            order_id=str(order_id),
            order_number=order_number,
            provider_error=provider_error,
            retryable=retryable,
        )
        self.order_id = order_id
        self.order_number = order_number
        self.provider_error = provider_error
        self.retryable = retryable


REQUIRED_ADDRESS_FIELDS = (
    "full_name",
    "address_line_1",
    "city",
    "state",
    "postal_code",
    "phone_number",
)


@dataclass(frozen=True)
class AddressInput:
    """Delivery address as submitted at checkout."""

    full_name: str = ""
    address_line_1: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    phone_number: str = ""
    address_line_2: Optional[str] = None
    country: str = "IN"

    def missing_fields(self) -> list[str]:
        return [
            name
            for name in REQUIRED_ADDRESS_FIELDS
            if not (getattr(self, name) or "").strip()
        ]

    def as_columns(self) -> dict[str, Any]:
        values = {}
        for field in fields(self):
            value = getattr(self, field.name)
            values[field.name] = value.strip() if isinstance(value, str) else value
        return values


@dataclass(frozen=True)
class CheckoutCustomer:
    customer_id: uuid.UUID
    email: Optional[str] = None


@dataclass(frozen=True)
class CheckoutResult:
    """Outcome of ``place_order`` when no error was raised."""

    order_id: uuid.UUID
    order_number: str
    payment_status: PaymentStatus
    subtotal_amount: Decimal
    delivery_charge: Decimal
    total_amount: Decimal
    estimated_delivery_days: Optional[str] = None
    payment_reference: Optional[str] = None
    client_secret: Optional[str] = None


@dataclass(frozen=True)
class PaymentEventResult:
    """What a webhook delivery changed."""

    order_id: uuid.UUID
    applied: bool
    payment_status: Optional[PaymentStatus] = None
    restore: Optional[RestoreResult] = None


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """
    Build an order number ``ORD-<epoch-millis>-<6 base36 chars>``.

    Example:
        >>> generate_order_number(1700000000000)[:18]
        'ORD-1700000000000-'
    """
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ORD-{millis}-{suffix}"


class OrderOrchestrator:
    """
    Service running the checkout transaction and its compensation.

    The orchestrator owns transaction boundaries on its session: the order
    and its reservation are committed before the payment hand-off, and each
    payment outcome is committed on its own.
    """

    def __init__(
        self,
        session: AsyncSession,
        delivery: DeliveryService,
        gateway: PaymentGateway,
        currency: str = "INR",
        orders: Optional[OrderRepository] = None,
        stock: Optional[StockReservationEngine] = None,
        pricing: Optional[CartPricing] = None,
        carts: Optional[CartRepository] = None,
        state_machine: Optional[FulfillmentStateMachine] = None,
    ):
        """
        Initialize order orchestrator.

        Args:
            session: Async database session shared by every repository
            delivery: Delivery quoting service
            gateway: Payment gateway
            currency: ISO currency of all amounts
            orders: Order repository (defaults to one on ``session``)
            stock: Stock reservation engine (defaults to one on ``session``)
            pricing: Cart pricing (defaults to one on ``session``)
            carts: Cart repository (defaults to one on ``session``)
            state_machine: Fulfillment state machine
        """
        self.session = session
        self.delivery = delivery
        self.gateway = gateway
        self.currency = currency
        self.orders = orders or OrderRepository(session)
        self.stock = stock or StockReservationEngine(SizeStockRepository(session))
        self.pricing = pricing or CartPricing(session)
        self.carts = carts or CartRepository(session)
        self.state_machine = state_machine or FulfillmentStateMachine()

        logger.info(
            "Order orchestrator initialized",
            payment_provider=gateway.provider_name,
            currency=currency,
        )

    async def place_order(
        self,
        customer: CheckoutCustomer,
        address: AddressInput,
        pincode: str,
        lines: Optional[Sequence[CartLine]] = None,
        payment_method_token: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Place an order and hand it to the payment provider.

        Args:
            customer: Customer placing the order
            address: Delivery address
            pincode: Delivery pincode
            lines: Cart lines; the customer's stored cart is used when None
            payment_method_token: Provider payment method; when absent the
                payment stays pending until the provider webhook reports it

        Returns:
            Checkout result with ``paid`` or ``pending`` payment status

        Raises:
            InvalidAddressError: If required address fields are blank
            EmptyCartError: If there is nothing to order
            DeliveryUnavailableError: If the pincode has no delivery zone
            InsufficientStockError: If a line exceeds available stock; no
                order is persisted
            PaymentFailedError: If the provider refused the payment; the
                order is marked failed and its stock restored
        """
        with log_performance(
            logger,
            "place_order",
            slow_threshold_ms=2000,
            customer_id=str(customer.customer_id),
        ):
            missing = address.missing_fields()
            if missing:
                logger.info("Checkout rejected: invalid address", missing_fields=missing)
                raise InvalidAddressError(missing)

            from_stored_cart = lines is None
            if from_stored_cart:
                lines = await self.carts.get_lines(customer.customer_id)
            if not lines:
                raise EmptyCartError()

            priced = await self.pricing.price_lines(lines)
            subtotal = compute_subtotal(priced)

            quote = await self._quote_delivery(pincode, subtotal)

            await self.stock.validate(lines)

            order = await self._persist_and_reserve(
                customer, address, priced, quote, from_stored_cart
            )

            return await self._hand_off_payment(order, customer, address, payment_method_token)

    async def _quote_delivery(self, pincode: str, subtotal: Decimal) -> DeliveryQuote:
        try:
            return await self.delivery.quote(pincode, subtotal)
        except PincodeNotResolvableError as e:
            logger.info("Checkout rejected: pincode not resolvable", pincode=pincode)
            raise DeliveryUnavailableError(pincode, e.message) from e
        except NoZoneConfiguredError as e:
            logger.info(
                "Checkout rejected: no delivery zone",
                pincode=pincode,
                state=e.state,
                district=e.district,
            )
            raise DeliveryUnavailableError(pincode, e.message) from e

    async def _persist_and_reserve(
        self,
        customer: CheckoutCustomer,
        address: AddressInput,
        priced: Sequence[PricedLine],
        quote: DeliveryQuote,
        from_stored_cart: bool,
    ) -> Order:
        """Write address, order, items and the first status record, then
        reserve stock, all in one transaction."""
        order_number = generate_order_number()
        try:
            address_row = await self.orders.create_address(
                customer.customer_id,
                **address.as_columns(),
            )
            order = await self.orders.create_order(
                order_number=order_number,
                customer_id=customer.customer_id,
                delivery_address_id=address_row.id,
                subtotal_amount=quote.subtotal,
                delivery_charge=quote.effective_delivery_charge,
                delivery_pincode=quote.pincode,
                payment_method=self.gateway.provider_name,
                delivery_zone_id=quote.zone.id,
                estimated_delivery_days=quote.delivery_days_label,
                from_stored_cart=from_stored_cart,
            )
            await self.orders.add_items(order.id, priced)
            self.orders.add_status_event(
                self.state_machine.initial_event(
                    order.id,
                    changed_by=str(customer.customer_id),
                )
            )
            await self.session.flush()

            await self.stock.reserve([line.line for line in priced])
        except InsufficientStockError as e:
            await self.session.rollback()
            logger.warning(
                "Checkout rolled back: stock reservation failed",
                order_number=order_number,
                size_id=str(e.size_id),
                requested=e.requested,
                available=e.available,
            )
            raise
        except Exception:
            await self.session.rollback()
            raise

        await self.session.commit()

        logger.info(
            "Order persisted and stock reserved",
            order_id=str(order.id),
            order_number=order_number,
            subtotal=str(quote.subtotal),
            delivery_charge=str(quote.effective_delivery_charge),
            total=str(order.total_amount),
        )
        return order

    async def _hand_off_payment(
        self,
        order: Order,
        customer: CheckoutCustomer,
        address: AddressInput,
        payment_method_token: Optional[str],
    ) -> CheckoutResult:
        request = PaymentRequest(
            amount=order.total_amount,
            currency=self.currency,
            order_id=order.id,
            order_number=order.order_number,
            customer=CustomerContact(
                name=address.full_name.strip(),
                phone=address.phone_number.strip(),
                email=customer.email,
            ),
            method_token=payment_method_token,
        )

        async def on_success(confirmation: PaymentConfirmation) -> bool:
            return await self.complete_payment(confirmation.order_id, confirmation.reference)

        async def on_failure(failure: PaymentFailure) -> None:
            await self.fail_payment(failure.order_id, failure.error, failure.reference)

        handoff = await self.gateway.initiate(request, on_success, on_failure)

        payment_status = PaymentStatus.PENDING
        if handoff.outcome is PaymentOutcome.SUCCEEDED:
            payment_status = await self._settled_status(order, handoff.callback_result)

        return CheckoutResult(
            order_id=order.id,
            order_number=order.order_number,
            payment_status=payment_status,
            subtotal_amount=order.subtotal_amount,
            delivery_charge=order.delivery_charge,
            total_amount=order.total_amount,
            estimated_delivery_days=order.estimated_delivery_days,
            payment_reference=handoff.reference,
            client_secret=handoff.client_secret,
        )

    async def _settled_status(self, order: Order, applied: bool) -> PaymentStatus:
        """Status to report after the provider charged synchronously.

        When the success callback did not apply, an earlier webhook already
        settled the order and its stored status is authoritative.

        Raises:
            PaymentFailedError: If the order was already marked failed
        """
        if applied:
            return PaymentStatus.PAID
        current = await self.orders.get_order(order.id)
        if current.payment_status is PaymentStatus.FAILED:
            raise PaymentFailedError(
                order.id,
                order.order_number,
                "Order was marked failed before the charge was confirmed",
                retryable=True,
            )
        return current.payment_status

    async def complete_payment(self, order_id: uuid.UUID, reference: str) -> bool:
        """
        Mark a pending order paid.

        The customer's stored cart is cleared only when the order was placed
        from it.

        Returns:
            True when this call moved the order to ``paid``
        """
        transition = await self.orders.transition_payment_status(
            order_id,
            PaymentStatus.PENDING,
            PaymentStatus.PAID,
            payment_reference=reference,
        )
        if transition is None:
            order = await self.orders.get_order(order_id)
            if order.payment_status is PaymentStatus.FAILED:
                logger.error(
                    "Payment succeeded for an order already marked failed",
                    order_id=str(order_id),
                    order_number=order.order_number,
                    payment_reference=reference,
                )
            else:
                logger.info(
                    "Payment success already recorded",
                    order_id=str(order_id),
                    payment_status=order.payment_status.value,
                )
            return False

        if transition.from_stored_cart:
            await self.carts.clear(transition.customer_id)
        await self.session.commit()

        logger.info(
            "Payment completed",
            order_id=str(order_id),
            order_number=transition.order_number,
            payment_reference=reference,
        )
        return True

    async def _record_failure(
        self,
        order_id: uuid.UUID,
        reference: Optional[str],
    ) -> tuple[Optional[str], Optional[RestoreResult]]:
        transition = await self.orders.transition_payment_status(
            order_id,
            PaymentStatus.PENDING,
            PaymentStatus.FAILED,
            payment_reference=reference,
        )
        if transition is None:
            logger.info("Payment failure already recorded", order_id=str(order_id))
            return None, None

        lines = await self.orders.get_order_lines(order_id)
        restore = await self.stock.restore(lines)
        await self.session.commit()

        logger.info(
            "Payment failure recorded and stock restored",
            order_id=str(order_id),
            order_number=transition.order_number,
            restored_count=len(restore.restored_lines),
            failed_count=len(restore.failures),
        )
        return transition.order_number, restore

    async def fail_payment(
        self,
        order_id: uuid.UUID,
        provider_error: str,
        reference: Optional[str] = None,
    ) -> None:
        """
        Mark a pending order failed and restore its stock.

        The status update and the restore commit together and only run when
        the order was still pending.

        Raises:
            PaymentFailedError: Always, with ``retryable=True``
        """
        order_number, _ = await self._record_failure(order_id, reference)
        if order_number is None:
            order_number = (await self.orders.get_order(order_id)).order_number
        raise PaymentFailedError(order_id, order_number, provider_error, retryable=True)

    async def handle_payment_event(self, event: PaymentEvent) -> PaymentEventResult:
        """
        Apply an asynchronous provider notification.

        Repeated deliveries are no-ops.

        Raises:
            OrderNotFoundError: If the event refers to an unknown order
        """
        logger.info(
            "Payment event received",
            order_id=str(event.order_id),
            succeeded=event.succeeded,
            reference=event.reference,
        )

        if event.succeeded:
            applied = await self.complete_payment(event.order_id, event.reference or "")
            return PaymentEventResult(
                order_id=event.order_id,
                applied=applied,
                payment_status=PaymentStatus.PAID if applied else None,
            )

        order_number, restore = await self._record_failure(event.order_id, event.reference)
        if order_number is None:
            await self.orders.get_order(event.order_id)
        return PaymentEventResult(
            order_id=event.order_id,
            applied=order_number is not None,
            payment_status=PaymentStatus.FAILED if order_number else None,
            restore=restore,
        )

    async def update_fulfillment_status(
        self,
        order_id: uuid.UUID,
        status: FulfillmentStatus,
        changed_by: Optional[str] = None,
        notes: Optional[str] = None,
        delivery_partner: Optional[str] = None,
        shipment_id: Optional[str] = None,
        delivery_date: Optional[date] = None,
    ) -> OrderStatusHistory:
        """
        Append a fulfillment status record.

        Cancelling does not return stock; restock is a separate admin action.

        Raises:
            OrderNotFoundError: If the order does not exist
            StatusTransitionError: If the transition is not allowed or a
                concurrent update appended first
        """
        order = await self.orders.get_order(order_id)
        history = await self.orders.get_status_history(order_id)

        record = self.state_machine.next_event(
            order,
            history,
            status,
            changed_by=changed_by,
            notes=notes,
            delivery_partner=delivery_partner,
            shipment_id=shipment_id,
            delivery_date=delivery_date,
        )
        self.orders.add_status_event(record)

        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(
                "Concurrent fulfillment update rejected",
                order_id=str(order_id),
                sequence=record.sequence,
            )
            raise StatusTransitionError(
                "Order status changed concurrently, reload and retry",
                current_status=project_status(history),
                target_status=status,
                order_id=str(order_id),
            ) from e

        await self.session.commit()
        await self.session.refresh(record)

        logger.info(
            "Fulfillment status updated",
            order_id=str(order_id),
            status=status.value,
            sequence=record.sequence,
        )
        return record

    async def request_change(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        kind: CustomerRequestKind,
        notes: Optional[str] = None,
    ) -> OrderStatusHistory:
        """
        Record a customer's cancel or return request on their own order.

        Cancellation may be requested while the order is ordered or
        confirmed, a return once it is delivered. Staff resolve the request
        through ``update_fulfillment_status``.

        Args:
            order_id: Order the request is about
            customer_id: Customer raising the request; must own the order
            kind: Cancel or return
            notes: Optional reason given by the customer

        Raises:
            OrderNotFoundError: If the order is missing or owned by someone else
            StatusTransitionError: If the order is not in a state that
                accepts this request
        """
        await self.orders.get_order(order_id, customer_id=customer_id)
        logger.info(
            "Customer request received",
            order_id=str(order_id),
            customer_id=str(customer_id),
            kind=kind.value,
        )
        return await self.update_fulfillment_status(
            order_id,
            kind.requested_status,
            changed_by=str(customer_id),
            notes=notes,
        )

    async def get_order(
        self,
        order_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> Order:
        """
        Raises:
            OrderNotFoundError: If the order is missing or belongs to another
                customer
        """
        return await self.orders.get_order(order_id, customer_id=customer_id)

    async def get_status_history(
        self,
        order_id: uuid.UUID,
        customer_id: Optional[uuid.UUID] = None,
    ) -> list[OrderStatusHistory]:
        """
        Status history of an order, oldest first; the last record is the
        current status.

        Raises:
            OrderNotFoundError: If the order is missing or not visible
        """
        await self.orders.get_order(order_id, customer_id=customer_id)
        return await self.orders.get_status_history(order_id)
