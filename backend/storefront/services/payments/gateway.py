"""
Callback-driven payment hand-off.

A ``PaymentGateway`` accepts a payment request plus a success and a failure
callback and invokes exactly one of them, at most once, when the provider
reports an outcome. When the provider cannot decide synchronously (the
customer still has to complete the checkout widget, or the payment is
processing) neither callback fires and the outcome arrives later through the
provider webhook.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from storefront.core.logging import get_logger
from storefront.services.payments.stripe_client import (
    StripeClient,
    StripeClientError,
    to_minor_units,
)

logger = get_logger(__name__)


class PaymentOutcome(str, Enum):
    """Provider verdict for a payment attempt."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True)
class CustomerContact:
    name: str
    phone: str
    email: Optional[str] = None


@dataclass(frozen=True)
class PaymentRequest:
    """Everything the provider needs to charge one order."""

    amount: Decimal
    currency: str
    order_id: uuid.UUID
    order_number: str
    customer: CustomerContact
    method_token: Optional[str] = None


@dataclass(frozen=True)
class PaymentConfirmation:
    order_id: uuid.UUID
    reference: str
    provider: str


@dataclass(frozen=True)
class PaymentFailure:
    order_id: uuid.UUID
    error: str
    provider: str
    code: Optional[str] = None
    reference: Optional[str] = None


@dataclass(frozen=True)
class ProviderResponse:
    """Normalized answer of a provider submission."""

    outcome: PaymentOutcome
    reference: Optional[str] = None
    client_secret: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class PaymentHandoff:
    """What the caller learns once ``initiate`` returns."""

    outcome: PaymentOutcome
    reference: Optional[str] = None
    client_secret: Optional[str] = None
    callback_result: Any = None


@dataclass(frozen=True)
class PaymentEvent:
    """Asynchronous provider notification about one order."""

    order_id: uuid.UUID
    succeeded: bool
    reference: Optional[str] = None
    error: Optional[str] = None


SuccessCallback = Callable[[PaymentConfirmation], Awaitable[Any]]
FailureCallback = Callable[[PaymentFailure], Awaitable[Any]]


class CallbackAlreadyInvokedError(RuntimeError):
    """Raised when a second outcome is reported for one hand-off."""


class _OutcomeCallbacks:
    """Guards a success/failure callback pair so only one fires, once."""

    def __init__(self, on_success: SuccessCallback, on_failure: FailureCallback):
        self._on_success = on_success
        self._on_failure = on_failure
        self._fired: Optional[PaymentOutcome] = None

    @property
    def fired(self) -> Optional[PaymentOutcome]:
        return self._fired

    def _claim(self, outcome: PaymentOutcome) -> None:
        if self._fired is not None:
            logger.warning(
                "Payment callback already invoked",
                first=self._fired.value,
                second=outcome.value,
            )
            raise CallbackAlreadyInvokedError(
                f"Payment outcome already reported as {self._fired.value}"
            )
        self._fired = outcome

    async def success(self, confirmation: PaymentConfirmation) -> Any:
        self._claim(PaymentOutcome.SUCCEEDED)
        return await self._on_success(confirmation)

    async def failure(self, failure: PaymentFailure) -> Any:
        self._claim(PaymentOutcome.FAILED)
        return await self._on_failure(failure)


class PaymentGateway(ABC):
    """Base class for payment providers."""

    provider_name: str = "provider"

    async def initiate(
        self,
        request: PaymentRequest,
        on_success: SuccessCallback,
        on_failure: FailureCallback,
    ) -> PaymentHandoff:
        """
        Submit a payment and report the outcome through one callback.

        Exceptions raised by the callback propagate to the caller. Errors
        raised while talking to the provider are reported as a failure.

        Args:
            request: Payment request
            on_success: Awaited with a confirmation when the charge succeeds
            on_failure: Awaited with the failure when the charge is refused

        Returns:
            Hand-off summary, including the callback's return value
        """
        callbacks = _OutcomeCallbacks(on_success, on_failure)

        try:
            response = await self.submit(request)
        except Exception as e:
            logger.error(
                "Payment submission failed",
                provider=self.provider_name,
                order_number=request.order_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            response = ProviderResponse(
                outcome=PaymentOutcome.FAILED,
                error=getattr(e, "message", None) or str(e),
                code=getattr(e, "code", None),
            )

        logger.info(
            "Payment outcome received",
            provider=self.provider_name,
            order_number=request.order_number,
            outcome=response.outcome.value,
            reference=response.reference,
        )

        callback_result = None
        if response.outcome is PaymentOutcome.SUCCEEDED:
            callback_result = await callbacks.success(
                PaymentConfirmation(
                    order_id=request.order_id,
                    reference=response.reference or "",
                    provider=self.provider_name,
                )
            )
        elif response.outcome is PaymentOutcome.FAILED:
            callback_result = await callbacks.failure(
                PaymentFailure(
                    order_id=request.order_id,
                    error=response.error or "Payment failed",
                    provider=self.provider_name,
                    code=response.code,
                    reference=response.reference,
                )
            )

        return PaymentHandoff(
            outcome=response.outcome,
            reference=response.reference,
            client_secret=response.client_secret,
            callback_result=callback_result,
        )

    @abstractmethod
    async def submit(self, request: PaymentRequest) -> ProviderResponse:
        """Send the request to the provider and normalize its answer."""

    @abstractmethod
    def parse_event(self, payload: bytes, signature: str) -> Optional[PaymentEvent]:
        """
        Verify and interpret a provider webhook.

        Returns:
            Payment event, or None for event types that carry no outcome
        """


_INTENT_SUCCEEDED = {"succeeded"}
_INTENT_FAILED = {"requires_payment_method", "canceled"}

_EVENT_OUTCOMES = {
    "payment_intent.succeeded": True,
    "payment_intent.payment_failed": False,
    "payment_intent.canceled": False,
}


def _field(obj: Any, name: str) -> Any:
    """
    Read a field from a Stripe object or a plain mapping.

    ``StripeObject`` is not a dict in current SDKs; missing fields raise
    AttributeError, which reads as None here.
    """
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class StripePaymentGateway(PaymentGateway):
    """PaymentIntent-based gateway; blocking SDK calls run in a worker thread."""

    provider_name = "stripe"

    def __init__(self, client: StripeClient):
        self.client = client
        logger.info("Stripe payment gateway initialized")

    async def submit(self, request: PaymentRequest) -> ProviderResponse:
        try:
            intent = await asyncio.to_thread(
                self.client.create_payment_intent,
                amount=to_minor_units(request.amount),
                currency=request.currency,
                payment_method_id=request.method_token,
                order_id=request.order_id,
                order_number=request.order_number,
                customer_email=request.customer.email,
                idempotency_key=f"order-{request.order_id}",
            )
        except StripeClientError as e:
            return ProviderResponse(
                outcome=PaymentOutcome.FAILED,
                error=e.message,
                code=e.code,
            )

        status = _field(intent, "status")
        reference = _field(intent, "id")
        if status in _INTENT_SUCCEEDED:
            return ProviderResponse(outcome=PaymentOutcome.SUCCEEDED, reference=reference)

        if status in _INTENT_FAILED and request.method_token:
            last_error = _field(intent, "last_payment_error")
            return ProviderResponse(
                outcome=PaymentOutcome.FAILED,
                reference=reference,
                error=_field(last_error, "message") or f"Payment {status}",
                code=_field(last_error, "code"),
            )

        return ProviderResponse(
            outcome=PaymentOutcome.PENDING,
            reference=reference,
            client_secret=_field(intent, "client_secret"),
        )

    def parse_event(self, payload: bytes, signature: str) -> Optional[PaymentEvent]:
        """
        Raises:
            StripeClientError: If the signature or payload is invalid
        """
        event = self.client.construct_webhook_event(payload, signature)
        event_type = _field(event, "type")

        succeeded = _EVENT_OUTCOMES.get(event_type)
        if succeeded is None:
            logger.debug("Ignoring Stripe event", event_type=event_type)
            return None

        intent = _field(_field(event, "data"), "object")
        order_id = _field(_field(intent, "metadata"), "order_id")
        if not order_id:
            logger.warning(
                "Stripe event without order id",
                event_type=event_type,
                payment_intent_id=_field(intent, "id"),
            )
            return None

        error = None
        if not succeeded:
            error = _field(_field(intent, "last_payment_error"), "message") or event_type

        return PaymentEvent(
            order_id=uuid.UUID(order_id),
            succeeded=succeeded,
            reference=_field(intent, "id"),
            error=error,
        )
