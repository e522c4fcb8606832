"""
Stripe SDK wrapper used by the checkout payment gateway.

Creates (and, given a payment method, confirms) one PaymentIntent per order
and verifies webhook signatures. Provider errors are mapped onto
``StripeClientError`` subclasses; transient ones are retried with
exponential backoff before giving up.
"""

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import stripe
from stripe import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    CardError,
    RateLimitError,
    SignatureVerificationError,
    StripeError,
)

from storefront.core.config import get_settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class StripeClientError(Exception):
    """Base exception for Stripe client errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        stripe_error: Optional[StripeError] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.stripe_error = stripe_error
        self.context = context


class StripePaymentError(StripeClientError):
    """Card declined or otherwise refused by the provider."""


class StripeAuthenticationError(StripeClientError):
    """Invalid API credentials."""


class StripeRateLimitError(StripeClientError):
    """Rate limit still exceeded after retries."""


class StripeConnectionError(StripeClientError):
    """Provider unreachable after retries."""


# (sdk error, wrapper, retryable); first match wins
_ERROR_TABLE: tuple[tuple[type[StripeError], type[StripeClientError], bool], ...] = (
    (AuthenticationError, StripeAuthenticationError, False),
    (CardError, StripePaymentError, False),
    (RateLimitError, StripeRateLimitError, True),
    (APIConnectionError, StripeConnectionError, True),
    (APIError, StripeClientError, True),
    (StripeError, StripeClientError, False),
)


def _classify(error: StripeError) -> tuple[type[StripeClientError], bool]:
    for sdk_error, wrapper, retryable in _ERROR_TABLE:
        if isinstance(error, sdk_error):
            return wrapper, retryable
    return StripeClientError, False


def to_minor_units(amount: Decimal) -> int:
    """
    Convert a rupee amount to paise.

    Example:
        >>> to_minor_units(Decimal("2599.00"))
        259900
    """
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeClient:
    """
    Blocking Stripe client with retry on transient failures.

    Async callers run its methods in a worker thread.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        max_retries: Optional[int] = None,
        initial_backoff: float = 1.0,
        max_backoff: float = 32.0,
    ):
        """
        Args:
            api_key: Stripe secret API key (defaults to settings)
            webhook_secret: Webhook signing secret (defaults to settings)
            max_retries: Retries after the first attempt (defaults to settings)
            initial_backoff: Delay before the first retry, doubled per retry
            max_backoff: Upper bound for a single delay
        """
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.max_retries = (
            settings.payment_max_retries if max_retries is None else max_retries
        )
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff

        stripe.api_key = self.api_key
        # retries are ours; the SDK must not retry underneath
        stripe.max_network_retries = 0

    def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        """
        Run one SDK call, retrying transient provider errors.

        Raises:
            StripeClientError: Non-retryable error, or retries exhausted
        """
        attempt = 0
        while True:
            try:
                return func(**kwargs)
            except StripeError as e:
                wrapper, retryable = _classify(e)
                if retryable and attempt < self.max_retries:
                    delay = min(self.initial_backoff * 2**attempt, self.max_backoff)
                    logger.warning(
                        "Stripe call failed, retrying",
                        operation=operation,
                        error_type=type(e).__name__,
                        attempt=attempt + 1,
                        backoff_seconds=delay,
                    )
                    time.sleep(delay)
                    attempt += 1
                    continue

                log = logger.warning if wrapper is StripePaymentError else logger.error
                log(
                    "Stripe call failed",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                    code=getattr(e, "code", None),
                    attempts=attempt + 1,
                )
                raise wrapper(
                    e.user_message or str(e),
                    code=getattr(e, "code", None),
                    stripe_error=e,
                    decline_code=getattr(e, "decline_code", None),
                ) from e

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        payment_method_id: Optional[str],
        order_id: UUID,
        order_number: str,
        customer_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> stripe.PaymentIntent:
        """
        Create a PaymentIntent for an order.

        With a payment method the intent is confirmed immediately; without one
        it is left for the checkout widget to confirm using its client secret.

        Args:
            amount: Amount in minor units (paise)
            currency: Three-letter ISO currency code
            payment_method_id: Payment method token, or None to defer
            order_id: Order the payment belongs to
            order_number: Human-readable order number
            customer_email: Receipt email
            idempotency_key: Idempotency key for safe retries

        Returns:
            Stripe PaymentIntent

        Raises:
            StripeClientError: If creation or confirmation fails
        """
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
            "metadata": {"order_id": str(order_id), "order_number": order_number},
        }
        if payment_method_id:
            params.update(payment_method=payment_method_id, confirm=True)
        if customer_email:
            params["receipt_email"] = customer_email
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        intent = self._call("create_payment_intent", stripe.PaymentIntent.create, **params)
        logger.info(
            "Payment intent created",
            payment_intent_id=intent.id,
            status=intent.status,
            order_number=order_number,
            amount=amount,
        )
        return intent

    def construct_webhook_event(self, payload: bytes, signature: str) -> stripe.Event:
        """
        Verify a webhook delivery and build its event.

        Raises:
            StripeClientError: Bad payload (``INVALID_PAYLOAD``) or signature
                (``INVALID_SIGNATURE``)
        """
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error("Invalid webhook payload", error=str(e))
            raise StripeClientError("Invalid webhook payload", code="INVALID_PAYLOAD") from e
        except SignatureVerificationError as e:
            logger.error("Webhook signature verification failed", error=str(e))
            raise StripeClientError(
                "Webhook signature verification failed",
                code="INVALID_SIGNATURE",
                stripe_error=e,
            ) from e


def get_stripe_client() -> StripeClient:
    """Get a Stripe client configured from settings."""
    return StripeClient()
