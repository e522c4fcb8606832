"""
Test suite for the payment hand-off and the Stripe gateway.

The Stripe SDK is never called over the network: gateway tests mock the
client wrapper and client tests patch ``stripe.PaymentIntent.create``.
"""

import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from storefront.services.payments.gateway import (
    CallbackAlreadyInvokedError,
    CustomerContact,
    PaymentGateway,
    PaymentOutcome,
    PaymentRequest,
    ProviderResponse,
    StripePaymentGateway,
    _OutcomeCallbacks,
)
from storefront.services.payments.stripe_client import (
    StripeClient,
    StripeClientError,
    StripeConnectionError,
    StripePaymentError,
    to_minor_units,
)


def payment_request(method_token="pm_card_visa") -> PaymentRequest:
    return PaymentRequest(
        amount=Decimal("2599.00"),
        currency="INR",
        order_id=uuid.uuid4(),
        order_number="ORD-1700000000000-ABC123",
        customer=CustomerContact(name="Asha", phone="9876543210", email="asha@example.com"),
        method_token=method_token,
    )


class FixedGateway(PaymentGateway):
    provider_name = "fixed"

    def __init__(self, response):
        self.response = response

    async def submit(self, request):
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def parse_event(self, payload, signature):
        return None


def intent(status: str, **extra) -> stripe.PaymentIntent:
    return stripe.PaymentIntent.construct_from(
        {"id": "pi_123", "status": status, **extra},
        "sk_test_placeholder",
    )


class TestPaymentGatewayInitiate:
    @pytest.mark.asyncio
    async def test_success_invokes_only_success_callback(self):
        on_success, on_failure = AsyncMock(return_value=True), AsyncMock()
        gateway = FixedGateway(
            ProviderResponse(outcome=PaymentOutcome.SUCCEEDED, reference="pay_1")
        )
        request = payment_request()

        handoff = await gateway.initiate(request, on_success, on_failure)

        on_success.assert_awaited_once()
        confirmation = on_success.await_args.args[0]
        assert confirmation.order_id == request.order_id
        assert confirmation.reference == "pay_1"
        on_failure.assert_not_awaited()
        assert handoff.outcome is PaymentOutcome.SUCCEEDED
        assert handoff.callback_result is True

    @pytest.mark.asyncio
    async def test_refusal_invokes_only_failure_callback(self):
        on_success, on_failure = AsyncMock(), AsyncMock()
        gateway = FixedGateway(
            ProviderResponse(
                outcome=PaymentOutcome.FAILED,
                error="Card declined",
                code="card_declined",
            )
        )

        await gateway.initiate(payment_request(), on_success, on_failure)

        on_success.assert_not_awaited()
        failure = on_failure.await_args.args[0]
        assert failure.error == "Card declined"
        assert failure.code == "card_declined"
        assert failure.provider == "fixed"

    @pytest.mark.asyncio
    async def test_pending_invokes_no_callback(self):
        on_success, on_failure = AsyncMock(), AsyncMock()
        gateway = FixedGateway(
            ProviderResponse(
                outcome=PaymentOutcome.PENDING,
                reference="pi_1",
                client_secret="pi_1_secret",
            )
        )

        handoff = await gateway.initiate(payment_request(), on_success, on_failure)

        on_success.assert_not_awaited()
        on_failure.assert_not_awaited()
        assert handoff.client_secret == "pi_1_secret"

    @pytest.mark.asyncio
    async def test_submission_error_is_reported_as_failure(self):
        on_success, on_failure = AsyncMock(), AsyncMock()
        gateway = FixedGateway(StripeConnectionError("Payment provider unavailable"))

        handoff = await gateway.initiate(payment_request(), on_success, on_failure)

        assert handoff.outcome is PaymentOutcome.FAILED
        assert on_failure.await_args.args[0].error == "Payment provider unavailable"

    @pytest.mark.asyncio
    async def test_callback_error_propagates(self):
        on_failure = AsyncMock(side_effect=RuntimeError("compensation broke"))
        gateway = FixedGateway(ProviderResponse(outcome=PaymentOutcome.FAILED))

        with pytest.raises(RuntimeError, match="compensation broke"):
            await gateway.initiate(payment_request(), AsyncMock(), on_failure)


class TestOutcomeCallbacks:
    @pytest.mark.asyncio
    async def test_second_outcome_is_rejected(self):
        on_success, on_failure = AsyncMock(), AsyncMock()
        callbacks = _OutcomeCallbacks(on_success, on_failure)

        await callbacks.success(MagicMock())
        with pytest.raises(CallbackAlreadyInvokedError):
            await callbacks.failure(MagicMock())
        with pytest.raises(CallbackAlreadyInvokedError):
            await callbacks.success(MagicMock())

        assert callbacks.fired is PaymentOutcome.SUCCEEDED
        on_success.assert_awaited_once()
        on_failure.assert_not_awaited()


class TestStripePaymentGateway:
    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock(spec=StripeClient)

    @pytest.fixture
    def gateway(self, client) -> StripePaymentGateway:
        return StripePaymentGateway(client)

    @pytest.mark.asyncio
    async def test_succeeded_intent(self, gateway, client):
        client.create_payment_intent.return_value = intent("succeeded")
        request = payment_request()

        response = await gateway.submit(request)

        assert response.outcome is PaymentOutcome.SUCCEEDED
        assert response.reference == "pi_123"
        kwargs = client.create_payment_intent.call_args.kwargs
        assert kwargs["amount"] == 259900
        assert kwargs["payment_method_id"] == "pm_card_visa"
        assert kwargs["idempotency_key"] == f"order-{request.order_id}"

    @pytest.mark.asyncio
    async def test_declined_intent_with_method_fails(self, gateway, client):
        client.create_payment_intent.return_value = intent(
            "requires_payment_method",
            last_payment_error={"message": "Your card was declined.", "code": "card_declined"},
        )

        response = await gateway.submit(payment_request())

        assert response.outcome is PaymentOutcome.FAILED
        assert response.error == "Your card was declined."
        assert response.code == "card_declined"

    @pytest.mark.asyncio
    async def test_intent_without_method_stays_pending(self, gateway, client):
        client.create_payment_intent.return_value = intent(
            "requires_payment_method",
            client_secret="pi_123_secret_abc",
        )

        response = await gateway.submit(payment_request(method_token=None))

        assert response.outcome is PaymentOutcome.PENDING
        assert response.client_secret == "pi_123_secret_abc"

    @pytest.mark.asyncio
    async def test_pending_handoff_fires_no_callback(self, gateway, client):
        client.create_payment_intent.return_value = intent("requires_payment_method")
        on_success, on_failure = AsyncMock(), AsyncMock()

        handoff = await gateway.initiate(
            payment_request(method_token=None), on_success, on_failure
        )

        assert handoff.outcome is PaymentOutcome.PENDING
        assert handoff.client_secret is None
        on_success.assert_not_awaited()
        on_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_error_fails(self, gateway, client):
        client.create_payment_intent.side_effect = StripePaymentError(
            "Card error: declined",
            code="card_declined",
        )

        response = await gateway.submit(payment_request())

        assert response.outcome is PaymentOutcome.FAILED
        assert response.code == "card_declined"

    def test_parse_success_event(self, gateway, client):
        order_id = uuid.uuid4()
        client.construct_webhook_event.return_value = {
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_9", "metadata": {"order_id": str(order_id)}}},
        }

        event = gateway.parse_event(b"{}", "t=1,v1=sig")

        assert event.order_id == order_id
        assert event.succeeded
        assert event.reference == "pi_9"

    def test_parse_failure_event(self, gateway, client):
        order_id = uuid.uuid4()
        client.construct_webhook_event.return_value = {
            "type": "payment_intent.payment_failed",
            "data": {
                "object": {
                    "id": "pi_9",
                    "metadata": {"order_id": str(order_id)},
                    "last_payment_error": {"message": "Insufficient funds"},
                }
            },
        }

        event = gateway.parse_event(b"{}", "sig")

        assert not event.succeeded
        assert event.error == "Insufficient funds"

    @pytest.mark.parametrize(
        "event",
        [
            {"type": "charge.refunded", "data": {"object": {}}},
            {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}},
        ],
    )
    def test_irrelevant_events_are_ignored(self, gateway, client, event):
        client.construct_webhook_event.return_value = event

        assert gateway.parse_event(b"{}", "sig") is None


class TestStripeClient:
    @pytest.fixture
    def client(self) -> StripeClient:
        return StripeClient(
            api_key="sk_test_placeholder",
            webhook_secret="whsec_test",
            max_retries=2,
            initial_backoff=0,
        )

    def test_minor_units(self):
        assert to_minor_units(Decimal("2599.00")) == 259900
        assert to_minor_units(Decimal("0.005")) == 1

    def test_transient_error_is_retried(self, client):
        with patch.object(
            stripe.PaymentIntent,
            "create",
            side_effect=[stripe.APIConnectionError("network down"), intent("succeeded")],
        ) as create:
            result = client.create_payment_intent(
                amount=1000,
                currency="INR",
                payment_method_id="pm_card_visa",
                order_id=uuid.uuid4(),
                order_number="ORD-1-ABCDEF",
            )

        assert result.status == "succeeded"
        assert create.call_count == 2
        assert create.call_args.kwargs["confirm"] is True
        assert create.call_args.kwargs["currency"] == "inr"

    def test_retries_exhausted(self, client):
        with patch.object(
            stripe.PaymentIntent,
            "create",
            side_effect=stripe.APIConnectionError("network down"),
        ) as create:
            with pytest.raises(StripeConnectionError):
                client.create_payment_intent(
                    amount=1000,
                    currency="INR",
                    payment_method_id=None,
                    order_id=uuid.uuid4(),
                    order_number="ORD-1-ABCDEF",
                )

        assert create.call_count == 3

    def test_card_error_is_not_retried(self, client):
        with patch.object(
            stripe.PaymentIntent,
            "create",
            side_effect=stripe.CardError("declined", "card", "card_declined"),
        ) as create:
            with pytest.raises(StripePaymentError) as exc_info:
                client.create_payment_intent(
                    amount=1000,
                    currency="INR",
                    payment_method_id="pm_card_chargeDeclined",
                    order_id=uuid.uuid4(),
                    order_number="ORD-1-ABCDEF",
                )

        assert exc_info.value.code == "card_declined"
        assert create.call_count == 1

    def test_bad_signature_is_rejected(self, client):
        with pytest.raises(StripeClientError) as exc_info:
            client.construct_webhook_event(b'{"id": "evt_1"}', "t=1,v1=bad")

        assert exc_info.value.code == "INVALID_SIGNATURE"


def signed_payload(body: dict, secret: str) -> tuple[bytes, str]:
    """Encode a webhook body and sign it the way Stripe does."""
    payload = json.dumps(body).encode()
    timestamp = int(time.time())
    digest = hmac.new(
        secret.encode(),
        f"{timestamp}.".encode() + payload,
        hashlib.sha256,
    ).hexdigest()
    return payload, f"t={timestamp},v1={digest}"


class TestSignedWebhooks:
    SECRET = "whsec_test_signing"

    @pytest.fixture
    def gateway(self) -> StripePaymentGateway:
        client = StripeClient(
            api_key="sk_test_placeholder",
            webhook_secret=self.SECRET,
            max_retries=0,
        )
        return StripePaymentGateway(client)

    def event_body(self, event_type: str, **intent_fields) -> dict:
        return {
            "id": "evt_1",
            "object": "event",
            "type": event_type,
            "data": {
                "object": {
                    "id": "pi_42",
                    "object": "payment_intent",
                    "status": "succeeded",
                    **intent_fields,
                }
            },
        }

    def test_succeeded_event(self, gateway):
        order_id = uuid.uuid4()
        payload, signature = signed_payload(
            self.event_body(
                "payment_intent.succeeded",
                metadata={"order_id": str(order_id), "order_number": "ORD-1-ABCDEF"},
            ),
            self.SECRET,
        )

        event = gateway.parse_event(payload, signature)

        assert event.order_id == order_id
        assert event.succeeded
        assert event.reference == "pi_42"

    def test_failed_event_carries_provider_message(self, gateway):
        order_id = uuid.uuid4()
        payload, signature = signed_payload(
            self.event_body(
                "payment_intent.payment_failed",
                status="requires_payment_method",
                metadata={"order_id": str(order_id)},
                last_payment_error={"message": "Insufficient funds", "code": "card_declined"},
            ),
            self.SECRET,
        )

        event = gateway.parse_event(payload, signature)

        assert not event.succeeded
        assert event.error == "Insufficient funds"

    def test_event_without_order_id_is_ignored(self, gateway):
        payload, signature = signed_payload(
            self.event_body("payment_intent.succeeded", metadata={}),
            self.SECRET,
        )

        assert gateway.parse_event(payload, signature) is None

    def test_tampered_payload_is_rejected(self, gateway):
        payload, signature = signed_payload(
            self.event_body("payment_intent.succeeded", metadata={"order_id": str(uuid.uuid4())}),
            self.SECRET,
        )

        with pytest.raises(StripeClientError) as exc_info:
            gateway.parse_event(payload.replace(b"pi_42", b"pi_43"), signature)

        assert exc_info.value.code == "INVALID_SIGNATURE"
