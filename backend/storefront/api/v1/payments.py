"""
Payment provider webhook endpoint.

Stripe reports asynchronous payment outcomes here. Each verified event is
applied to its order through the orchestrator; repeated deliveries of the
same outcome are acknowledged without further effect.
"""

from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, status

from storefront.api.deps import Gateway, Orchestrator
from storefront.core.logging import get_logger
from storefront.services.orders.repository import OrderNotFoundError
from storefront.services.payments.stripe_client import StripeClientError

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/webhook",
    status_code=status.HTTP_200_OK,
    summary="Handle Stripe webhook",
    description="Verify a Stripe event and apply its payment outcome",
)
async def handle_webhook(
    request: Request,
    stripe_signature: Annotated[str, Header(alias="stripe-signature")],
    gateway: Gateway,
    orchestrator: Orchestrator,
) -> dict:
    """
    Handle Stripe webhook event.

    Raises:
        HTTPException: 400 for an invalid payload or signature, 404 when the
            event refers to an unknown order
    """
    payload = await request.body()

    try:
        event = gateway.parse_event(payload, stripe_signature)
    except StripeClientError as e:
        logger.error(
            "Webhook verification failed",
            error=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid webhook", "code": e.code},
        ) from e

    if event is None:
        return {"received": True, "applied": False}

    try:
        result = await orchestrator.handle_payment_event(event)
    except OrderNotFoundError as e:
        logger.warning("Webhook for unknown order", order_id=str(event.order_id))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e

    logger.info(
        "Webhook processed",
        order_id=str(result.order_id),
        applied=result.applied,
        payment_status=result.payment_status.value if result.payment_status else None,
    )

    return {
        "received": True,
        "applied": result.applied,
        "order_id": str(result.order_id),
    }
