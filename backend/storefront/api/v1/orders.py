"""
Order API endpoints.

This module implements checkout (order placement with delivery quoting,
stock reservation and payment hand-off), order retrieval, the fulfillment
status history, customer cancel or return requests and the admin status
update.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response, status

from storefront.api.deps import AdminIdentity, CurrentIdentity, Orchestrator, limiter
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.schemas.orders import (
    CheckoutResponse,
    OrderChangeRequest,
    OrderResponse,
    OrderStatusUpdateRequest,
    PlaceOrderRequest,
    StatusHistoryResponse,
)
from storefront.services.cart.pricing import CartItemUnavailableError
from storefront.services.inventory.stock_reservation import InsufficientStockError
from storefront.services.orders.enums import PaymentStatus
from storefront.services.orders.repository import OrderNotFoundError
from storefront.services.orders.service import (
    CheckoutCustomer,
    CheckoutValidationError,
    DeliveryUnavailableError,
    InvalidAddressError,
    PaymentFailedError,
)
from storefront.services.orders.state_machine import StatusTransitionError

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _error(status_code: int, error: str, message: str, **details) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": message, "details": details},
    )


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place order",
    description=(
        "Place an order from the submitted lines or the stored cart. Returns "
        "201 when payment succeeded and 202 while it awaits confirmation."
    ),
    responses={
        202: {"description": "Order placed, payment pending"},
        402: {"description": "Payment failed, stock restored"},
        409: {"description": "Insufficient stock"},
        422: {"description": "Invalid address, empty cart or undeliverable pincode"},
    },
)
@limiter.limit(lambda: get_settings().order_rate_limit)
async def place_order(
    request: Request,
    response: Response,
    payload: PlaceOrderRequest,
    identity: CurrentIdentity,
    orchestrator: Orchestrator,
) -> CheckoutResponse:
    """
    Place an order.

    Raises:
        HTTPException: 422 for checkout validation and delivery errors, 409
            when stock runs out, 402 when the payment is refused
    """
    logger.info(
        "Placing order",
        customer_id=str(identity.customer_id),
        pincode=payload.pincode,
        line_count=len(payload.lines) if payload.lines is not None else None,
    )

    try:
        result = await orchestrator.place_order(
            CheckoutCustomer(customer_id=identity.customer_id, email=identity.email),
            payload.address.to_input(),
            payload.pincode,
            lines=payload.cart_lines(),
            payment_method_token=payload.payment_method_token,
        )

    except InvalidAddressError as e:
        raise _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            e.code,
            e.message,
            missing_fields=e.missing_fields,
        ) from e

    except CheckoutValidationError as e:
        raise _error(status.HTTP_422_UNPROCESSABLE_ENTITY, e.code, e.message) from e

    except DeliveryUnavailableError as e:
        raise _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            e.code,
            e.message,
            pincode=e.pincode,
        ) from e

    except CartItemUnavailableError as e:
        raise _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "ITEM_UNAVAILABLE",
            e.message,
            **e.context,
        ) from e

    except InsufficientStockError as e:
        raise _error(
            status.HTTP_409_CONFLICT,
            "INSUFFICIENT_STOCK",
            e.message,
            product_title=e.product_title,
            size_id=str(e.size_id),
            requested=e.requested,
            available=e.available,
        ) from e

    except PaymentFailedError as e:
        logger.warning(
            "Order payment failed",
            order_id=str(e.order_id),
            order_number=e.order_number,
            provider_error=e.provider_error,
        )
        raise _error(
            status.HTTP_402_PAYMENT_REQUIRED,
            e.code,
            "Payment failed, please try again",
            order_id=str(e.order_id),
            order_number=e.order_number,
            provider_error=e.provider_error,
            retryable=e.retryable,
        ) from e

    if result.payment_status is PaymentStatus.PENDING:
        response.status_code = status.HTTP_202_ACCEPTED

    logger.info(
        "Order placed",
        order_id=str(result.order_id),
        order_number=result.order_number,
        payment_status=result.payment_status.value,
    )
    return CheckoutResponse.from_result(result)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order details",
)
async def get_order(
    order_id: UUID,
    identity: CurrentIdentity,
    orchestrator: Orchestrator,
) -> OrderResponse:
    """
    Get order details by ID. Customers only see their own orders.

    Raises:
        HTTPException: 404 if the order is not found or not visible
    """
    try:
        order = await orchestrator.get_order(
            order_id,
            customer_id=None if identity.is_admin else identity.customer_id,
        )
    except OrderNotFoundError as e:
        logger.warning(
            "Order not found",
            order_id=str(order_id),
            customer_id=str(identity.customer_id),
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e

    return OrderResponse.model_validate(order)


@router.get(
    "/{order_id}/history",
    response_model=list[StatusHistoryResponse],
    summary="Get order status history",
)
async def get_order_history(
    order_id: UUID,
    identity: CurrentIdentity,
    orchestrator: Orchestrator,
) -> list[StatusHistoryResponse]:
    """
    Fulfillment status history, oldest first.

    Raises:
        HTTPException: 404 if the order is not found or not visible
    """
    try:
        history = await orchestrator.get_status_history(
            order_id,
            customer_id=None if identity.is_admin else identity.customer_id,
        )
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e

    return [StatusHistoryResponse.model_validate(record) for record in history]


@router.post(
    "/{order_id}/requests",
    response_model=StatusHistoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request cancellation or return",
    description=(
        "Ask to cancel an order that is ordered or confirmed, or to return a "
        "delivered one. Only the order's owner may ask."
    ),
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Order cannot take this request in its current status"},
    },
)
async def request_order_change(
    order_id: UUID,
    payload: OrderChangeRequest,
    identity: CurrentIdentity,
    orchestrator: Orchestrator,
) -> StatusHistoryResponse:
    """
    Record a customer cancel or return request.

    Raises:
        HTTPException: 404 if the order is not the caller's, 409 if the
            order is past the point where the request is accepted
    """
    try:
        record = await orchestrator.request_change(
            order_id,
            identity.customer_id,
            payload.kind,
            notes=payload.notes,
        )
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e
    except StatusTransitionError as e:
        logger.info(
            "Customer request rejected",
            order_id=str(order_id),
            kind=payload.kind.value,
            current_status=e.current_status.value if e.current_status else None,
        )
        raise _error(
            status.HTTP_409_CONFLICT,
            "INVALID_STATUS_TRANSITION",
            e.message,
            current_status=e.current_status.value if e.current_status else None,
            target_status=e.target_status.value,
        ) from e

    return StatusHistoryResponse.model_validate(record)


@router.post(
    "/{order_id}/status",
    response_model=StatusHistoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Update fulfillment status",
    description="Append a fulfillment status record (administrators only)",
)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdateRequest,
    identity: AdminIdentity,
    orchestrator: Orchestrator,
) -> StatusHistoryResponse:
    """
    Update fulfillment status with state machine validation.

    Raises:
        HTTPException: 404 if the order is not found, 409 if the transition
            is not allowed
    """
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        target_status=payload.status.value,
        admin_id=str(identity.customer_id),
    )

    try:
        record = await orchestrator.update_fulfillment_status(
            order_id,
            payload.status,
            changed_by=identity.email or str(identity.customer_id),
            notes=payload.notes,
            delivery_partner=payload.delivery_partner,
            shipment_id=payload.shipment_id,
            delivery_date=payload.delivery_date,
        )
    except OrderNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        ) from e
    except StatusTransitionError as e:
        logger.warning(
            "Invalid status transition",
            order_id=str(order_id),
            current_status=e.current_status.value if e.current_status else None,
            target_status=e.target_status.value,
        )
        raise _error(
            status.HTTP_409_CONFLICT,
            "INVALID_STATUS_TRANSITION",
            e.message,
            current_status=e.current_status.value if e.current_status else None,
            target_status=e.target_status.value,
        ) from e

    return StatusHistoryResponse.model_validate(record)
