"""
Delivery quote API endpoint.

Lets the cart page show the delivery charge and estimated delivery window for
a pincode before checkout, using the same quoting service as order placement.
"""

from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query, status

from storefront.api.deps import Delivery
from storefront.core.logging import get_logger
from storefront.schemas.delivery import DeliveryQuoteResponse
from storefront.services.delivery.pincode_resolver import PincodeNotResolvableError
from storefront.services.delivery.repository import DeliveryRepositoryError
from storefront.services.delivery.zone_matcher import NoZoneConfiguredError

logger = get_logger(__name__)

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.get(
    "/quote",
    response_model=DeliveryQuoteResponse,
    summary="Quote delivery",
    description="Resolve a pincode to its delivery zone and apply the free-shipping rule",
)
async def quote_delivery(
    delivery: Delivery,
    pincode: str = Query(..., min_length=6, max_length=6, description="Delivery pincode"),
    subtotal: Decimal = Query(Decimal("0"), ge=0, description="Cart subtotal"),
) -> DeliveryQuoteResponse:
    """
    Quote delivery for a pincode.

    Raises:
        HTTPException: 422 if the pincode cannot be delivered to, 503 if the
            zone table cannot be loaded
    """
    try:
        quote = await delivery.quote(pincode, subtotal)
    except (PincodeNotResolvableError, NoZoneConfiguredError) as e:
        logger.info("Delivery not available", pincode=pincode, reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": "DELIVERY_UNAVAILABLE",
                "message": "Delivery not available for this pincode",
                "details": {"pincode": pincode},
            },
        ) from e
    except DeliveryRepositoryError as e:
        logger.error("Failed to load delivery zones", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Delivery zones unavailable",
        ) from e

    return DeliveryQuoteResponse.from_quote(quote)
