"""
Delivery quote schemas.

Response models for the delivery quote endpoint, built from a
``DeliveryQuote`` so cart display and checkout report the same charge.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.services.delivery.service import DeliveryQuote


class ResolvedLocationResponse(BaseModel):
    """Where a pincode was resolved to."""

    state: str = Field(..., description="State name")
    district: Optional[str] = Field(None, description="District name, when known")
    source: str = Field(..., description="Lookup source: cache, remote or pattern")


class DeliveryZoneResponse(BaseModel):
    """Matched delivery zone."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    zone_number: int = Field(..., description="Zone ordering number")
    zone_name: str = Field(..., description="Zone display name")
    delivery_days_min: int = Field(..., ge=0)
    delivery_days_max: int = Field(..., ge=0)
    delivery_charge: Decimal = Field(..., ge=0, description="Configured zone charge")


class DeliveryQuoteResponse(BaseModel):
    """Delivery terms for a pincode and cart subtotal."""

    pincode: str = Field(..., description="Delivery pincode")
    location: ResolvedLocationResponse
    zone: DeliveryZoneResponse
    subtotal: Decimal = Field(..., ge=0, description="Cart subtotal")
    delivery_charge: Decimal = Field(
        ...,
        ge=0,
        description="Charge after the free-shipping rule",
    )
    is_free_shipping: bool
    free_shipping_threshold: Decimal
    remaining_for_free_shipping: Decimal = Field(
        ...,
        ge=0,
        description="Amount still needed for free delivery",
    )
    estimated_delivery_days: str = Field(..., description="Delivery window, e.g. 3-5")
    total: Decimal = Field(..., ge=0, description="Subtotal plus delivery charge")

    @classmethod
    def from_quote(cls, quote: DeliveryQuote) -> "DeliveryQuoteResponse":
        return cls(
            pincode=quote.pincode,
            location=ResolvedLocationResponse(
                state=quote.location.state,
                district=quote.location.district,
                source=quote.location.source.value,
            ),
            zone=DeliveryZoneResponse.model_validate(quote.zone),
            subtotal=quote.subtotal,
            delivery_charge=quote.effective_delivery_charge,
            is_free_shipping=quote.is_free_shipping,
            free_shipping_threshold=quote.free_shipping_threshold,
            remaining_for_free_shipping=quote.remaining_for_free_shipping,
            estimated_delivery_days=quote.delivery_days_label,
            total=quote.total,
        )
