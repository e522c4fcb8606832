"""
Order management Pydantic schemas for API request/response validation.

This module defines schemas for checkout (order placement with delivery
address and optional explicit cart lines), order detail responses, the
fulfillment status history, customer cancel or return requests and admin
status updates.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.services.cart.pricing import CartLine
from storefront.services.orders.enums import (
    CustomerRequestKind,
    FulfillmentStatus,
    PaymentStatus,
)
from storefront.services.orders.service import AddressInput, CheckoutResult


class DeliveryAddressRequest(BaseModel):
    """
    Delivery address information.

    Required fields may be sent blank; the checkout reports every missing
    field at once instead of failing on the first.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(default="", max_length=200, description="Recipient name")
    address_line_1: str = Field(default="", max_length=255, description="Street address")
    address_line_2: Optional[str] = Field(None, max_length=255)
    city: str = Field(default="", max_length=100)
    state: str = Field(default="", max_length=100)
    postal_code: str = Field(default="", max_length=10)
    country: str = Field(default="IN", min_length=2, max_length=2)
    phone_number: str = Field(default="", max_length=20)

    @field_validator("country")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        """Validate country code format."""
        return v.upper()

    def to_input(self) -> AddressInput:
        return AddressInput(
            full_name=self.full_name,
            address_line_1=self.address_line_1,
            address_line_2=self.address_line_2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
            phone_number=self.phone_number,
        )


class OrderLineRequest(BaseModel):
    """One cart line submitted with the order."""

    product_id: UUID
    color_id: UUID
    size_id: UUID
    quantity: int = Field(..., ge=1, le=100, description="Units of this size")

    def to_line(self) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            color_id=self.color_id,
            size_id=self.size_id,
            quantity=self.quantity,
        )


class PlaceOrderRequest(BaseModel):
    """Checkout request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    address: DeliveryAddressRequest
    pincode: str = Field(..., max_length=10, description="Six-digit delivery pincode")
    lines: Optional[list[OrderLineRequest]] = Field(
        None,
        description="Lines to order; the stored cart is used when omitted",
    )
    payment_method_token: Optional[str] = Field(
        None,
        max_length=255,
        description="Provider payment method; omit to confirm in the checkout widget",
    )

    def cart_lines(self) -> Optional[list[CartLine]]:
        if self.lines is None:
            return None
        return [line.to_line() for line in self.lines]


class CheckoutResponse(BaseModel):
    """Result of a successful or pending checkout."""

    order_id: UUID
    order_number: str
    payment_status: PaymentStatus
    subtotal_amount: Decimal
    delivery_charge: Decimal
    total_amount: Decimal
    estimated_delivery_days: Optional[str] = None
    payment_reference: Optional[str] = None
    client_secret: Optional[str] = Field(
        None,
        description="Provider client secret when the payment awaits customer action",
    )

    @classmethod
    def from_result(cls, result: CheckoutResult) -> "CheckoutResponse":
        return cls(
            order_id=result.order_id,
            order_number=result.order_number,
            payment_status=result.payment_status,
            subtotal_amount=result.subtotal_amount,
            delivery_charge=result.delivery_charge,
            total_amount=result.total_amount,
            estimated_delivery_days=result.estimated_delivery_days,
            payment_reference=result.payment_reference,
            client_secret=result.client_secret,
        )


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    full_name: str
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone_number: str


class OrderItemResponse(BaseModel):
    """Ordered line with the product details captured at checkout."""

    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    size_id: UUID
    color_id: UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    product_title: str
    size_name: str
    color_name: str
    color_code: str


class StatusHistoryResponse(BaseModel):
    """One fulfillment status record."""

    model_config = ConfigDict(from_attributes=True)

    sequence: int
    status: FulfillmentStatus
    changed_at: Optional[datetime] = None
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    delivery_partner: Optional[str] = None
    shipment_id: Optional[str] = None
    delivery_date: Optional[date] = None


class OrderResponse(BaseModel):
    """Order details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    customer_id: UUID
    subtotal_amount: Decimal
    delivery_charge: Decimal
    total_amount: Decimal
    payment_status: PaymentStatus
    payment_method: str
    payment_reference: Optional[str] = None
    delivery_pincode: str
    estimated_delivery_days: Optional[str] = None
    current_status: Optional[FulfillmentStatus] = None
    delivery_address: AddressResponse
    items: list[OrderItemResponse] = Field(default_factory=list)
    status_history: list[StatusHistoryResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class OrderStatusUpdateRequest(BaseModel):
    """Admin request appending a fulfillment status."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: FulfillmentStatus = Field(..., description="Target fulfillment status")
    notes: Optional[str] = Field(None, max_length=1000)
    delivery_partner: Optional[str] = Field(None, max_length=100)
    shipment_id: Optional[str] = Field(None, max_length=100)
    delivery_date: Optional[date] = None

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        """Accept status values and enum names alike."""
        if isinstance(v, str):
            return FulfillmentStatus.from_string(v)
        return v



class OrderChangeRequest(BaseModel):
    """Customer asking to cancel or return their order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    kind: CustomerRequestKind = Field(..., description="cancel or return")
    notes: Optional[str] = Field(None, max_length=1000, description="Reason for the request")
