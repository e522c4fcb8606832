"""
Order models for checkout and fulfillment tracking.

This module defines the delivery Address snapshot, the Order record with its
payment axis, denormalized OrderItem lines and the append-only
OrderStatusHistory log. Fulfillment status is not stored on the order row; it
is projected from the most recent history record.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel
from storefront.services.orders.enums import FulfillmentStatus, PaymentStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Address(BaseModel):
    """
    Delivery address captured at checkout.

    A fresh row is written for every order; addresses are never deduplicated
    against earlier ones.
    """

    __tablename__ = "addresses"

    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Customer who owns the address, null for guests",
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    address_line_1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line_2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(10), nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False, default="IN")
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    is_default: Mapped[bool] = mapped_column(nullable=False, default=False)


class Order(BaseModel):
    """
    Customer order created once per checkout attempt.

    Attributes:
        order_number: Human-readable number, ``ORD-<epoch-millis>-<6 base36>``
        customer_id: Customer who placed the order
        delivery_address_id: Address snapshot the order ships to
        subtotal_amount: Sum of line totals at checkout time
        delivery_charge: Delivery charge after the free-shipping rule
        total_amount: subtotal_amount + delivery_charge
        payment_status: Payment axis (pending, paid, failed)
        payment_method: Provider name used for the hand-off
        payment_reference: Provider reference once the payment settled
        delivery_zone_id: Zone matched for the delivery pincode
        delivery_pincode: Pincode the delivery quote was computed for
        estimated_delivery_days: Label such as "3-5" taken from the zone
        from_stored_cart: Whether the lines came from the stored cart, which
            is cleared once payment succeeds
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Human-readable order number",
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Customer who placed the order",
    )
    delivery_address_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("addresses.id", ondelete="RESTRICT"),
        nullable=False,
    )
    subtotal_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Cart subtotal at checkout",
    )
    delivery_charge: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Effective delivery charge",
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Total order amount including delivery",
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            values_callable=_enum_values,
            length=30,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="Current payment status",
    )
    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="stripe",
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Provider payment reference",
    )
    delivery_zone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("delivery_zones.id", ondelete="SET NULL"),
        nullable=True,
    )
    delivery_pincode: Mapped[str] = mapped_column(String(6), nullable=False)
    estimated_delivery_days: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    from_stored_cart: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        comment="Lines were taken from the stored cart",
    )

    delivery_address: Mapped[Address] = relationship(lazy="selectin")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.sequence",
    )

    __table_args__ = (
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        CheckConstraint(
            "subtotal_amount >= 0",
            name="ck_orders_subtotal_non_negative",
        ),
        CheckConstraint(
            "delivery_charge >= 0",
            name="ck_orders_delivery_charge_non_negative",
        ),
        CheckConstraint(
            "total_amount = subtotal_amount + delivery_charge",
            name="ck_orders_total_consistent",
        ),
    )

    @property
    def current_status(self) -> Optional[FulfillmentStatus]:
        """Fulfillment status projected from the latest history record."""
        if not self.status_history:
            return None
        return self.status_history[-1].status


class OrderItem(BaseModel):
    """
    Frozen copy of a cart line at purchase time.

    Product, size and color ids are kept for reference only; title, prices and
    variant names are copied so later catalog edits never change an order.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    size_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    color_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    total_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
    )
    product_title: Mapped[str] = mapped_column(String(255), nullable=False)
    size_name: Mapped[str] = mapped_column(String(50), nullable=False)
    color_name: Mapped[str] = mapped_column(String(100), nullable=False)
    color_code: Mapped[str] = mapped_column(String(20), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint(
            "total_price = unit_price * quantity",
            name="ck_order_items_total_consistent",
        ),
    )


class OrderStatusHistory(BaseModel):
    """
    One immutable fulfillment status event.

    ``sequence`` is assigned per order starting at 1; the unique constraint on
    ``(order_id, sequence)`` rejects two concurrent appends that read the same
    latest record.
    """

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[FulfillmentStatus] = mapped_column(
        SQLEnum(
            FulfillmentStatus,
            name="fulfillment_status",
            native_enum=False,
            values_callable=_enum_values,
            length=30,
        ),
        nullable=False,
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    changed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_partner: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    shipment_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    order: Mapped[Order] = relationship(back_populates="status_history")

    __table_args__ = (
        UniqueConstraint(
            "order_id",
            "sequence",
            name="uq_order_status_history_order_sequence",
        ),
        CheckConstraint("sequence > 0", name="ck_order_status_history_sequence"),
    )
