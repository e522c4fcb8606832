"""
Delivery configuration models.

A DeliveryZone is a shipping-cost and lead-time bracket; ZoneRegion rows map
states or districts onto a zone. Both tables are maintained by the admin
console and are read-only from the checkout path.
"""

import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.database.base import BaseModel


class RegionType(str, Enum):
    """Granularity of a zone region entry."""

    STATE = "state"
    DISTRICT = "district"


class DeliveryZone(BaseModel):
    """
    Configured delivery zone.

    Attributes:
        zone_number: Display ordering of the zone (unique)
        zone_name: Human-readable zone name
        delivery_days_min: Fastest delivery estimate in days
        delivery_days_max: Slowest delivery estimate in days
        delivery_charge: Shipping charge in rupees before free-shipping rules
        is_active: Inactive zones are ignored by the zone matcher
    """

    __tablename__ = "delivery_zones"

    zone_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        unique=True,
    )
    zone_name: Mapped[str] = mapped_column(String(100), nullable=False)
    delivery_days_min: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_days_max: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_charge: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0.00"),
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    regions: Mapped[list["ZoneRegion"]] = relationship(
        back_populates="delivery_zone",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "delivery_days_min >= 0 AND delivery_days_min <= delivery_days_max",
            name="ck_delivery_zones_days_range",
        ),
        CheckConstraint(
            "delivery_charge >= 0",
            name="ck_delivery_zones_charge_non_negative",
        ),
    )


class ZoneRegion(BaseModel):
    """
    State- or district-level mapping onto a delivery zone.

    For district entries the admin console historically stored the combined
    "State - District" label in ``state_name``; the zone matcher accepts both
    that form and a separate ``district_name``.
    """

    __tablename__ = "zone_regions"

    delivery_zone_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("delivery_zones.id", ondelete="CASCADE"),
        nullable=False,
    )
    state_name: Mapped[str] = mapped_column(String(150), nullable=False)
    district_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    region_type: Mapped[RegionType] = mapped_column(
        SQLEnum(
            RegionType,
            name="region_type",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
            length=20,
        ),
        nullable=False,
        default=RegionType.STATE,
    )

    delivery_zone: Mapped[DeliveryZone] = relationship(back_populates="regions")

    __table_args__ = (
        Index("ix_zone_regions_state_name", "state_name"),
        Index("ix_zone_regions_delivery_zone_id", "delivery_zone_id"),
    )
