"""
Delivery quoting service.

Combines pincode resolution, zone matching and the free-shipping rule into a
single delivery quote. ``compute_delivery_charge`` is the only place the
free-shipping rule lives; cart display and order creation both go through it
so the two always agree.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol

from storefront.core.logging import get_logger
from storefront.services.delivery.pincode_resolver import (
    PincodeResolver,
    ResolvedLocation,
)
from storefront.services.delivery.zone_matcher import (
    DeliveryZoneSnapshot,
    ZoneMatcher,
    ZoneTable,
)

logger = get_logger(__name__)

_CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert to a two-decimal ``Decimal`` amount."""
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def compute_delivery_charge(
    subtotal: Decimal,
    zone_charge: Decimal,
    free_shipping_threshold: Decimal,
) -> Decimal:
    """
    Apply the free-shipping rule.

    Args:
        subtotal: Cart subtotal
        zone_charge: Delivery charge configured on the matched zone
        free_shipping_threshold: Subtotal at or above which delivery is free

    Returns:
        Zero when ``subtotal >= free_shipping_threshold``, else ``zone_charge``
    """
    if to_money(subtotal) >= to_money(free_shipping_threshold):
        return to_money(0)
    return to_money(zone_charge)


def remaining_for_free_shipping(
    subtotal: Decimal,
    free_shipping_threshold: Decimal,
) -> Decimal:
    """Amount still needed to qualify for free delivery, never negative."""
    remaining = to_money(free_shipping_threshold) - to_money(subtotal)
    return max(remaining, to_money(0))


class ZoneTableSource(Protocol):
    async def load_zone_table(self) -> ZoneTable:
        ...


@dataclass(frozen=True)
class DeliveryQuote:
    """Delivery terms for one pincode and cart subtotal."""

    pincode: str
    location: ResolvedLocation
    zone: DeliveryZoneSnapshot
    subtotal: Decimal
    effective_delivery_charge: Decimal
    free_shipping_threshold: Decimal

    @property
    def zone_delivery_charge(self) -> Decimal:
        return self.zone.delivery_charge

    @property
    def is_free_shipping(self) -> bool:
        return self.effective_delivery_charge == 0

    @property
    def remaining_for_free_shipping(self) -> Decimal:
        return remaining_for_free_shipping(self.subtotal, self.free_shipping_threshold)

    @property
    def delivery_days_label(self) -> str:
        return self.zone.delivery_days_label

    @property
    def total(self) -> Decimal:
        return to_money(self.subtotal + self.effective_delivery_charge)


class DeliveryService:
    """
    Service producing delivery quotes.

    Raises the resolver and matcher errors unchanged; callers decide how a
    missing zone is presented.
    """

    def __init__(
        self,
        resolver: PincodeResolver,
        zones: ZoneTableSource,
        free_shipping_threshold: Decimal,
    ):
        """
        Initialize delivery service.

        Args:
            resolver: Pincode resolver
            zones: Source of the active zone table
            free_shipping_threshold: Subtotal at or above which delivery is free
        """
        self.resolver = resolver
        self.zones = zones
        self.free_shipping_threshold = to_money(free_shipping_threshold)
        self._matcher: Optional[ZoneMatcher] = None
        logger.info(
            "Delivery service initialized",
            free_shipping_threshold=str(self.free_shipping_threshold),
        )

    async def _get_matcher(self) -> ZoneMatcher:
        if self._matcher is None:
            self._matcher = ZoneMatcher(await self.zones.load_zone_table())
        return self._matcher

    async def resolve_zone(
        self,
        pincode: str,
    ) -> tuple[ResolvedLocation, DeliveryZoneSnapshot]:
        """
        Resolve a pincode and match its zone.

        Raises:
            PincodeNotResolvableError: If the pincode cannot be resolved
            NoZoneConfiguredError: If no zone covers the location
        """
        location = await self.resolver.resolve(pincode)
        matcher = await self._get_matcher()
        return location, matcher.match(location)

    async def quote(self, pincode: str, subtotal: Decimal) -> DeliveryQuote:
        """
        Quote delivery for a pincode and cart subtotal.

        Args:
            pincode: Delivery pincode
            subtotal: Cart subtotal

        Returns:
            Delivery quote with the effective charge

        Raises:
            PincodeNotResolvableError: If the pincode cannot be resolved
            NoZoneConfiguredError: If no zone covers the location
        """
        location, zone = await self.resolve_zone(pincode)
        subtotal = to_money(subtotal)
        effective = compute_delivery_charge(
            subtotal,
            zone.delivery_charge,
            self.free_shipping_threshold,
        )

        logger.info(
            "Delivery quoted",
            pincode=pincode.strip(),
            state=location.state,
            district=location.district,
            source=location.source.value,
            zone_number=zone.zone_number,
            subtotal=str(subtotal),
            delivery_charge=str(effective),
        )

        return DeliveryQuote(
            pincode=pincode.strip(),
            location=location,
            zone=zone,
            subtotal=subtotal,
            effective_delivery_charge=effective,
            free_shipping_threshold=self.free_shipping_threshold,
        )
