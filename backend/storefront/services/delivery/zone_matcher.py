"""
Delivery zone matching.

Maps a resolved location onto one configured delivery zone using the zone
region table. District-level entries always outrank state-level entries, and
loose substring matching is only a last resort. The matcher works on an
immutable snapshot of the active configuration so one checkout sees a
consistent table.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple

from storefront.core.logging import get_logger
from storefront.database.models.delivery import RegionType
from storefront.services.delivery.pincode_resolver import ResolvedLocation

logger = get_logger(__name__)


class ZoneMatcherError(Exception):
    """Base exception for zone matching errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class NoZoneConfiguredError(ZoneMatcherError):
    """Raised when no zone region covers a resolved location."""

    def __init__(self, state: str, district: Optional[str] = None):
        super().__init__(
            f"No delivery zone configured for {district + ', ' if district else ''}{state}",
            state=state,
            district=district,
        )
        self.state = state
        self.district = district


class InvalidZoneError(ZoneMatcherError):
    """Raised when a zone row violates its invariants."""


@dataclass(frozen=True)
class DeliveryZoneSnapshot:
    """Immutable view of an active delivery zone."""

    id: uuid.UUID
    zone_number: int
    zone_name: str
    delivery_days_min: int
    delivery_days_max: int
    delivery_charge: Decimal
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if self.delivery_days_min < 0 or self.delivery_days_min > self.delivery_days_max:
            raise InvalidZoneError(
                "Delivery days range is invalid",
                zone_id=str(self.id),
                delivery_days_min=self.delivery_days_min,
                delivery_days_max=self.delivery_days_max,
            )
        if self.delivery_charge < 0:
            raise InvalidZoneError(
                "Delivery charge cannot be negative",
                zone_id=str(self.id),
                delivery_charge=str(self.delivery_charge),
            )

    @property
    def delivery_days_label(self) -> str:
        """Estimate such as ``"3-5"``, or ``"4"`` when min equals max."""
        if self.delivery_days_min == self.delivery_days_max:
            return str(self.delivery_days_min)
        return f"{self.delivery_days_min}-{self.delivery_days_max}"

    @classmethod
    def from_model(cls, zone: Any) -> "DeliveryZoneSnapshot":
        return cls(
            id=zone.id,
            zone_number=zone.zone_number,
            zone_name=zone.zone_name,
            delivery_days_min=zone.delivery_days_min,
            delivery_days_max=zone.delivery_days_max,
            delivery_charge=Decimal(zone.delivery_charge),
            description=zone.description,
        )


@dataclass(frozen=True)
class ZoneRegionEntry:
    """Immutable view of a zone region row."""

    delivery_zone_id: uuid.UUID
    state_name: str
    region_type: RegionType
    district_name: Optional[str] = None

    @classmethod
    def from_model(cls, region: Any) -> "ZoneRegionEntry":
        return cls(
            delivery_zone_id=region.delivery_zone_id,
            state_name=region.state_name,
            region_type=RegionType(region.region_type),
            district_name=region.district_name,
        )


@dataclass(frozen=True)
class ZoneTable:
    """Snapshot of active zones and the regions pointing at them."""

    zones: Tuple[DeliveryZoneSnapshot, ...] = ()
    regions: Tuple[ZoneRegionEntry, ...] = ()
    _by_id: Mapping[uuid.UUID, DeliveryZoneSnapshot] = field(
        init=False,
        repr=False,
        compare=False,
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_id", {zone.id: zone for zone in self.zones})

    @classmethod
    def build(
        cls,
        zones: Iterable[DeliveryZoneSnapshot],
        regions: Iterable[ZoneRegionEntry],
    ) -> "ZoneTable":
        """Build a table, dropping regions whose zone is not in ``zones``."""
        zones = tuple(sorted(zones, key=lambda zone: zone.zone_number))
        zone_ids = {zone.id for zone in zones}
        regions = tuple(r for r in regions if r.delivery_zone_id in zone_ids)
        return cls(zones=zones, regions=regions)

    def zone(self, zone_id: uuid.UUID) -> Optional[DeliveryZoneSnapshot]:
        return self._by_id.get(zone_id)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class ZoneMatcher:
    """
    Match resolved locations to delivery zones.

    Matching order, first hit wins, all comparisons case-insensitive:

    1. district region whose ``state_name`` contains both the state and the
       district, or whose ``state_name`` equals the state and
       ``district_name`` equals the district
    2. state region whose ``state_name`` equals the state
    3. any region whose ``state_name`` is a substring of the state or the
       other way round
    """

    def __init__(self, table: ZoneTable):
        self._table = table

    @property
    def table(self) -> ZoneTable:
        return self._table

    def match(self, location: ResolvedLocation) -> DeliveryZoneSnapshot:
        """
        Find the delivery zone for a location.

        Args:
            location: Resolved pincode location

        Returns:
            Matching active delivery zone

        Raises:
            NoZoneConfiguredError: If no region covers the location
        """
        state = _norm(location.state)
        district = _norm(location.district)

        region, rule = self._find_region(state, district)
        if region is None:
            logger.info(
                "No delivery zone matched",
                state=location.state,
                district=location.district,
            )
            raise NoZoneConfiguredError(location.state, location.district)

        zone = self._table.zone(region.delivery_zone_id)
        logger.debug(
            "Delivery zone matched",
            state=location.state,
            district=location.district,
            zone_number=zone.zone_number,
            rule=rule,
        )
        return zone

    def _find_region(
        self,
        state: str,
        district: str,
    ) -> Tuple[Optional[ZoneRegionEntry], Optional[str]]:
        if not state:
            return None, None

        regions = self._table.regions

        if district:
            for region in regions:
                if region.region_type is not RegionType.DISTRICT:
                    continue
                name = _norm(region.state_name)
                if state in name and district in name:
                    return region, "district"
                if name == state and _norm(region.district_name) == district:
                    return region, "district"

        for region in regions:
            if region.region_type is RegionType.STATE and _norm(region.state_name) == state:
                return region, "state"

        for region in regions:
            name = _norm(region.state_name)
            if name and (name in state or state in name):
                return region, "partial"

        return None, None
