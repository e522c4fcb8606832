"""
Delivery configuration data access.

Reads the active delivery zones and their regions and turns them into the
immutable ``ZoneTable`` snapshot consumed by the zone matcher.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.logging import get_logger
from storefront.database.models.delivery import DeliveryZone, ZoneRegion
from storefront.services.delivery.zone_matcher import (
    DeliveryZoneSnapshot,
    ZoneRegionEntry,
    ZoneTable,
)

logger = get_logger(__name__)


class DeliveryRepositoryError(Exception):
    """Base exception for delivery repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class DeliveryRepository:
    """Repository for delivery zone configuration."""

    def __init__(self, session: AsyncSession):
        """
        Initialize delivery repository.

        Args:
            session: Async database session
        """
        self.session = session

    async def load_zone_table(self) -> ZoneTable:
        """
        Load the active zone configuration.

        Returns:
            Snapshot of active zones and the regions referencing them

        Raises:
            DeliveryRepositoryError: If the query fails
        """
        try:
            zone_result = await self.session.execute(
                select(DeliveryZone)
                .where(DeliveryZone.is_active.is_(True))
                .order_by(DeliveryZone.zone_number)
            )
            zones = [
                DeliveryZoneSnapshot.from_model(zone)
                for zone in zone_result.scalars().all()
            ]

            region_result = await self.session.execute(
                select(ZoneRegion)
                .join(DeliveryZone, ZoneRegion.delivery_zone_id == DeliveryZone.id)
                .where(DeliveryZone.is_active.is_(True))
            )
            regions = [
                ZoneRegionEntry.from_model(region)
                for region in region_result.scalars().all()
            ]
        except SQLAlchemyError as e:
            logger.error("Failed to load delivery zones", error=str(e))
            raise DeliveryRepositoryError(
                "Failed to load delivery zones",
                error=str(e),
            ) from e

        table = ZoneTable.build(zones, regions)
        logger.debug(
            "Delivery zone table loaded",
            zone_count=len(table.zones),
            region_count=len(table.regions),
        )
        return table
