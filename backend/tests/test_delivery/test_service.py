"""
Test suite for delivery quoting.

Runs the offline resolver tiers against zones stored in SQLite and checks
the free-shipping rule at and around the threshold.
"""

from decimal import Decimal

import pytest

from storefront.services.delivery.pincode_resolver import (
    LocationSource,
    PincodeNotResolvableError,
)
from storefront.services.delivery.service import (
    compute_delivery_charge,
    remaining_for_free_shipping,
)
from storefront.services.delivery.zone_matcher import NoZoneConfiguredError


class TestComputeDeliveryCharge:
    @pytest.mark.parametrize(
        "subtotal,expected",
        [
            ("2500", "99.00"),
            ("2999.99", "99.00"),
            ("3000", "0.00"),
            ("3500", "0.00"),
        ],
    )
    def test_free_shipping_at_or_above_threshold(self, subtotal, expected):
        charge = compute_delivery_charge(Decimal(subtotal), Decimal("99"), Decimal("3000"))

        assert charge == Decimal(expected)

    def test_remaining_never_negative(self):
        assert remaining_for_free_shipping(Decimal("2500"), Decimal("3000")) == Decimal("500.00")
        assert remaining_for_free_shipping(Decimal("3500"), Decimal("3000")) == Decimal("0.00")


class TestDeliveryService:
    @pytest.mark.asyncio
    async def test_quote_below_threshold_adds_zone_charge(self, delivery_service):
        quote = await delivery_service.quote("632001", Decimal("2500"))

        assert quote.location.district == "Vellore"
        assert quote.location.source is LocationSource.CACHE
        assert quote.zone.zone_name == "Local"
        assert quote.effective_delivery_charge == Decimal("99.00")
        assert quote.total == Decimal("2599.00")
        assert quote.delivery_days_label == "3-5"
        assert not quote.is_free_shipping
        assert quote.remaining_for_free_shipping == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_quote_above_threshold_is_free(self, delivery_service):
        quote = await delivery_service.quote("632001", Decimal("3500"))

        assert quote.effective_delivery_charge == Decimal("0.00")
        assert quote.zone_delivery_charge == Decimal("99.00")
        assert quote.total == Decimal("3500.00")
        assert quote.is_free_shipping

    @pytest.mark.asyncio
    async def test_quote_uses_pattern_tier_for_unknown_pincode(self, delivery_service):
        quote = await delivery_service.quote("695014", Decimal("1000"))

        assert quote.location.state == "Kerala"
        assert quote.location.source is LocationSource.PATTERN
        assert quote.zone.zone_name == "South"
        assert quote.effective_delivery_charge == Decimal("149.00")
        assert quote.delivery_days_label == "5-7"

    @pytest.mark.asyncio
    async def test_location_without_zone_raises(self, delivery_service):
        with pytest.raises(NoZoneConfiguredError):
            await delivery_service.quote("110001", Decimal("1000"))

    @pytest.mark.asyncio
    async def test_unresolvable_pincode_raises(self, delivery_service):
        with pytest.raises(PincodeNotResolvableError):
            await delivery_service.quote("990001", Decimal("1000"))
