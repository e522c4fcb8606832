"""
Test suite for application settings.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from storefront.core.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.free_shipping_threshold == Decimal("3000")
        assert settings.currency == "INR"
        assert settings.pincode_lookup_endpoints == ["https://api.postalpincode.in"]
        assert settings.order_rate_limit == "10/minute"

    def test_comma_separated_lists(self, monkeypatch):
        monkeypatch.setenv(
            "APP_PINCODE_LOOKUP_ENDPOINTS",
            "https://primary.example/, https://backup.example",
        )
        monkeypatch.setenv("APP_CORS_ORIGINS", "https://shop.example,https://admin.example")

        settings = Settings(_env_file=None)

        assert settings.pincode_lookup_endpoints == [
            "https://primary.example",
            "https://backup.example",
        ]
        assert settings.cors_origins == ["https://shop.example", "https://admin.example"]

    def test_threshold_from_environment(self, monkeypatch):
        monkeypatch.setenv("APP_FREE_SHIPPING_THRESHOLD", "4999.50")

        assert Settings(_env_file=None).free_shipping_threshold == Decimal("4999.50")

    @pytest.mark.parametrize(
        "overrides",
        [
            {"free_shipping_threshold": Decimal("-1")},
            {"pincode_lookup_endpoints": ["ftp://postal.example"]},
            {"database_url": "mysql://localhost/storefront"},
            {"redis_url": "localhost:6379"},
            {"pincode_lookup_timeout_seconds": 0},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    def test_default_secret_rejected_in_production(self):
        with pytest.raises(ValidationError, match="Default secret key"):
            Settings(_env_file=None, environment="production")

    def test_custom_secret_accepted_in_production(self):
        settings = Settings(
            _env_file=None,
            environment="production",
            secret_key="a-production-secret-that-is-long-enough",
        )

        assert settings.is_production
