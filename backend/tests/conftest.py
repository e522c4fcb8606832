"""
Pytest configuration and shared test fixtures.

Provides a file-backed SQLite database (through aiosqlite) with the checkout
schema, seeded catalog and delivery zones, a scripted payment gateway and
bearer-token helpers for API tests.
"""

import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator, Optional

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_PINCODE_CACHE_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.core.config import get_settings
from storefront.core.security import ADMIN_ROLE, create_access_token
from storefront.database.base import Base
from storefront.database.models import (
    DeliveryZone,
    Product,
    ProductColor,
    ProductSize,
    RegionType,
    ZoneRegion,
)
from storefront.services.delivery.pincode_resolver import (
    PincodeResolver,
    PrefixPatternStrategy,
    StaticTableStrategy,
)
from storefront.services.delivery.repository import DeliveryRepository
from storefront.services.delivery.service import DeliveryService
from storefront.services.payments.gateway import (
    PaymentEvent,
    PaymentGateway,
    PaymentOutcome,
    PaymentRequest,
    ProviderResponse,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Reload settings for every test so env overrides apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Async engine on a temporary SQLite file.

    NullPool gives every session its own connection so concurrent
    transactions really contend for the database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class Catalog:
    """Ids of the seeded catalog rows."""

    def __init__(self):
        self.kurta_id = uuid.uuid4()
        self.kurta_blue_id = uuid.uuid4()
        self.kurta_m_id = uuid.uuid4()
        self.kurta_l_id = uuid.uuid4()
        self.saree_id = uuid.uuid4()
        self.saree_red_id = uuid.uuid4()
        self.saree_free_id = uuid.uuid4()


@pytest.fixture
async def catalog(session_factory: async_sessionmaker[AsyncSession]) -> Catalog:
    """
    Seed two products.

    - Cotton Kurta: 1500 list, 1250 discounted; size M (5 in stock), size L (2)
    - Silk Saree: 2500, no discount; one free size (1 in stock)
    """
    ids = Catalog()
    async with session_factory() as session:
        session.add_all(
            [
                Product(
                    id=ids.kurta_id,
                    title="Cotton Kurta",
                    price_original=Decimal("1500.00"),
                    price_discounted=Decimal("1250.00"),
                ),
                Product(
                    id=ids.saree_id,
                    title="Silk Saree",
                    price_original=Decimal("2500.00"),
                ),
            ]
        )
        await session.flush()
        session.add_all(
            [
                ProductColor(
                    id=ids.kurta_blue_id,
                    product_id=ids.kurta_id,
                    name="Indigo",
                    color_code="#3F51B5",
                ),
                ProductColor(
                    id=ids.saree_red_id,
                    product_id=ids.saree_id,
                    name="Maroon",
                    color_code="#800000",
                ),
            ]
        )
        await session.flush()
        session.add_all(
            [
                ProductSize(
                    id=ids.kurta_m_id,
                    product_id=ids.kurta_id,
                    color_id=ids.kurta_blue_id,
                    name="M",
                    stock_quantity=5,
                    in_stock=True,
                ),
                ProductSize(
                    id=ids.kurta_l_id,
                    product_id=ids.kurta_id,
                    color_id=ids.kurta_blue_id,
                    name="L",
                    stock_quantity=2,
                    in_stock=True,
                ),
                ProductSize(
                    id=ids.saree_free_id,
                    product_id=ids.saree_id,
                    color_id=ids.saree_red_id,
                    name="Free Size",
                    stock_quantity=1,
                    in_stock=True,
                ),
            ]
        )
        await session.commit()
    return ids


@pytest.fixture
async def delivery_zones(session_factory: async_sessionmaker[AsyncSession]) -> dict:
    """
    Seed delivery zones.

    Zone 1 covers Tamil Nadu (charge 99, 3-5 days); zone 2 covers Kerala
    (charge 149, 5-7 days).
    """
    local_id = uuid.uuid4()
    south_id = uuid.uuid4()
    async with session_factory() as session:
        session.add_all(
            [
                DeliveryZone(
                    id=local_id,
                    zone_number=1,
                    zone_name="Local",
                    delivery_days_min=3,
                    delivery_days_max=5,
                    delivery_charge=Decimal("99.00"),
                    is_active=True,
                ),
                DeliveryZone(
                    id=south_id,
                    zone_number=2,
                    zone_name="South",
                    delivery_days_min=5,
                    delivery_days_max=7,
                    delivery_charge=Decimal("149.00"),
                    is_active=True,
                ),
            ]
        )
        await session.flush()
        session.add_all(
            [
                ZoneRegion(
                    delivery_zone_id=local_id,
                    state_name="Tamil Nadu",
                    region_type=RegionType.STATE,
                ),
                ZoneRegion(
                    delivery_zone_id=south_id,
                    state_name="Kerala",
                    region_type=RegionType.STATE,
                ),
            ]
        )
        await session.commit()
    return {"local": local_id, "south": south_id}


def offline_resolver() -> PincodeResolver:
    """Resolver with only the in-process tiers."""
    return PincodeResolver([StaticTableStrategy(), PrefixPatternStrategy()])


@pytest.fixture
def pincode_resolver() -> PincodeResolver:
    return offline_resolver()


@pytest.fixture
def delivery_service(
    db_session: AsyncSession,
    delivery_zones,
    pincode_resolver: PincodeResolver,
) -> DeliveryService:
    return DeliveryService(
        pincode_resolver,
        DeliveryRepository(db_session),
        free_shipping_threshold=Decimal("3000"),
    )


class ScriptedGateway(PaymentGateway):
    """Gateway answering every submission with a preset provider response."""

    provider_name = "scripted"

    def __init__(self, response: Optional[ProviderResponse] = None):
        self.response = response or ProviderResponse(
            outcome=PaymentOutcome.SUCCEEDED,
            reference="pay_test_1",
        )
        self.requests: list[PaymentRequest] = []
        self.event: Optional[PaymentEvent] = None

    async def submit(self, request: PaymentRequest) -> ProviderResponse:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def parse_event(self, payload: bytes, signature: str) -> Optional[PaymentEvent]:
        return self.event


@pytest.fixture
def scripted_gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def customer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def customer_token(customer_id: uuid.UUID) -> str:
    return create_access_token(customer_id, email="asha@example.com")


@pytest.fixture
def admin_token() -> str:
    return create_access_token(uuid.uuid4(), role=ADMIN_ROLE, email="ops@example.com")
