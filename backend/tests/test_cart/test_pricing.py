"""
Test suite for cart pricing and the stored cart.
"""

import uuid
from decimal import Decimal

import pytest

from storefront.database.models import CartItem
from storefront.services.cart.pricing import (
    CartItemUnavailableError,
    CartLine,
    CartPricing,
    InvalidCartLineError,
    PricedLine,
    compute_subtotal,
)
from storefront.services.cart.repository import CartRepository


class TestCartLine:
    @pytest.mark.parametrize("quantity", [0, -1, 1.5])
    def test_quantity_must_be_positive_integer(self, quantity):
        with pytest.raises(InvalidCartLineError):
            CartLine(uuid.uuid4(), uuid.uuid4(), uuid.uuid4(), quantity)


class TestCartPricing:
    @pytest.mark.asyncio
    async def test_discounted_price_is_used(self, db_session, catalog):
        line = CartLine(catalog.kurta_id, catalog.kurta_blue_id, catalog.kurta_l_id, 2)

        [priced] = await CartPricing(db_session).price_lines([line])

        assert priced.unit_price == Decimal("1250.00")
        assert priced.total_price == Decimal("2500.00")
        assert priced.product_title == "Cotton Kurta"
        assert priced.size_name == "L"
        assert priced.color_code == "#3F51B5"

    @pytest.mark.asyncio
    async def test_list_price_without_discount(self, db_session, catalog):
        line = CartLine(catalog.saree_id, catalog.saree_red_id, catalog.saree_free_id, 1)

        [priced] = await CartPricing(db_session).price_lines([line])

        assert priced.unit_price == Decimal("2500.00")

    @pytest.mark.asyncio
    async def test_subtotal_of_lines(self, db_session, catalog):
        lines = [
            CartLine(catalog.kurta_id, catalog.kurta_blue_id, catalog.kurta_m_id, 1),
            CartLine(catalog.saree_id, catalog.saree_red_id, catalog.saree_free_id, 1),
        ]

        priced = await CartPricing(db_session).price_lines(lines)

        assert [p.line for p in priced] == lines
        assert compute_subtotal(priced) == Decimal("3750.00")

    @pytest.mark.asyncio
    async def test_unknown_size_is_unavailable(self, db_session, catalog):
        line = CartLine(catalog.kurta_id, catalog.kurta_blue_id, uuid.uuid4(), 1)

        with pytest.raises(CartItemUnavailableError):
            await CartPricing(db_session).price_lines([line])

    @pytest.mark.asyncio
    async def test_size_of_other_product_is_unavailable(self, db_session, catalog):
        line = CartLine(catalog.saree_id, catalog.kurta_blue_id, catalog.kurta_m_id, 1)

        with pytest.raises(CartItemUnavailableError):
            await CartPricing(db_session).price_lines([line])

    def test_empty_subtotal(self):
        assert compute_subtotal([]) == Decimal("0.00")

    def test_line_total_is_rounded(self):
        priced = PricedLine(
            line=CartLine(uuid.uuid4(), uuid.uuid4(), uuid.uuid4(), 3),
            product_title="Scarf",
            size_name="Free Size",
            color_name="Teal",
            color_code="#008080",
            unit_price=Decimal("333.335"),
        )

        assert priced.total_price == Decimal("1000.01")


class TestCartRepository:
    @pytest.mark.asyncio
    async def test_lines_and_clear(self, session_factory, db_session, catalog, customer_id):
        async with session_factory() as session:
            session.add_all(
                [
                    CartItem(
                        customer_id=customer_id,
                        product_id=catalog.kurta_id,
                        color_id=catalog.kurta_blue_id,
                        size_id=catalog.kurta_m_id,
                        quantity=1,
                    ),
                    CartItem(
                        customer_id=uuid.uuid4(),
                        product_id=catalog.saree_id,
                        color_id=catalog.saree_red_id,
                        size_id=catalog.saree_free_id,
                        quantity=1,
                    ),
                ]
            )
            await session.commit()

        repository = CartRepository(db_session)

        lines = await repository.get_lines(customer_id)
        removed = await repository.clear(customer_id)
        await db_session.commit()

        assert lines == [CartLine(catalog.kurta_id, catalog.kurta_blue_id, catalog.kurta_m_id, 1)]
        assert removed == 1
        assert await repository.get_lines(customer_id) == []
