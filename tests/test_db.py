"""Tests for the database layer."""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from storefront.db import Order
from storefront.models import Category

from conftest import seed_product

pytestmark = pytest.mark.anyio


class TestEnumeratedColumns:
    @pytest.mark.parametrize("category", [c.value for c in Category])
    async def test_known_categories(self, db, category):
        assert await seed_product(db, category=category)

    async def test_unknown_category_rejected(self, db):
        with pytest.raises(IntegrityError):
            await seed_product(db, category="budget")

    async def test_unknown_payment_method_rejected(self, services, db):
        product_id = await seed_product(db)
        await services.carts.add_item("c1", product_id, 10, 1)
        result = await services.checkout.checkout("c1", "Ada")

        with pytest.raises(IntegrityError):
            async with db.transaction() as session:
                await session.execute(
                    update(Order).where(Order.id == result.orderId).values(payment_method="CASH")
                )

    async def test_transfer_payment_method_accepted(self, services, db):
        product_id = await seed_product(db)
        await services.carts.add_item("c1", product_id, 10, 1)
        result = await services.checkout.checkout("c1", "Ada")

        async with db.transaction() as session:
            await session.execute(
                update(Order).where(Order.id == result.orderId).values(payment_method="TRANSFER")
            )
