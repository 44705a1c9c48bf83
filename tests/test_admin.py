"""Tests for administrator operations."""

import pytest

from storefront.admin import ALLOWED_TRANSITIONS, require_admin
from storefront.errors import AdminRequired, InvalidTransition, OrderNotFound, ValidationError
from storefront.models import OrderStatus, PaymentStatus

from conftest import ADMIN_ID, load_order, seed_product, signed, stock_of, webhook_body

pytestmark = pytest.mark.anyio


async def paid_order(services, db, customer_id="c1", qty=2, stock=5):
    product_id = await seed_product(db, sizes=[(10, 5000, stock)])
    await services.carts.add_item(customer_id, product_id, 10, qty)
    result = await services.checkout.checkout(customer_id, "Ada")
    body = webhook_body(result.reference)
    await services.reconciler.handle_webhook(signed(body), body)
    return product_id, result.orderId


class TestRequireAdmin:
    def test_missing_identity(self):
        with pytest.raises(AdminRequired) as exc:
            require_admin(None, [ADMIN_ID])
        assert exc.value.status_code == 401

    def test_unknown_identity(self):
        with pytest.raises(AdminRequired) as exc:
            require_admin("123", [ADMIN_ID])
        assert exc.value.status_code == 403

    def test_admin(self):
        require_admin(ADMIN_ID, [ADMIN_ID])


class TestStatusTransitions:
    def test_terminal_statuses(self):
        assert ALLOWED_TRANSITIONS[OrderStatus.DELIVERED] == set()
        assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == set()

    async def test_fulfilment_path(self, services, db, notifier):
        _, order_id = await paid_order(services, db)

        for status in ("confirmed", "SHIPPED", "DELIVERED"):
            view = await services.admin.update_order_status(order_id, status)
            assert view.status == OrderStatus(status.upper())

        order = await load_order(db, order_id)
        assert order.status == OrderStatus.DELIVERED.value
        assert any("DELIVERED" in text for text in notifier.messages_to("c1"))

    async def test_invalid_transition(self, services, db):
        _, order_id = await paid_order(services, db)
        await services.admin.update_order_status(order_id, "SHIPPED")

        with pytest.raises(InvalidTransition):
            await services.admin.update_order_status(order_id, "CANCELLED")

    async def test_unknown_status(self, services, db):
        _, order_id = await paid_order(services, db)

        with pytest.raises(ValidationError):
            await services.admin.update_order_status(order_id, "LOST")

    async def test_unknown_order(self, services):
        with pytest.raises(OrderNotFound):
            await services.admin.update_order_status("missing", "SHIPPED")

    async def test_cancel_paid_order_releases_stock(self, services, db):
        product_id, order_id = await paid_order(services, db, qty=2, stock=5)
        assert await stock_of(db, product_id, 10) == 3

        await services.admin.update_order_status(order_id, "CANCELLED")

        order = await load_order(db, order_id)
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert await stock_of(db, product_id, 10) == 5

    async def test_cancel_pending_order_marks_failed(self, services, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])
        await services.carts.add_item("c1", product_id, 10, 1)
        result = await services.checkout.checkout("c1", "Ada")

        await services.admin.update_order_status(result.orderId, "CANCELLED")

        order = await load_order(db, result.orderId)
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.expires_at is None
        assert await stock_of(db, product_id, 10) == 5
        assert await services.sweeper.cancel_expired_orders() == []


class TestQueries:
    async def test_list_and_filter(self, services, db):
        _, paid_id = await paid_order(services, db, customer_id="c1")
        product_id = await seed_product(db, name="White Musk", sizes=[(3, 1500, 5)])
        await services.carts.add_item("c2", product_id, 3, 1)
        await services.checkout.checkout("c2", "Bola")

        everything = await services.admin.list_orders()
        processing = await services.admin.list_orders("processing")

        assert len(everything) == 2
        assert [order.id for order in processing] == [paid_id]

    async def test_get_order(self, services, db):
        _, order_id = await paid_order(services, db)

        view = await services.admin.get_order(order_id)

        assert view.id == order_id
        assert view.paymentStatus == PaymentStatus.PAID
        assert view.items[0].productName == "Oud Royale"

    async def test_get_missing_order(self, services):
        with pytest.raises(OrderNotFound):
            await services.admin.get_order("missing")

    async def test_stats(self, services, db):
        await paid_order(services, db, customer_id="c1", qty=2)
        product_id = await seed_product(db, name="White Musk", sizes=[(3, 1500, 5)])
        await services.carts.add_item("c2", product_id, 3, 1)
        await services.checkout.checkout("c2", "Bola")

        stats = await services.admin.stats()

        assert stats.totalProducts == 2
        assert stats.totalOrders == 2
        assert stats.totalRevenue == 2 * 5000 + 4000
        assert stats.processingOrders == 1
        assert stats.cancelledOrders == 0


class TestSetStock:
    async def test_set_stock(self, services, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])

        entry = await services.admin.set_stock(product_id, 10, 12)

        assert entry == {"productId": product_id, "size": 10, "price": 5000, "stock": 12}
        assert await stock_of(db, product_id, 10) == 12

    async def test_negative_stock_rejected(self, services, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])

        with pytest.raises(ValidationError):
            await services.admin.set_stock(product_id, 10, -1)
        assert await stock_of(db, product_id, 10) == 5
