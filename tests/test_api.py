"""Tests for the storefront HTTP API."""

import pytest

from storefront.errors import StoreBusy

from conftest import ADMIN_ID, seed_product, signed, stock_of, webhook_body

pytestmark = pytest.mark.anyio

ADMIN_HEADERS = {"x-telegram-id": ADMIN_ID}


async def checkout_over_http(client, db, customer_id="c1", qty=2):
    product_id = await seed_product(db, sizes=[(10, 5000, 5)])
    await client.post("/cart/add", json={"customerId": customer_id, "productId": product_id, "size": 10, "quantity": qty})
    response = await client.post("/orders/checkout", json={"customerId": customer_id, "customerName": "Ada"})
    assert response.status_code == 201
    return product_id, response.json()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestCartEndpoints:
    async def test_empty_cart_shape(self, client):
        response = await client.get("/cart/nobody")

        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert data["subtotal"] == 0
        assert data["delivery_fee"] == 0
        assert data["total"] == 0

    async def test_add_update_remove(self, client, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])

        added = await client.post(
            "/cart/add", json={"customerId": 42, "productId": product_id, "size": 10, "quantity": 2}
        )
        assert added.status_code == 200
        assert added.json()["customerId"] == "42"
        assert added.json()["subtotal"] == 10000

        updated = await client.post(
            "/cart/update", json={"customerId": "42", "productId": product_id, "size": 10, "quantity": 4}
        )
        assert updated.json()["items"][0]["quantity"] == 4
        assert await stock_of(db, product_id, 10) == 1

        removed = await client.post("/cart/remove", json={"customerId": "42", "productId": product_id, "size": 10})
        assert removed.json()["items"] == []
        assert await stock_of(db, product_id, 10) == 5

    async def test_out_of_stock(self, client, db):
        product_id = await seed_product(db, name="Oud Royale", sizes=[(10, 5000, 1)])

        response = await client.post(
            "/cart/add", json={"customerId": "c1", "productId": product_id, "size": 10, "quantity": 2}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Oud Royale (10ml) is out of stock"}

    async def test_invalid_size(self, client, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 1)])

        response = await client.post("/cart/add", json={"customerId": "c1", "productId": product_id, "size": 50})

        assert response.status_code == 404
        assert response.json() == {"error": "Invalid size selected"}

    async def test_non_positive_quantity_rejected(self, client, db):
        product_id = await seed_product(db)

        response = await client.post(
            "/cart/add", json={"customerId": "c1", "productId": product_id, "size": 10, "quantity": 0}
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("quantity")

    async def test_delivery_zone_and_address(self, client, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])
        await client.post("/cart/add", json={"customerId": "c1", "productId": product_id, "size": 10})

        zone = await client.post("/cart/delivery", json={"customerId": "c1", "delivery_location": "Lagos Island"})
        assert zone.json()["delivery_fee"] == 6000
        assert zone.json()["total"] == 11000

        address = await client.post(
            "/cart/delivery-address",
            json={"customerId": "c1", "delivery_address": "Hall 3, Covenant University"},
        )
        assert address.status_code == 200
        assert address.json()["delivery_address"] == "Hall 3, Covenant University"
        assert address.json()["delivery_location"] == "Lagos Island"

    async def test_address_without_cart(self, client):
        response = await client.post(
            "/cart/delivery-address", json={"customerId": "nobody", "delivery_address": "12 Marina Road"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Cart not found"}

    async def test_old_checkout_route_gone(self, client):
        response = await client.post("/cart/checkout", json={})

        assert response.status_code == 410
        assert "/orders/checkout" in response.json()["error"]


class TestCheckoutEndpoint:
    async def test_checkout(self, client, db, gateway):
        _, data = await checkout_over_http(client, db)

        assert data["checkoutUrl"] == f"https://checkout.korapay.test/{data['reference']}"
        assert data["orderId"]
        assert gateway.last_payload()["amount"] == 2 * 5000 + 4000

    async def test_empty_cart(self, client):
        response = await client.post("/orders/checkout", json={"customerId": "c1", "customerName": "Ada"})

        assert response.status_code == 400
        assert response.json() == {"error": "Cart is empty"}

    async def test_gateway_failure(self, client, db, gateway):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])
        await client.post("/cart/add", json={"customerId": "c1", "productId": product_id, "size": 10})
        gateway.mode = "error"

        response = await client.post("/orders/checkout", json={"customerId": "c1", "customerName": "Ada"})

        assert response.status_code == 400
        cart = (await client.get("/cart/c1")).json()
        assert len(cart["items"]) == 1


class TestWebhookEndpoint:
    async def post_webhook(self, client, body, signature):
        headers = {"content-type": "application/json"}
        if signature is not None:
            headers["x-korapay-signature"] = signature
        return await client.post("/payment/webhook", content=body, headers=headers)

    async def test_success_then_duplicate(self, client, db):
        _, data = await checkout_over_http(client, db)
        body = webhook_body(data["reference"])

        first = await self.post_webhook(client, body, signed(body))
        second = await self.post_webhook(client, body, signed(body))

        assert first.status_code == 200
        assert first.json() == {"success": True}
        assert second.json() == {"received": True}

    async def test_failed_payment(self, client, db):
        product_id, data = await checkout_over_http(client, db)
        body = webhook_body(data["reference"], status="failed")

        response = await self.post_webhook(client, body, signed(body))

        assert response.json() == {"success": False}
        assert await stock_of(db, product_id, 10) == 5

    async def test_ignored_event(self, client):
        body = webhook_body("whatever", event="transfer.success")

        response = await self.post_webhook(client, body, signed(body))

        assert response.status_code == 200
        assert response.json() == {"received": True}

    async def test_bad_signature(self, client, db):
        _, data = await checkout_over_http(client, db)
        body = webhook_body(data["reference"])

        response = await self.post_webhook(client, body, signed(body, "not-the-secret"))

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}

    async def test_non_ascii_signature_header(self, client, db):
        _, data = await checkout_over_http(client, db)
        body = webhook_body(data["reference"])

        response = await self.post_webhook(client, body, b"caf\xe9")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}

    async def test_missing_signature(self, client):
        response = await self.post_webhook(client, webhook_body("ref"), None)

        assert response.status_code == 400

    async def test_unknown_reference(self, client):
        body = webhook_body("unknown-ref")

        response = await self.post_webhook(client, body, signed(body))

        assert response.status_code == 404
        assert response.json() == {"error": "Order not found"}

    async def test_unexpected_failure(self, client, services, monkeypatch):
        async def broken(signature, raw_body):
            raise RuntimeError("database went away")

        monkeypatch.setattr(services.reconciler, "handle_webhook", broken)
        body = webhook_body("ref")

        response = await self.post_webhook(client, body, signed(body))

        assert response.status_code == 500
        assert response.json() == {"error": "Webhook processing failed"}


class TestAdminEndpoints:
    async def test_requires_identity(self, client):
        response = await client.get("/admin/stats")
        assert response.status_code == 401

    async def test_rejects_non_admin(self, client):
        response = await client.get("/admin/stats", headers={"x-telegram-id": "123"})
        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}

    async def test_order_lifecycle(self, client, db):
        _, data = await checkout_over_http(client, db)
        body = webhook_body(data["reference"])
        await client.post(
            "/payment/webhook",
            content=body,
            headers={"content-type": "application/json", "x-korapay-signature": signed(body)},
        )

        listed = await client.get("/admin/orders", params={"status": "PROCESSING"}, headers=ADMIN_HEADERS)
        assert [order["id"] for order in listed.json()["orders"]] == [data["orderId"]]

        shipped = await client.patch(
            f"/admin/orders/{data['orderId']}/status", json={"status": "SHIPPED"}, headers=ADMIN_HEADERS
        )
        assert shipped.json()["order"]["status"] == "SHIPPED"

        back = await client.patch(
            f"/admin/orders/{data['orderId']}/status", json={"status": "PENDING"}, headers=ADMIN_HEADERS
        )
        assert back.status_code == 400

        detail = await client.get(f"/admin/orders/{data['orderId']}", headers=ADMIN_HEADERS)
        assert detail.json()["order"]["paymentStatus"] == "PAID"

    async def test_missing_order(self, client):
        response = await client.get("/admin/orders/missing", headers=ADMIN_HEADERS)
        assert response.status_code == 404

    async def test_stock_update(self, client, db):
        product_id = await seed_product(db, sizes=[(10, 5000, 5)])

        response = await client.patch(
            f"/admin/products/{product_id}/stock", json={"size": 10, "stock": 20}, headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["entry"]["stock"] == 20
        assert await stock_of(db, product_id, 10) == 20

    async def test_stats(self, client, db):
        await checkout_over_http(client, db)

        response = await client.get("/admin/stats", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["totalOrders"] == 1
        assert response.json()["totalRevenue"] == 0


class TestSessionEndpoints:
    async def test_session_lifecycle(self, client):
        assert (await client.get("/sessions/c1")).status_code == 404

        saved = await client.put("/sessions/c1", json={"step": "awaiting_address", "data": {"zone": "Lagos Island"}})
        assert saved.status_code == 200
        assert saved.json()["step"] == "awaiting_address"

        loaded = await client.get("/sessions/c1")
        assert loaded.json()["data"] == {"zone": "Lagos Island"}

        cleared = await client.delete("/sessions/c1")
        assert cleared.json() == {"cleared": True}
        assert (await client.get("/sessions/c1")).status_code == 404


class TestStoreBusy:
    async def test_store_busy_maps_to_503(self, client, services, monkeypatch):
        async def locked(customer_id):
            raise StoreBusy()

        monkeypatch.setattr(services.carts, "get_cart_view", locked)

        response = await client.get("/cart/c1")

        assert response.status_code == 503
        assert response.json() == {"error": "Store is busy, please try again"}
