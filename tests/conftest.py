"""Pytest fixtures for storefront tests."""

import json
import os
from datetime import timedelta

os.environ["LOG_FILE"] = ""

import httpx
import pytest
from sqlalchemy import update

from storefront.clients import PaymentClient
from storefront.db import Database, Order, Product, ProductSize, utcnow
from storefront.inventory import InventoryLedger
from storefront.main import app, build_services
from storefront.payments import sign_payload

WEBHOOK_SECRET = "whsec_test"
ADMIN_ID = "900"


class FakeNotifier:
    """Records every message instead of calling Telegram."""

    def __init__(self, admin_ids=(ADMIN_ID,)):
        self.admin_ids = list(admin_ids)
        self.sent = []

    async def notify_user(self, chat_id, text):
        self.sent.append((chat_id, text))
        return True

    async def notify_admins(self, text):
        for admin_id in self.admin_ids:
            await self.notify_user(admin_id, text)
        return len(self.admin_ids)

    async def aclose(self):
        pass

    def messages_to(self, chat_id):
        return [text for recipient, text in self.sent if recipient == chat_id]


class FakeGateway:
    """httpx handler standing in for the KoraPay charge endpoint."""

    def __init__(self):
        self.mode = "ok"
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.mode == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if self.mode == "error":
            return httpx.Response(500, json={"status": False, "message": "boom"})
        if self.mode == "no_url":
            return httpx.Response(200, json={"status": True, "data": {}})
        payload = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "status": True,
                "data": {
                    "reference": payload["reference"],
                    "checkout_url": f"https://checkout.korapay.test/{payload['reference']}",
                },
            },
        )

    def last_payload(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def db(tmp_path):
    """A fresh SQLite file database with all tables created."""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def services(db, gateway, notifier):
    payments = PaymentClient(
        base_url="https://api.korapay.test",
        secret_key="sk_test",
        redirect_url="https://shop.test/paid",
        notification_url="https://shop.test/payment/webhook",
        transport=httpx.MockTransport(gateway),
    )
    built = build_services(
        db=db,
        payments=payments,
        notifier=notifier,
        webhook_secret=WEBHOOK_SECRET,
        admin_ids=[ADMIN_ID],
    )
    yield built
    await payments.aclose()


@pytest.fixture
async def client(services):
    """HTTP client bound to the FastAPI app, using the test services."""
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.state.services = None


# --- Helpers ---

async def seed_product(db, name="Oud Royale", sizes=((10, 5000, 5),), category="premium", is_active=True):
    """Creates a product with (size, price, stock) entries and returns its id."""
    async with db.transaction() as session:
        product = Product(
            name=name,
            category=category,
            is_active=is_active,
            sizes=[ProductSize(size=size, price=price, stock=stock) for size, price, stock in sizes],
        )
        session.add(product)
        await session.flush()
        return product.id


async def stock_of(db, product_id, size):
    async with db.transaction() as session:
        return await InventoryLedger().stock_of(session, product_id, size)


async def load_order(db, order_id):
    async with db.transaction() as session:
        return await session.get(Order, order_id)


def webhook_body(reference, status="success", event="charge.success"):
    return json.dumps({"event": event, "data": {"reference": reference, "status": status}}).encode()


def signed(body, secret=WEBHOOK_SECRET):
    return sign_payload(body, secret)


async def expire_order(db, order_id, minutes_ago=5):
    """Backdates an order's expiry without running the sweep."""
    async with db.transaction() as session:
        await session.execute(
            update(Order).where(Order.id == order_id).values(expires_at=utcnow() - timedelta(minutes=minutes_ago))
        )
