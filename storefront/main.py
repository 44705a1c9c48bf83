"""
main.py — FastAPI Entry Point for the Storefront Service

This module provides the JSON API used by the Telegram shopping bot and the
callback endpoint of the payment provider.

Responsibilities:
    • Cart operations with stock reservation
    • Checkout into orders awaiting payment
    • Payment webhook reconciliation
    • Administrator order and stock management
    • Persisted chat conversation state
    • Start and stop the periodic background jobs (expiry sweep, cart reminders)
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config
from .admin import AdminService
from .cart import CartStore
from .clients import PaymentClient, TelegramNotifier
from .conversations import ConversationStore
from .db import Database
from .errors import StorefrontError
from .inventory import InventoryLedger
from .logging_config import get_logger, setup_logging
from .models import (
    AddToCartRequest,
    CheckoutRequest,
    ConversationStateRequest,
    DeliveryAddressRequest,
    DeliveryLocationRequest,
    OrderStatusUpdateRequest,
    RemoveItemRequest,
    StockUpdateRequest,
    UpdateQuantityRequest,
)
from .payments import PaymentReconciler, WebhookOutcome
from .sweeper import ExpirySweeper, run_periodically
from .workflow import CheckoutEngine

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Oohlalaa Storefront API")


@dataclass
class Services:
    """Everything the routes need, wired around one database and one set of clients."""
    db: Database
    payments: PaymentClient
    notifier: TelegramNotifier
    ledger: InventoryLedger
    carts: CartStore
    checkout: CheckoutEngine
    reconciler: PaymentReconciler
    sweeper: ExpirySweeper
    admin: AdminService
    conversations: ConversationStore
    jobs: List[asyncio.Task] = field(default_factory=list)

    async def close(self):
        for task in self.jobs:
            task.cancel()
        await asyncio.gather(*self.jobs, return_exceptions=True)
        self.jobs.clear()
        await self.payments.aclose()
        await self.notifier.aclose()
        await self.db.dispose()


def build_services(
    db: Optional[Database] = None,
    payments: Optional[PaymentClient] = None,
    notifier: Optional[TelegramNotifier] = None,
    webhook_secret: str = config.KORAPAY_WEBHOOK_SECRET,
    admin_ids: Optional[List[str]] = None,
) -> Services:
    db = db or Database()
    payments = payments or PaymentClient()
    notifier = notifier or TelegramNotifier()
    ledger = InventoryLedger()
    return Services(
        db=db,
        payments=payments,
        notifier=notifier,
        ledger=ledger,
        carts=CartStore(db, ledger),
        checkout=CheckoutEngine(db, payments),
        reconciler=PaymentReconciler(db, ledger, notifier, secret=webhook_secret),
        sweeper=ExpirySweeper(db, ledger, notifier),
        admin=AdminService(db, ledger, notifier, admin_ids=config.ADMIN_TELEGRAM_IDS if admin_ids is None else admin_ids),
        conversations=ConversationStore(db),
    )


def start_jobs(services: Services):
    services.jobs.extend([
        asyncio.create_task(run_periodically(
            "expired-orders", config.EXPIRY_SWEEP_INTERVAL_SECONDS, services.sweeper.cancel_expired_orders
        )),
        asyncio.create_task(run_periodically(
            "abandoned-carts", config.ABANDONED_CART_INTERVAL_SECONDS, services.sweeper.remind_abandoned_carts
        )),
        asyncio.create_task(run_periodically(
            "conversation-purge", config.EXPIRY_SWEEP_INTERVAL_SECONDS, services.conversations.purge_expired
        )),
    ])


# Startup / Shutdown Events
@app.on_event("startup")
async def on_startup():
    """
    FastAPI startup event handler.

    Builds the services (unless they were installed beforehand), creates the
    tables and launches the periodic jobs:
        - expired order sweep every EXPIRY_SWEEP_INTERVAL_SECONDS
        - abandoned cart reminders every ABANDONED_CART_INTERVAL_SECONDS
        - purge of expired conversation state
    """
    log.info("Storefront API starting...")
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    services = app.state.services
    await services.db.create_all()
    start_jobs(services)
    log.info("Background jobs started.")


@app.on_event("shutdown")
async def on_shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.close()
    log.info("Storefront API stopped.")


# Error Handling
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        log.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{where}: {first.get('msg', 'invalid request')}" if where else first.get("msg", "invalid request")
    return JSONResponse(status_code=400, content={"error": message})


def get_services(request: Request) -> Services:
    return request.app.state.services


def admin_services(
    x_telegram_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Services:
    services.admin.authorize(x_telegram_id)
    return services


# Health Check Endpoint
@app.get("/health")
def health_check():
    """Used by monitoring and container orchestrators to verify the service is up."""
    return {"status": "ok"}


# Cart Endpoints
@app.get("/cart/{customer_id}")
async def get_cart(customer_id: str, services: Services = Depends(get_services)):
    return await services.carts.get_cart_view(customer_id)


@app.post("/cart/add")
async def add_to_cart(body: AddToCartRequest, services: Services = Depends(get_services)):
    return await services.carts.add_item(body.customerId, body.productId, body.size, body.quantity)


@app.post("/cart/update")
async def update_quantity(body: UpdateQuantityRequest, services: Services = Depends(get_services)):
    return await services.carts.set_quantity(body.customerId, body.productId, body.size, body.quantity)


@app.post("/cart/remove")
async def remove_item(body: RemoveItemRequest, services: Services = Depends(get_services)):
    return await services.carts.remove_item(body.customerId, body.productId, body.size)


@app.post("/cart/delivery")
async def set_delivery_location(body: DeliveryLocationRequest, services: Services = Depends(get_services)):
    return await services.carts.set_delivery_zone(body.customerId, body.delivery_location)


@app.post("/cart/delivery-address")
async def set_delivery_address(body: DeliveryAddressRequest, services: Services = Depends(get_services)):
    return await services.carts.set_delivery_address(body.customerId, body.delivery_location, body.delivery_address)


@app.post("/cart/checkout", status_code=410)
def deprecated_cart_checkout():
    return JSONResponse(
        status_code=410,
        content={"error": "Deprecated endpoint. Use POST /orders/checkout instead."},
    )


# Checkout Endpoint
@app.post("/orders/checkout", status_code=201)
async def checkout(body: CheckoutRequest, services: Services = Depends(get_services)):
    """
    Converts the customer's cart into an order and returns the payment link.

    Returns:
        dict: checkoutUrl, orderId and reference of the new order.
    """
    return await services.checkout.checkout(body.customerId, body.customerName)


# Payment Webhook Endpoint
@app.post("/payment/webhook")
async def payment_webhook(request: Request, services: Services = Depends(get_services)):
    """
    Receives payment notifications from KoraPay.

    Already processed and irrelevant events are answered with 200 so the
    provider stops retrying; verification and lookup failures keep their
    error status (401 / 404), unexpected failures answer 500.
    """
    raw_body = await request.body()
    signature = request.headers.get("x-korapay-signature")

    try:
        outcome = await services.reconciler.handle_webhook(signature, raw_body)
    except StorefrontError:
        raise
    except Exception as e:
        log.critical(f"Webhook processing failed: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    if outcome in (WebhookOutcome.IGNORED, WebhookOutcome.DUPLICATE):
        return {"received": True}
    if outcome == WebhookOutcome.PAID:
        return {"success": True}
    if outcome == WebhookOutcome.REJECTED_LATE:
        return {"success": False, "reason": "order_cancelled"}
    return {"success": False}


# Admin Endpoints
@app.get("/admin/orders")
async def admin_list_orders(status: Optional[str] = None, services: Services = Depends(admin_services)):
    orders = await services.admin.list_orders(status)
    return {"success": True, "orders": orders}


@app.get("/admin/orders/{order_id}")
async def admin_get_order(order_id: str, services: Services = Depends(admin_services)):
    return {"success": True, "order": await services.admin.get_order(order_id)}


@app.patch("/admin/orders/{order_id}/status")
async def admin_update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    services: Services = Depends(admin_services),
):
    return {"success": True, "order": await services.admin.update_order_status(order_id, body.status)}


@app.patch("/admin/products/{product_id}/stock")
async def admin_update_stock(
    product_id: str,
    body: StockUpdateRequest,
    services: Services = Depends(admin_services),
):
    return {"success": True, "entry": await services.admin.set_stock(product_id, body.size, body.stock)}


@app.get("/admin/stats")
async def admin_stats(services: Services = Depends(admin_services)):
    return await services.admin.stats()


# Conversation State Endpoints
@app.get("/sessions/{customer_id}")
async def get_conversation(customer_id: str, services: Services = Depends(get_services)):
    state = await services.conversations.get(customer_id)
    if state is None:
        return JSONResponse(status_code=404, content={"error": "No active conversation"})
    return state


@app.put("/sessions/{customer_id}")
async def put_conversation(
    customer_id: str,
    body: ConversationStateRequest,
    services: Services = Depends(get_services),
):
    return await services.conversations.set(customer_id, body.step, body.data, body.ttlSeconds)


@app.delete("/sessions/{customer_id}")
async def delete_conversation(customer_id: str, services: Services = Depends(get_services)):
    return {"cleared": await services.conversations.clear(customer_id)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.API_PORT)
