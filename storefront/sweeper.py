"""
sweeper.py — Periodic Background Jobs

Jobs:
    • ExpirySweeper.cancel_expired_orders() — every 5 minutes, cancels unpaid
      orders past their expiry and returns their reserved stock
    • ExpirySweeper.remind_abandoned_carts() — every 6 hours, nudges customers
      whose cart has been sitting untouched for a day
    • run_periodically() — the loop that drives a job on a fixed interval

Each expired order is cancelled in its own transaction: one order failing
is logged and the sweep moves on to the next.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select

from . import config, notifications
from .clients import TelegramNotifier
from .db import Cart, Database, Order, Product, utcnow
from .inventory import InventoryLedger
from .logging_config import get_logger
from .models import OrderStatus, PaymentStatus
from .payments import release_order_stock

log = get_logger(__name__)


def _is_expired(order: Order, now: datetime) -> bool:
    return (
        order.payment_status == PaymentStatus.UNPAID.value
        and order.status != OrderStatus.CANCELLED.value
        and order.expires_at is not None
        and order.expires_at < now
    )


class ExpirySweeper:
    """
    Reclaims stock from unpaid orders and reminds idle carts.

    Args:
        db (Database): Source of transactional sessions.
        ledger (InventoryLedger): Receives the released stock.
        notifier (TelegramNotifier): Customer notifications.
        abandoned_after_hours (int): Idle time before a cart counts as abandoned.
    """

    def __init__(
        self,
        db: Database,
        ledger: InventoryLedger,
        notifier: TelegramNotifier,
        abandoned_after_hours: int = config.ABANDONED_CART_AFTER_HOURS,
    ):
        self.db = db
        self.ledger = ledger
        self.notifier = notifier
        self.abandoned_after = timedelta(hours=abandoned_after_hours)

    async def cancel_expired_orders(self, now: Optional[datetime] = None) -> List[str]:
        """
        Cancels every unpaid, uncancelled order whose expiry has passed.

        Args:
            now (datetime | None): Reference time (naive UTC); defaults to the current time.

        Returns:
            List[str]: Ids of the orders cancelled by this run.
        """
        now = now or utcnow()
        log.info("Checking for expired unpaid orders...")

        async with self.db.transaction() as session:
            order_ids = (
                await session.execute(
                    select(Order.id).where(
                        Order.payment_status == PaymentStatus.UNPAID.value,
                        Order.status != OrderStatus.CANCELLED.value,
                        Order.expires_at < now,
                    )
                )
            ).scalars().all()

        if not order_ids:
            log.info("No expired orders found.")
            return []

        log.info(f"Found {len(order_ids)} expired orders to cancel...")
        cancelled = []
        for order_id in order_ids:
            try:
                order = await self._cancel_one(order_id, now)
            except Exception:
                log.exception(f"[Order: {order_id}] Expiry cancellation failed, continuing with the next order.")
                continue
            if order is None:
                continue

            cancelled.append(order.id)
            if await self.notifier.notify_user(order.customer_id, notifications.order_expired(order)):
                log.info(f"[Order: {order.id}] Sent expiry notice to {order.customer_id}.")

        log.info(f"Cancelled {len(cancelled)} expired orders.")
        return cancelled

    async def _cancel_one(self, order_id: str, now: datetime) -> Optional[Order]:
        async with self.db.transaction() as session:
            order = await session.get(Order, order_id)
            # Re-checked inside the transaction: a webhook may have settled it since the scan.
            if order is None or not _is_expired(order, now):
                return None

            await release_order_stock(self.ledger, session, order)
            order.status = OrderStatus.CANCELLED.value
            order.payment_status = PaymentStatus.FAILED.value
            log.info(f"[Order: {order.id}] Cancelled (timeout).")
            return order

    async def remind_abandoned_carts(self, now: Optional[datetime] = None) -> List[str]:
        """
        Sends one reminder per idle, non-empty cart.

        Returns:
            List[str]: Customer ids that were reminded.
        """
        now = now or utcnow()
        cutoff = now - self.abandoned_after
        log.info("Checking for abandoned carts...")

        async with self.db.transaction() as session:
            carts = (
                await session.execute(
                    select(Cart).where(
                        Cart.updated_at <= cutoff,
                        Cart.reminder_sent.is_(False),
                        Cart.items.any(),
                    )
                )
            ).scalars().all()

            product_ids = {item.product_id for cart in carts for item in cart.items}
            names = {}
            if product_ids:
                rows = await session.execute(select(Product.id, Product.name).where(Product.id.in_(product_ids)))
                names = {product_id: name for product_id, name in rows}

        reminded = []
        for cart in carts:
            lines = [(names.get(i.product_id, i.product_id), i.size, i.quantity) for i in cart.items]
            subtotal = sum(i.price * i.quantity for i in cart.items)
            if not await self.notifier.notify_user(cart.customer_id, notifications.abandoned_cart(lines, subtotal)):
                continue

            async with self.db.transaction() as session:
                fresh = await session.get(Cart, cart.id)
                if fresh is not None:
                    fresh.reminder_sent = True
            reminded.append(cart.customer_id)
            log.info(f"[Cart: {cart.customer_id}] Sent abandoned cart reminder.")

        log.info(f"Sent {len(reminded)} abandoned cart reminders.")
        return reminded


async def run_periodically(name: str, interval_seconds: float, job: Callable[[], Awaitable[object]]):
    """
    Runs `job` forever, every `interval_seconds`.

    A failing run is logged and the loop carries on with the next tick. The
    loop only ends when its task is cancelled.
    """
    log.info(f"[Job: {name}] Scheduled every {interval_seconds}s.")
    while True:
        try:
            await job()
        except Exception as e:
            log.error(f"[Job: {name}] Run failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)
