"""
payments.py — Payment Webhook Reconciliation

Applies payment provider callbacks to orders exactly once.

Behavior:
    • The HMAC-SHA256 signature over the raw request body is verified first
    • Only `charge.success` events are processed; anything else is acknowledged and ignored
    • A duplicate delivery for an already paid order is a no-op
    • A failed charge cancels the order and returns its reserved stock
    • A successful charge for an order the expiry sweep already cancelled is
      not honoured; administrators are asked to refund it
"""

import hashlib
import hmac
import json
from enum import Enum
from typing import Optional

from sqlalchemy import select

from . import config, notifications
from .clients import TelegramNotifier
from .db import Database, Order, utcnow
from .errors import InvalidSignature, NotFoundError, OrderNotFound, ValidationError
from .inventory import InventoryLedger
from .logging_config import get_logger
from .models import OrderStatus, PaymentStatus

log = get_logger(__name__)

SUCCESS_EVENT = "charge.success"
SUCCESS_STATUS = "success"
PAYMENT_CHANNEL = "KORAPAY"


class WebhookOutcome(str, Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    PAID = "paid"
    FAILED = "failed"
    REJECTED_LATE = "rejected_late"


def sign_payload(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body, as sent in the x-korapay-signature header."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    if not secret:
        log.error("KORAPAY_WEBHOOK_SECRET is not set, rejecting webhook.")
        return False
    if not signature:
        return False
    expected = sign_payload(raw_body, secret).encode()
    # Header values are latin-1 decoded and may hold non-ASCII characters.
    return hmac.compare_digest(expected, signature.encode("utf-8", "surrogateescape"))


async def release_order_stock(ledger: InventoryLedger, session, order: Order):
    """Returns every line of an order to stock; lines whose catalog entry vanished are skipped."""
    for item in order.items:
        try:
            await ledger.release(session, item.product_id, item.size, item.quantity)
            log.info(f"[Order: {order.id}] Restored {item.quantity}x {item.product_name} ({item.size}ml).")
        except NotFoundError:
            log.warning(
                f"[Order: {order.id}] {item.product_name} ({item.size}ml) no longer in catalog, "
                f"{item.quantity} unit(s) not restored."
            )


class PaymentReconciler:
    """
    Webhook handler for the payment provider.

    Args:
        db (Database): Source of transactional sessions.
        ledger (InventoryLedger): Used to return stock of failed orders.
        notifier (TelegramNotifier): Customer and admin notifications.
        secret (str): Shared webhook secret.
    """

    def __init__(
        self,
        db: Database,
        ledger: InventoryLedger,
        notifier: TelegramNotifier,
        secret: str = config.KORAPAY_WEBHOOK_SECRET,
    ):
        self.db = db
        self.ledger = ledger
        self.notifier = notifier
        self.secret = secret

    async def handle_webhook(self, signature: Optional[str], raw_body: bytes) -> WebhookOutcome:
        """
        Verifies and applies one webhook delivery.

        Args:
            signature (str | None): Value of the x-korapay-signature header.
            raw_body (bytes): The request body exactly as received.

        Returns:
            WebhookOutcome: What the delivery did to the order.

        Raises:
            ValidationError: If signature or `data` is missing, or the body is not JSON.
            InvalidSignature: If the HMAC does not match.
            OrderNotFound: If no order carries the reference.
        """
        if not signature:
            raise ValidationError("Invalid payload or missing signature")
        if not verify_signature(raw_body, signature, self.secret):
            raise InvalidSignature()

        try:
            payload = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Invalid payload or missing signature") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ValidationError("Invalid payload or missing signature")

        event = payload.get("event")
        if event != SUCCESS_EVENT:
            log.info(f"[Webhook] Ignoring event '{event}'.")
            return WebhookOutcome.IGNORED

        reference = data.get("reference")
        status = data.get("status")

        async with self.db.transaction() as session:
            order = (
                await session.execute(select(Order).where(Order.payment_reference == reference))
            ).scalar_one_or_none()
            if order is None:
                log.error(f"[Webhook] Order not found for reference: {reference}")
                raise OrderNotFound(str(reference))

            log_prefix = f"[Order: {order.id}]"

            if order.payment_status == PaymentStatus.PAID.value:
                log.info(f"{log_prefix} Duplicate payment confirmation ignored.")
                return WebhookOutcome.DUPLICATE

            if order.status == OrderStatus.CANCELLED.value:
                # Stock was already returned by the sweep or an earlier failure.
                if status == SUCCESS_STATUS:
                    log.warning(f"{log_prefix} Payment arrived after cancellation, refund required.")
                    outcome = WebhookOutcome.REJECTED_LATE
                else:
                    log.info(f"{log_prefix} Failure notice for an already cancelled order ignored.")
                    return WebhookOutcome.DUPLICATE
            elif status == SUCCESS_STATUS:
                order.payment_status = PaymentStatus.PAID.value
                order.status = OrderStatus.PROCESSING.value
                order.paid_at = utcnow()
                order.payment_channel = PAYMENT_CHANNEL
                order.expires_at = None
                log.info(f"{log_prefix} Payment confirmed.")
                outcome = WebhookOutcome.PAID
            else:
                await release_order_stock(self.ledger, session, order)
                order.payment_status = PaymentStatus.FAILED.value
                order.status = OrderStatus.CANCELLED.value
                order.expires_at = None
                log.info(f"{log_prefix} Payment failed (status '{status}'), order cancelled.")
                outcome = WebhookOutcome.FAILED

        await self._notify(order, outcome)
        return outcome

    async def _notify(self, order: Order, outcome: WebhookOutcome):
        if outcome == WebhookOutcome.PAID:
            await self.notifier.notify_user(order.customer_id, notifications.payment_confirmed(order))
            await self.notifier.notify_admins(notifications.new_paid_order(order))
        elif outcome == WebhookOutcome.FAILED:
            await self.notifier.notify_user(order.customer_id, notifications.payment_failed(order))
        elif outcome == WebhookOutcome.REJECTED_LATE:
            await self.notifier.notify_admins(notifications.late_payment(order))
