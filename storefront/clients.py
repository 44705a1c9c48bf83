"""
This module provides communication clients for the external systems used by the storefront:
- Payment provider (KoraPay REST API)
- Telegram Bot API (customer and administrator notifications)
Each class encapsulates its protocol logic, error handling, and connection management.
"""

from typing import Iterable, Optional

import httpx

from . import config
from .errors import PaymentGatewayError
from .logging_config import get_logger

log = get_logger(__name__)


# --- Payment Client (REST) ---
class PaymentClient:
    """
    Client for the KoraPay charge API.
    Initializes hosted checkout charges for new orders.
    """
    def __init__(
        self,
        base_url: str = config.KORAPAY_BASE_URL,
        secret_key: str = config.KORAPAY_SECRET_KEY,
        redirect_url: str = config.KORAPAY_REDIRECT_URL,
        notification_url: str = config.KORAPAY_WEBHOOK_URL,
        currency: str = config.PAYMENT_CURRENCY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initializes the HTTP client with a bounded timeout configuration.

        Args:
            transport: Optional httpx transport, used to stub the provider in tests.
        """
        self.redirect_url = redirect_url
        self.notification_url = notification_url
        self.currency = currency
        timeout_config = httpx.Timeout(config.PAYMENT_CONNECT_TIMEOUT_SECONDS, read=config.PAYMENT_READ_TIMEOUT_SECONDS)
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_config,
            headers={"Authorization": f"Bearer {secret_key}"},
            transport=transport,
        )

    async def aclose(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def initialize_charge(
        self,
        reference: str,
        amount: int,
        customer_id: str,
        customer_name: str,
        order_id: str,
    ) -> str:
        """
        Creates a hosted checkout charge for an order.

        Args:
            reference (str): Unique payment reference of the order.
            amount (int): Amount to charge in the store currency.
            customer_id (str): Telegram id of the customer.
            customer_name (str): Display name shown on the checkout page.
            order_id (str): Order identifier, echoed back in the webhook metadata.

        Returns:
            str: The checkout URL the customer must open to pay.

        Raises:
            PaymentGatewayError: On timeout, transport failure, an error status,
                or a response without a checkout URL.
        """
        payload = {
            "amount": amount,
            "currency": self.currency,
            "reference": reference,
            "redirect_url": self.redirect_url,
            "notification_url": self.notification_url,
            "narration": config.PAYMENT_NARRATION,
            "customer": {
                "email": f"{customer_id}@{config.CUSTOMER_EMAIL_DOMAIN}",
                "name": customer_name,
            },
            "metadata": {"telegramId": customer_id, "orderId": order_id},
        }

        try:
            response = await self.client.post("/merchant/api/v1/charges/initialize", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            log.error(f"[Order: {order_id}] Payment provider timeout ({type(e).__name__}).")
            raise PaymentGatewayError("Payment provider timed out") from e
        except httpx.HTTPStatusError as e:
            log.error(f"[Order: {order_id}] Payment provider returned HTTP {e.response.status_code}: {e.response.text}")
            raise PaymentGatewayError(f"Payment provider rejected the charge (HTTP {e.response.status_code})") from e
        except (httpx.HTTPError, ValueError) as e:
            log.error(f"[Order: {order_id}] Payment provider request failed: {e}")
            raise PaymentGatewayError("Payment provider unreachable") from e

        checkout_url = (body.get("data") or {}).get("checkout_url")
        if not checkout_url:
            log.error(f"[Order: {order_id}] Payment provider answered without checkout_url: {body}")
            raise PaymentGatewayError("KoraPay checkout URL not returned")

        log.info(f"[Order: {order_id}] Charge initialized (reference {reference}).")
        return checkout_url


# --- Telegram Notifier (REST) ---
class TelegramNotifier:
    """
    Sends chat messages through the Telegram Bot API.

    Notifications are fire-and-forget: delivery failures are logged and
    reported through the return value, never raised, so they cannot undo
    the state change that triggered them.
    """
    def __init__(
        self,
        bot_token: str = config.BOT_TOKEN,
        admin_ids: Iterable[str] = config.ADMIN_TELEGRAM_IDS,
        api_url: str = config.TELEGRAM_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.admin_ids = list(admin_ids)
        self.client = httpx.AsyncClient(
            base_url=f"{api_url}/bot{bot_token}",
            timeout=httpx.Timeout(5.0),
            transport=transport,
        )

    async def aclose(self):
        await self.client.aclose()

    async def notify_user(self, chat_id: str, text: str) -> bool:
        """
        Sends a Markdown message to one chat.

        Returns:
            bool: True if Telegram accepted the message.
        """
        try:
            response = await self.client.post(
                "/sendMessage",
                json={"chat_id": chat_id, "text": text, "parse_mode": "Markdown"},
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            log.error(f"[Notify: {chat_id}] Telegram delivery failed: {e}")
            return False

    async def notify_admins(self, text: str) -> int:
        """Sends a message to every configured administrator; returns how many were delivered."""
        if not self.admin_ids:
            log.warning("No admin ids configured, admin notification dropped.")
            return 0

        delivered = 0
        for admin_id in self.admin_ids:
            if await self.notify_user(admin_id, text):
                delivered += 1
        return delivered
