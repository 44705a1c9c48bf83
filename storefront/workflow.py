"""
workflow.py — Checkout Orchestration

This module converts a customer's cart into an order awaiting payment.
It coordinates the catalog, the order table and the payment provider in the
correct sequence, all inside one database transaction.

Workflow Overview:
1. Load the cart and refuse empty carts
2. Re-validate every line against the current catalog (size entry must still exist)
3. Price the order and re-derive the delivery fee from the stored zone
4. Persist the order (UNPAID / PENDING) with a 30-minute expiry
5. Initialize the charge with the payment provider (REST)
6. Clear the cart; the stock stays reserved, now on behalf of the order

If any step fails the transaction rolls back: no order is stored and the
cart, including its stock reservations, is left untouched.
"""

import uuid
from datetime import timedelta

from sqlalchemy import select

from . import config
from .clients import PaymentClient
from .db import Cart, Database, Order, OrderItem, Product, ProductSize, utcnow
from .delivery import delivery_fee
from .errors import EmptyCart, ProductUnavailable, ValidationError
from .logging_config import get_logger
from .models import CheckoutResult, OrderStatus, PaymentMethod, PaymentStatus

log = get_logger(__name__)


class CheckoutEngine:
    """
    Turns carts into orders.

    Args:
        db (Database): Source of transactional sessions.
        payments (PaymentClient): Payment provider client.
        fee_policy (callable): Location → delivery fee.
        ttl_minutes (int): Lifetime of an unpaid order before the sweep cancels it.
    """

    def __init__(
        self,
        db: Database,
        payments: PaymentClient,
        fee_policy=delivery_fee,
        ttl_minutes: int = config.ORDER_TTL_MINUTES,
    ):
        self.db = db
        self.payments = payments
        self.fee_policy = fee_policy
        self.ttl = timedelta(minutes=ttl_minutes)

    async def checkout(self, customer_id: str, display_name: str) -> CheckoutResult:
        """
        Executes the complete checkout for one customer.

        Stock is not re-checked here: it was reserved line by line when the
        items were added to the cart, and that reservation now carries over
        to the order.

        Args:
            customer_id (str): Owner of the cart.
            display_name (str): Customer name recorded on the order and sent to the provider.

        Returns:
            CheckoutResult: The provider checkout URL, the order id and its payment reference.

        Raises:
            ValidationError: If customer id or name is missing.
            EmptyCart: If the customer has no cart or the cart has no items.
            ProductUnavailable: If a line's product or size was removed from the catalog.
            PaymentGatewayError: If the provider call fails; nothing is persisted.
        """
        if not customer_id:
            raise ValidationError("customerId is required")
        if not display_name:
            raise ValidationError("customerName is required")

        log_prefix = f"[Cart: {customer_id}]"
        log.info(f"{log_prefix} Checkout started.")

        async with self.db.transaction() as session:
            # --- 1. Cart ---
            cart = (
                await session.execute(select(Cart).where(Cart.customer_id == customer_id))
            ).scalar_one_or_none()
            if cart is None or not cart.items:
                raise EmptyCart()

            # --- 2. Re-validate against the catalog ---
            order_items = []
            subtotal = 0
            for item in cart.items:
                row = (
                    await session.execute(
                        select(ProductSize, Product)
                        .join(Product, ProductSize.product_id == Product.id)
                        .where(ProductSize.product_id == item.product_id, ProductSize.size == item.size)
                    )
                ).one_or_none()
                if row is None:
                    log.warning(f"{log_prefix} {item.product_id} ({item.size}ml) vanished from the catalog.")
                    product = await session.get(Product, item.product_id)
                    raise ProductUnavailable(product.name if product else item.product_id, item.size)

                entry, product = row
                log.info(f"{log_prefix} Processing: {product.name} ({item.size}ml) x{item.quantity}")
                subtotal += entry.price * item.quantity
                order_items.append(
                    OrderItem(
                        product_id=product.id,
                        product_name=product.name,
                        size=entry.size,
                        quantity=item.quantity,
                        price=entry.price,
                    )
                )

            # --- 3. Delivery fee, re-derived from the stored zone ---
            fee = self.fee_policy(cart.delivery_location)
            cart.delivery_fee = fee
            total = subtotal + fee

            # --- 4. Order ---
            reference = str(uuid.uuid4())
            order = Order(
                customer_id=customer_id,
                customer_name=display_name,
                items=order_items,
                subtotal=subtotal,
                delivery_location=cart.delivery_location,
                delivery_address=cart.delivery_address,
                delivery_fee=fee,
                total=total,
                payment_status=PaymentStatus.UNPAID.value,
                payment_method=PaymentMethod.KORAPAY.value,
                status=OrderStatus.PENDING.value,
                payment_reference=reference,
                expires_at=utcnow() + self.ttl,
            )
            session.add(order)
            await session.flush()
            log.info(f"[Order: {order.id}] Created for {customer_id}, total {total} (reference {reference}).")

            # --- 5. Payment provider ---
            checkout_url = await self.payments.initialize_charge(
                reference=reference,
                amount=total,
                customer_id=customer_id,
                customer_name=display_name,
                order_id=order.id,
            )
            order.payment_link = checkout_url

            # --- 6. Clear cart ---
            cart.items.clear()
            cart.touch()

        log.info(f"[Order: {order.id}] Checkout complete, awaiting payment.")
        return CheckoutResult(checkoutUrl=checkout_url, orderId=order.id, reference=reference)
