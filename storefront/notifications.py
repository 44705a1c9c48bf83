"""Notification texts sent to customers and administrators."""

from . import config
from .db import Order


def _money(amount: int) -> str:
    return f"{config.CURRENCY_SYMBOL}{amount}"


def _item_lines(order: Order) -> str:
    return "".join(f"\n• {item.product_name} ({item.size}ml) x{item.quantity}" for item in order.items)


def payment_confirmed(order: Order) -> str:
    return (
        "✅ *Payment Confirmed!*\n\n"
        f"🧾 Order ID: `{order.id}`\n"
        f"📦 Items:{_item_lines(order)}\n"
        f"💰 Total: {_money(order.total)}\n"
        f"🚚 Delivery: {order.delivery_address}"
    )


def payment_failed(order: Order) -> str:
    return "❌ *Payment Failed*\nYour order was cancelled. You can try again anytime."


def new_paid_order(order: Order) -> str:
    return (
        "📦 *New Paid Order!*\n\n"
        f"Customer: {order.customer_name or order.customer_id}\n"
        f"Telegram ID: {order.customer_id}\n"
        f"🧾 Order ID: `{order.id}`\n"
        f"📦 Items: {_item_lines(order)}\n"
        f"💰 Total: {_money(order.total)}\n"
        f"🚚 Delivery: {order.delivery_address}\n\n"
        "Check the admin dashboard to process the order."
    )


def late_payment(order: Order) -> str:
    return (
        "⚠️ *Payment received for a cancelled order*\n\n"
        f"🧾 Order ID: `{order.id}`\n"
        f"Reference: `{order.payment_reference}`\n"
        f"Customer: {order.customer_name or order.customer_id} ({order.customer_id})\n"
        f"💰 Amount: {_money(order.total)}\n\n"
        "The reservation had already expired. Please refund the customer."
    )


def order_expired(order: Order) -> str:
    return (
        "⏰ *Your order has expired!*\n\n"
        f"Your payment link expired after {config.ORDER_TTL_MINUTES} minutes.\n\n"
        "Good news: The items are back in stock! 🎉\n\n"
        f"Your order:{_item_lines(order)}\n\n"
        f"*Total: {_money(order.total)}*\n\n"
        "Want to complete your purchase?"
    )


def order_status_changed(order: Order) -> str:
    return f"📦 Your order `{order.id}` is now *{order.status}*."


def abandoned_cart(lines: list, subtotal: int) -> str:
    items = "\n".join(f"• {name} ({size}ml) x{quantity}" for name, size, quantity in lines)
    return (
        "👋 *Still thinking about your order?*\n\n"
        f"You left these items in your cart:\n{items}\n\n"
        f"*Subtotal: {_money(subtotal)}*\n\n"
        "Don't miss out! Complete your order now. 💛"
    )
