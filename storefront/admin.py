"""
admin.py — Administrator Operations

Order fulfilment management, stock edits and shop statistics. Fulfilment
status only moves along the transitions listed in ALLOWED_TRANSITIONS;
CANCELLED and DELIVERED are terminal.
"""

from typing import Iterable, List, Optional

from sqlalchemy import func, select

from . import config, notifications
from .clients import TelegramNotifier
from .db import Database, Order, Product
from .errors import AdminRequired, InvalidTransition, OrderNotFound, ValidationError
from .inventory import InventoryLedger
from .logging_config import get_logger
from .models import OrderItemView, OrderStatus, OrderView, PaymentStatus, StatsView
from .payments import release_order_stock

log = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def order_view(order: Order) -> OrderView:
    return OrderView(
        id=order.id,
        customerId=order.customer_id,
        customerName=order.customer_name,
        items=[
            OrderItemView(
                productId=item.product_id,
                productName=item.product_name,
                size=item.size,
                quantity=item.quantity,
                price=item.price,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        delivery_location=order.delivery_location,
        delivery_address=order.delivery_address,
        delivery_fee=order.delivery_fee,
        total=order.total,
        paymentStatus=order.payment_status,
        paymentReference=order.payment_reference,
        paymentMethod=order.payment_method,
        paymentLink=order.payment_link,
        paymentChannel=order.payment_channel,
        paidAt=order.paid_at,
        status=order.status,
        expiresAt=order.expires_at,
        createdAt=order.created_at,
    )


def require_admin(telegram_id: Optional[str], admin_ids: Iterable[str] = config.ADMIN_TELEGRAM_IDS):
    """
    Raises:
        AdminRequired: 401 without an identity, 403 for an identity that is not an administrator.
    """
    if not telegram_id:
        raise AdminRequired()
    if str(telegram_id) not in set(admin_ids):
        raise AdminRequired("Forbidden", status_code=403)


class AdminService:
    def __init__(
        self,
        db: Database,
        ledger: InventoryLedger,
        notifier: TelegramNotifier,
        admin_ids: Iterable[str] = config.ADMIN_TELEGRAM_IDS,
    ):
        self.db = db
        self.ledger = ledger
        self.notifier = notifier
        self.admin_ids = list(admin_ids)

    def authorize(self, telegram_id: Optional[str]):
        require_admin(telegram_id, self.admin_ids)

    async def list_orders(self, status: Optional[str] = None, limit: int = 50) -> List[OrderView]:
        query = select(Order).order_by(Order.created_at.desc()).limit(limit)
        if status:
            query = query.where(Order.status == _parse_status(status).value)

        async with self.db.transaction() as session:
            orders = (await session.execute(query)).scalars().all()
            return [order_view(order) for order in orders]

    async def get_order(self, order_id: str) -> OrderView:
        async with self.db.transaction() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise OrderNotFound(order_id)
            return order_view(order)

    async def update_order_status(self, order_id: str, status: str) -> OrderView:
        """
        Moves an order to a new fulfilment status.

        Cancelling returns the order's stock; an unpaid order cancelled this
        way is also marked FAILED. The customer is notified after commit.

        Raises:
            ValidationError: If `status` is not a known fulfilment status.
            OrderNotFound: If the order does not exist.
            InvalidTransition: If the move is not allowed from the current status.
        """
        target = _parse_status(status)

        async with self.db.transaction() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise OrderNotFound(order_id)

            current = OrderStatus(order.status)
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransition(current.value, target.value)

            if target == OrderStatus.CANCELLED:
                await release_order_stock(self.ledger, session, order)
                if order.payment_status == PaymentStatus.UNPAID.value:
                    order.payment_status = PaymentStatus.FAILED.value
                order.expires_at = None

            order.status = target.value
            log.info(f"[Order: {order.id}] Status {current.value} -> {target.value} by admin.")
            view = order_view(order)

        await self.notifier.notify_user(order.customer_id, notifications.order_status_changed(order))
        return view

    async def set_stock(self, product_id: str, size: int, stock: int) -> dict:
        async with self.db.transaction() as session:
            entry = await self.ledger.set_stock(session, product_id, size, stock)
            return {"productId": product_id, "size": entry.size, "price": entry.price, "stock": entry.stock}

    async def stats(self) -> StatsView:
        async with self.db.transaction() as session:
            total_products = await session.scalar(select(func.count()).select_from(Product))
            total_orders = await session.scalar(select(func.count()).select_from(Order))
            revenue = await session.scalar(
                select(func.coalesce(func.sum(Order.total), 0)).where(
                    Order.payment_status == PaymentStatus.PAID.value
                )
            )
            by_status = dict(
                (await session.execute(select(Order.status, func.count()).group_by(Order.status))).all()
            )

        return StatsView(
            totalProducts=total_products,
            totalOrders=total_orders,
            totalRevenue=revenue,
            processingOrders=by_status.get(OrderStatus.PROCESSING.value, 0),
            shippedOrders=by_status.get(OrderStatus.SHIPPED.value, 0),
            deliveredOrders=by_status.get(OrderStatus.DELIVERED.value, 0),
            cancelledOrders=by_status.get(OrderStatus.CANCELLED.value, 0),
        )


def _parse_status(status: str) -> OrderStatus:
    try:
        return OrderStatus(status.upper())
    except ValueError:
        raise ValidationError(f"Unknown order status: {status}") from None
