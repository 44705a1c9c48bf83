"""
cart.py — Cart Store

One cart per customer. Every mutation that changes a quantity is paired with
an inventory reservation or release in the same transaction, so the stock
held by a cart always equals the sum of its line quantities.

Prices are captured when a line is first added and are not re-derived from
the catalog afterwards.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Cart, CartItem, Database, Product
from .delivery import delivery_fee
from .errors import (
    CartItemNotFound,
    CartNotFound,
    InsufficientStock,
    NotFoundError,
    OutOfStock,
    ProductNotFound,
    ProductUnavailable,
    ValidationError,
)
from .inventory import InventoryLedger
from .logging_config import get_logger
from .models import CartLineView, CartView

log = get_logger(__name__)


class CartStore:
    """
    Customer carts backed by the carts/cart_items tables.

    Args:
        db (Database): Source of transactional sessions.
        ledger (InventoryLedger): Stock reservations for every quantity change.
        fee_policy (callable): Location → delivery fee; defaults to the configured zone table.
    """

    def __init__(self, db: Database, ledger: InventoryLedger, fee_policy=delivery_fee):
        self.db = db
        self.ledger = ledger
        self.fee_policy = fee_policy

    # --- Queries ---

    async def get_cart_view(self, customer_id: str) -> CartView:
        """Returns the cart summary, or the empty shape when the customer has no cart."""
        async with self.db.transaction() as session:
            cart = await self._find(session, customer_id)
            if cart is None:
                return CartView(customerId=customer_id)
            return await self._view(session, cart)

    # --- Line items ---

    async def add_item(self, customer_id: str, product_id: str, size: int, qty: int = 1) -> CartView:
        """
        Reserves `qty` units and adds them to the customer's cart.

        An existing line for the same product and size is incremented and
        keeps its original price; otherwise a new line is appended at the
        current catalog price.

        Raises:
            ValidationError: If qty is not positive.
            ProductNotFound, SizeNotFound: If the product or size does not exist.
            ProductUnavailable: If the product has been deactivated.
            OutOfStock: If the reservation cannot be covered.
        """
        if qty <= 0:
            raise ValidationError("Quantity must be positive")

        async with self.db.transaction() as session:
            product = await session.get(Product, product_id)
            if product is None:
                raise ProductNotFound(product_id)
            if not product.is_active:
                raise ProductUnavailable(product.name, size)

            try:
                entry = await self.ledger.reserve(session, product_id, size, qty)
            except InsufficientStock as e:
                raise OutOfStock(product.name, size) from e

            cart = await self._find(session, customer_id)
            if cart is None:
                cart = Cart(customer_id=customer_id, delivery_fee=0, items=[])
                session.add(cart)

            item = cart.find_item(product_id, size)
            if item is not None:
                item.quantity += qty
            else:
                cart.items.append(CartItem(product_id=product_id, size=size, quantity=qty, price=entry.price))
            cart.touch()
            await session.flush()

            log.info(f"[Cart: {customer_id}] Added {qty}x {product.name} ({size}ml).")
            return await self._view(session, cart)

    async def set_quantity(self, customer_id: str, product_id: str, size: int, new_qty: int) -> CartView:
        """
        Sets a line to `new_qty`, reserving or releasing only the difference.

        A quantity of zero or less releases the whole line and removes it.

        Raises:
            CartNotFound, CartItemNotFound: If there is nothing to update.
            OutOfStock: If an increase cannot be covered.
        """
        async with self.db.transaction() as session:
            cart = await self._require(session, customer_id)
            item = cart.find_item(product_id, size)
            if item is None:
                raise CartItemNotFound(product_id, size)

            if new_qty <= 0:
                await self._release_line(session, customer_id, item)
                cart.items.remove(item)
                log.info(f"[Cart: {customer_id}] Removed {product_id} ({size}ml) via quantity 0.")
            else:
                delta = new_qty - item.quantity
                if delta > 0:
                    try:
                        await self.ledger.reserve(session, product_id, size, delta)
                    except InsufficientStock as e:
                        product = await session.get(Product, product_id)
                        raise OutOfStock(product.name if product else product_id, size) from e
                elif delta < 0:
                    await self.ledger.release(session, product_id, size, -delta)
                item.quantity = new_qty
                log.info(f"[Cart: {customer_id}] {product_id} ({size}ml) set to {new_qty} (delta {delta}).")

            cart.touch()
            await session.flush()
            return await self._view(session, cart)

    async def remove_item(self, customer_id: str, product_id: str, size: int) -> CartView:
        """Releases a line's full quantity and deletes the line."""
        async with self.db.transaction() as session:
            cart = await self._require(session, customer_id)
            item = cart.find_item(product_id, size)
            if item is None:
                raise CartItemNotFound(product_id, size)

            await self._release_line(session, customer_id, item)
            cart.items.remove(item)
            cart.touch()
            await session.flush()

            log.info(f"[Cart: {customer_id}] Removed {product_id} ({size}ml).")
            return await self._view(session, cart)

    # --- Delivery ---

    async def set_delivery_zone(self, customer_id: str, zone: str) -> CartView:
        """Stores the delivery zone (creating the cart if needed) and recomputes the fee."""
        if not zone:
            raise ValidationError("delivery_location is required")

        async with self.db.transaction() as session:
            cart = await self._find(session, customer_id)
            if cart is None:
                cart = Cart(customer_id=customer_id, items=[])
                session.add(cart)

            cart.delivery_location = zone
            cart.delivery_fee = self.fee_policy(zone)
            cart.touch()
            await session.flush()

            log.info(f"[Cart: {customer_id}] Delivery zone '{zone}', fee {cart.delivery_fee}.")
            return await self._view(session, cart)

    async def set_delivery_address(self, customer_id: str, zone: Optional[str], address: str) -> CartView:
        """
        Stores the delivery address; the zone is kept from the cart when not given.

        Raises:
            ValidationError: If the address is empty.
            CartNotFound: If the customer has no cart yet.
        """
        if not address:
            raise ValidationError("delivery_address is required")

        async with self.db.transaction() as session:
            cart = await self._require(session, customer_id)
            cart.delivery_location = zone or cart.delivery_location
            cart.delivery_address = address
            cart.delivery_fee = self.fee_policy(cart.delivery_location)
            cart.touch()
            await session.flush()

            log.info(f"[Cart: {customer_id}] Delivery address set, fee {cart.delivery_fee}.")
            return await self._view(session, cart)

    # --- Helpers ---

    async def _find(self, session: AsyncSession, customer_id: str) -> Optional[Cart]:
        return (
            await session.execute(select(Cart).where(Cart.customer_id == customer_id))
        ).scalar_one_or_none()

    async def _require(self, session: AsyncSession, customer_id: str) -> Cart:
        cart = await self._find(session, customer_id)
        if cart is None:
            raise CartNotFound(customer_id)
        return cart

    async def _release_line(self, session: AsyncSession, customer_id: str, item: CartItem):
        try:
            await self.ledger.release(session, item.product_id, item.size, item.quantity)
        except NotFoundError:
            # Product or size deleted from the catalog; there is no stock row to return to.
            log.warning(
                f"[Cart: {customer_id}] {item.product_id} ({item.size}ml) no longer in catalog, "
                f"dropping line without release."
            )

    async def _view(self, session: AsyncSession, cart: Cart) -> CartView:
        product_ids = {item.product_id for item in cart.items}
        names = {}
        if product_ids:
            rows = await session.execute(select(Product.id, Product.name).where(Product.id.in_(product_ids)))
            names = {product_id: name for product_id, name in rows}

        lines = [
            CartLineView(
                productId=item.product_id,
                productName=names.get(item.product_id),
                size=item.size,
                quantity=item.quantity,
                price=item.price,
                lineTotal=item.price * item.quantity,
            )
            for item in cart.items
        ]
        subtotal = sum(line.lineTotal for line in lines)
        fee = self.fee_policy(cart.delivery_location)
        return CartView(
            customerId=cart.customer_id,
            items=lines,
            delivery_location=cart.delivery_location,
            delivery_address=cart.delivery_address,
            subtotal=subtotal,
            delivery_fee=fee,
            total=subtotal + fee,
        )
