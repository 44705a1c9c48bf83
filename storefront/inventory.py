"""
inventory.py — Inventory Ledger

Per-product, per-size stock counts. The ledger never opens its own
transaction: every call receives the caller's session so the stock change
commits or rolls back together with the cart or order change that caused it.

Operations:
    • reserve()   — atomic check-and-decrement (conditional UPDATE)
    • release()   — unconditional increment, the reversal of a reservation
    • set_stock() — absolute stock edit for administrators
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .db import Product, ProductSize
from .errors import InsufficientStock, ProductNotFound, SizeNotFound, ValidationError
from .logging_config import get_logger

log = get_logger(__name__)


class InventoryLedger:
    """Stock reservation and release against the product_sizes table."""

    async def size_entry(self, session: AsyncSession, product_id: str, size: int) -> ProductSize:
        """
        Resolves the size entry for a product.

        Raises:
            ProductNotFound: If no product has this id.
            SizeNotFound: If the product has no entry for this size.
        """
        product = await session.get(Product, product_id)
        if product is None:
            raise ProductNotFound(product_id)

        entry = (
            await session.execute(
                select(ProductSize).where(ProductSize.product_id == product_id, ProductSize.size == size)
            )
        ).scalar_one_or_none()
        if entry is None:
            raise SizeNotFound(product_id, size)
        return entry

    async def reserve(self, session: AsyncSession, product_id: str, size: int, qty: int) -> ProductSize:
        """
        Decrements stock by `qty` if, and only if, at least `qty` units remain.

        The sufficiency check and the decrement are a single UPDATE statement,
        so two transactions racing for the last unit cannot both succeed.

        Args:
            session (AsyncSession): The caller's open transaction.
            product_id (str): Product identifier.
            size (int): Size label, e.g. 10 for 10ml.
            qty (int): Units to reserve; must be positive.

        Returns:
            ProductSize: The resolved size entry (its `stock` attribute is not refreshed).

        Raises:
            ValidationError: If qty is not positive.
            ProductNotFound, SizeNotFound: If the identifiers do not resolve.
            InsufficientStock: If fewer than `qty` units remain.
        """
        if qty <= 0:
            raise ValidationError("Quantity must be positive")

        entry = await self.size_entry(session, product_id, size)
        result = await session.execute(
            update(ProductSize)
            .where(ProductSize.id == entry.id, ProductSize.stock >= qty)
            .values(stock=ProductSize.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            log.info(f"[Stock: {product_id}/{size}] Reservation of {qty} refused, not enough stock.")
            raise InsufficientStock(product_id, size, qty)

        log.debug(f"[Stock: {product_id}/{size}] Reserved {qty}.")
        return entry

    async def release(self, session: AsyncSession, product_id: str, size: int, qty: int):
        """
        Returns `qty` units to stock.

        The ledger does not remember which reservations were already released;
        callers must release each reservation exactly once.

        Raises:
            ProductNotFound, SizeNotFound: If the identifiers do not resolve.
        """
        if qty <= 0:
            return

        entry = await self.size_entry(session, product_id, size)
        await session.execute(
            update(ProductSize)
            .where(ProductSize.id == entry.id)
            .values(stock=ProductSize.stock + qty)
            .execution_options(synchronize_session=False)
        )
        log.debug(f"[Stock: {product_id}/{size}] Released {qty}.")

    async def set_stock(self, session: AsyncSession, product_id: str, size: int, stock: int) -> ProductSize:
        """Overwrites the stock count of a size entry (admin stock edit)."""
        if stock < 0:
            raise ValidationError("Stock cannot be negative")

        entry = await self.size_entry(session, product_id, size)
        await session.execute(
            update(ProductSize)
            .where(ProductSize.id == entry.id)
            .values(stock=stock)
            .execution_options(synchronize_session=False)
        )
        await session.refresh(entry)
        log.info(f"[Stock: {product_id}/{size}] Stock set to {stock} by admin.")
        return entry

    async def stock_of(self, session: AsyncSession, product_id: str, size: int) -> int:
        """Current stock as stored in the database."""
        entry = await self.size_entry(session, product_id, size)
        await session.refresh(entry, attribute_names=["stock"])
        return entry.stock
