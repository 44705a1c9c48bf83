"""
db.py — Database Layer for the Storefront Service

SQLAlchemy (asyncio) table models plus the `Database` helper that owns the
engine and hands out transactional sessions.

Every operation that touches stock runs inside `Database.transaction()`:
the session is committed when the block exits normally and rolled back when
it raises, so a failed cart mutation or checkout never leaks a partial stock
change. On SQLite, transactions are opened with BEGIN IMMEDIATE so concurrent
writers queue on the database lock instead of failing at commit time.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import NullPool

from . import config
from .errors import StoreBusy
from .logging_config import get_logger
from .models import Category, OrderStatus, PaymentMethod, PaymentStatus

log = get_logger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


def _one_of(column: str, choices, name: str) -> CheckConstraint:
    values = ", ".join(f"'{choice.value}'" for choice in choices)
    return CheckConstraint(f"{column} IN ({values})", name=name)


# --- Catalog ---

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (_one_of("category", Category, "ck_products_category"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    scent_family: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    sizes: Mapped[List["ProductSize"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductSize.size",
        lazy="selectin",
    )


class ProductSize(Base):
    __tablename__ = "product_sizes"
    __table_args__ = (
        UniqueConstraint("product_id", "size", name="uq_product_sizes_product_size"),
        CheckConstraint("stock >= 0", name="ck_product_sizes_stock_non_negative"),
        CheckConstraint("price > 0", name="ck_product_sizes_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped[Product] = relationship(back_populates="sizes")


# --- Carts ---

class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    delivery_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    items: Mapped[List["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy="selectin",
    )

    def find_item(self, product_id: str, size: int) -> Optional["CartItem"]:
        for item in self.items:
            if item.product_id == product_id and item.size == size:
                return item
        return None

    def touch(self):
        """Marks the cart as active again; re-arms the abandoned-cart reminder."""
        self.updated_at = utcnow()
        self.reminder_sent = False


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Weak reference: products may be hard-deleted while a cart still names them.
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    cart: Mapped[Cart] = relationship(back_populates="items")


# --- Orders ---

class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        _one_of("payment_status", PaymentStatus, "ck_orders_payment_status"),
        _one_of("payment_method", PaymentMethod, "ck_orders_payment_method"),
        _one_of("status", OrderStatus, "ck_orders_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PaymentStatus.UNPAID.value)
    payment_reference: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default=PaymentMethod.KORAPAY.value)
    payment_link: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_channel: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=OrderStatus.PENDING.value, index=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


# --- Conversation state ---

class ConversationState(Base):
    __tablename__ = "conversation_states"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    step: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# --- Engine and sessions ---

def _configure_sqlite(engine: AsyncEngine):
    """Takes over BEGIN from the driver so every transaction starts IMMEDIATE."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the async engine and the session factory.

    Args:
        url (str): SQLAlchemy URL. SQLite URLs must point at a file, since
            every session opens its own connection.
        echo (bool): Log emitted SQL.
        busy_timeout (float): Seconds a SQLite writer waits for the database
            lock before giving up with StoreBusy.
    """

    def __init__(
        self,
        url: str = config.DATABASE_URL,
        echo: bool = False,
        busy_timeout: float = config.DB_BUSY_TIMEOUT_SECONDS,
    ):
        self.url = url
        options = {}
        if url.startswith("sqlite"):
            options["poolclass"] = NullPool
            options["connect_args"] = {"timeout": busy_timeout}
        self.engine = create_async_engine(url, echo=echo, **options)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Yields a session inside one transaction: commit on success, rollback on error.

        Raises:
            StoreBusy: If the database stayed locked for longer than the busy timeout.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except OperationalError as e:
            if "locked" not in str(e.orig).lower():
                raise
            log.warning(f"Database lock not acquired: {e.orig}")
            raise StoreBusy() from e

    async def dispose(self):
        await self.engine.dispose()
