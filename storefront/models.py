"""
models.py — Data Models for the Storefront API

This module defines the enumerations shared by the database layer and the
services, and the Pydantic models used to validate incoming requests and to
shape outgoing responses.

Models:
    - Request bodies for cart, checkout, admin and conversation endpoints
    - Views returned by the cart store, checkout engine and admin service
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


class Category(str, Enum):
    CLASSIC = "classic"
    PREMIUM = "premium"
    LUXURY = "luxury"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    KORAPAY = "KORAPAY"
    TRANSFER = "TRANSFER"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# --- Requests ---

class CustomerRequest(BaseModel):
    """
    Base for every request that names a customer.

    Chat front ends send numeric ids, so `customerId` is coerced to a string
    before validation.
    """
    customerId: str = Field(..., min_length=1)

    @field_validator("customerId", mode="before")
    @classmethod
    def _coerce_customer_id(cls, value):
        if isinstance(value, int):
            return str(value)
        return value


class AddToCartRequest(CustomerRequest):
    productId: str
    size: int
    quantity: int = Field(1, gt=0)


class UpdateQuantityRequest(CustomerRequest):
    productId: str
    size: int
    quantity: int


class RemoveItemRequest(CustomerRequest):
    productId: str
    size: int


class DeliveryLocationRequest(CustomerRequest):
    delivery_location: str = Field(..., min_length=1)


class DeliveryAddressRequest(CustomerRequest):
    delivery_location: Optional[str] = None
    delivery_address: str = Field(..., min_length=1)


class CheckoutRequest(CustomerRequest):
    customerName: str = Field(..., min_length=1)


class StockUpdateRequest(BaseModel):
    size: int
    stock: int = Field(..., ge=0)


class OrderStatusUpdateRequest(BaseModel):
    status: str = Field(..., min_length=1)


class ConversationStateRequest(BaseModel):
    step: str = Field(..., min_length=1)
    data: dict = Field(default_factory=dict)
    ttlSeconds: Optional[int] = Field(None, gt=0)


# --- Views ---

class CartLineView(BaseModel):
    productId: str
    productName: Optional[str] = None
    size: int
    quantity: int
    price: int
    lineTotal: int


class CartView(BaseModel):
    """
    Customer-facing cart summary.

    Attributes:
        items (List[CartLineView]): Line items in the order they were added.
        subtotal (int): Sum of price × quantity over all lines.
        delivery_fee (int): Fee derived from the stored delivery zone.
        total (int): subtotal + delivery_fee.
    """
    customerId: str
    items: List[CartLineView] = []
    delivery_location: Optional[str] = None
    delivery_address: Optional[str] = None
    subtotal: int = 0
    delivery_fee: int = 0
    total: int = 0


class CheckoutResult(BaseModel):
    checkoutUrl: str
    orderId: str
    reference: str


class OrderItemView(BaseModel):
    productId: str
    productName: Optional[str] = None
    size: int
    quantity: int
    price: int


class OrderView(BaseModel):
    id: str
    customerId: str
    customerName: Optional[str] = None
    items: List[OrderItemView]
    subtotal: int
    delivery_location: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_fee: int
    total: int
    paymentStatus: PaymentStatus
    paymentReference: str
    paymentMethod: PaymentMethod
    paymentLink: Optional[str] = None
    paymentChannel: Optional[str] = None
    paidAt: Optional[datetime] = None
    status: OrderStatus
    expiresAt: Optional[datetime] = None
    createdAt: datetime


class StatsView(BaseModel):
    totalProducts: int
    totalOrders: int
    totalRevenue: int
    processingOrders: int
    shippedOrders: int
    deliveredOrders: int
    cancelledOrders: int


class ConversationStateView(BaseModel):
    customerId: str
    step: str
    data: dict[str, Any]
    expiresAt: datetime
