"""Exception hierarchy for the storefront service.

Every error carries the HTTP status the API answers with, so route handlers
can let them propagate to the exception handler registered in main.py.
"""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500


class ValidationError(StorefrontError):
    """Raised when a request is missing fields or carries malformed values."""

    status_code = 400


class NotFoundError(StorefrontError):
    """Base class for lookups that resolve to nothing."""

    status_code = 404


class ProductNotFound(NotFoundError):
    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("Product not found")


class SizeNotFound(NotFoundError):
    def __init__(self, product_id: str, size: int):
        self.product_id = product_id
        self.size = size
        super().__init__("Invalid size selected")


class CartNotFound(NotFoundError):
    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__("Cart not found")


class CartItemNotFound(NotFoundError):
    def __init__(self, product_id: str, size: int):
        self.product_id = product_id
        self.size = size
        super().__init__("Item not found")


class OrderNotFound(NotFoundError):
    def __init__(self, key: str):
        self.key = key
        super().__init__("Order not found")


class InsufficientStock(StorefrontError):
    """Raised by the inventory ledger when a size entry cannot cover a reservation."""

    status_code = 400

    def __init__(self, product_id: str, size: int, requested: int):
        self.product_id = product_id
        self.size = size
        self.requested = requested
        super().__init__("Not enough stock")


class OutOfStock(StorefrontError):
    """Customer-facing form of InsufficientStock."""

    status_code = 400

    def __init__(self, product_name: str, size: int):
        self.product_name = product_name
        self.size = size
        super().__init__(f"{product_name} ({size}ml) is out of stock")


class EmptyCart(StorefrontError):
    status_code = 400

    def __init__(self):
        super().__init__("Cart is empty")


class ProductUnavailable(StorefrontError):
    """Raised when a product or size entry disappeared from the catalog."""

    status_code = 400

    def __init__(self, product_name: str, size: int):
        self.product_name = product_name
        self.size = size
        super().__init__(f"{product_name} ({size}ml) not available")


class PaymentGatewayError(StorefrontError):
    """Raised when the payment provider fails, times out, or answers without a checkout URL."""

    status_code = 400


class InvalidSignature(StorefrontError):
    status_code = 401

    def __init__(self):
        super().__init__("Invalid signature")


class InvalidTransition(StorefrontError):
    """Raised when an administrator requests a fulfilment status change the order cannot make."""

    status_code = 400

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order from {current} to {requested}")


class AdminRequired(StorefrontError):
    status_code = 401

    def __init__(self, message: str = "Missing admin identity", status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class StoreBusy(StorefrontError):
    """Raised when the database lock could not be acquired within the busy timeout."""

    status_code = 503

    def __init__(self):
        super().__init__("Store is busy, please try again")
