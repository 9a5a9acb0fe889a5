"""
Input validation exceptions.
"""

from .base import MarketplaceException


class ValidationFailedException(MarketplaceException):
    """Base exception for rejected user input."""

    def __init__(self, reason: str, details: dict | None = None):
        super().__init__(reason, details=details)
        self.reason = reason


class MissingSizeException(ValidationFailedException):
    """Raised when a product needs a size selection and none was given."""

    def __init__(self, product_id: int, product_name: str | None = None):
        super().__init__(
            f"Select a size for {product_name or f'product {product_id}'}",
            details={'product_id': product_id}
        )
        self.product_id = product_id
        self.product_name = product_name or ""


class OutOfStockException(ValidationFailedException):
    """Raised when tracked stock cannot cover the requested quantity."""

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            details={'product_id': product_id, 'requested': requested, 'available': available}
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class VendorScopeException(ValidationFailedException):
    """Raised when a product does not belong to the vendor the cart is scoped to."""

    def __init__(self, product_id: int, cart_vendor_id: int, product_vendor_id: int | None):
        super().__init__(
            f"Product {product_id} belongs to vendor {product_vendor_id}, cart is scoped to vendor {cart_vendor_id}",
            details={'product_id': product_id, 'cart_vendor_id': cart_vendor_id,
                     'product_vendor_id': product_vendor_id}
        )
        self.product_id = product_id
        self.cart_vendor_id = cart_vendor_id
        self.product_vendor_id = product_vendor_id


class EmptyMessageException(ValidationFailedException):
    """Raised when trying to send a blank message."""

    def __init__(self):
        super().__init__("Message content is empty")


class InvalidRatingException(ValidationFailedException):
    """Raised when an order cannot be rated in its current state."""

    def __init__(self, order_id: int, status: str):
        super().__init__(
            f"Order {order_id} cannot be rated while '{status}'",
            details={'order_id': order_id, 'status': status}
        )
        self.order_id = order_id
        self.status = status
