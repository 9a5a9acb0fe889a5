"""
Cart-related exceptions.
"""

from .base import MarketplaceException


class CartException(MarketplaceException):
    """Base exception for cart-related errors."""
    pass


class EmptyCartException(CartException):
    """Raised when trying to checkout with empty cart."""

    def __init__(self, user_id: int):
        super().__init__(
            f"Cart is empty for user {user_id}",
            details={'user_id': user_id}
        )
        self.user_id = user_id


class CartItemNotFoundException(CartException):
    """Raised when cart item not found."""

    def __init__(self, cart_item_id: int):
        super().__init__(
            f"Cart item {cart_item_id} not found",
            details={'cart_item_id': cart_item_id}
        )
        self.cart_item_id = cart_item_id


class CheckoutFailedException(CartException):
    """Raised when checkout aborts after the local cart was restored."""

    def __init__(self, user_id: int, reason: str, created_order_ids: list[int] | None = None):
        super().__init__(
            f"Checkout failed for user {user_id}: {reason}",
            details={'user_id': user_id, 'created_order_ids': created_order_ids or []}
        )
        self.user_id = user_id
        self.reason = reason
        # Orders already written before the failure are not rolled back
        self.created_order_ids = created_order_ids or []
