"""
Exceptions raised while reading, advancing or rating marketplace orders.
"""

from .base import MarketplaceException


class OrderException(MarketplaceException):
    pass


class OrderNotFoundException(OrderException):
    """The order id is unknown, or the row was removed."""

    def __init__(self, order_id: int):
        super().__init__(
            f"Order {order_id} not found",
            details={'order_id': order_id}
        )
        self.order_id = order_id


class InvalidOrderStateException(OrderException):
    """
    The requested status is not reachable from the current one.

    Raised by status updates after the order state machine refused the
    transition, e.g. pending -> delivered or anything out of cancelled.
    """

    def __init__(self, order_id: int, current_status: str, requested_status: str):
        super().__init__(
            f"Order {order_id} cannot move from '{current_status}' to '{requested_status}'",
            details={'order_id': order_id, 'current_status': current_status, 'requested_status': requested_status}
        )
        self.order_id = order_id
        self.current_status = current_status
        self.requested_status = requested_status


class OrderOwnershipException(OrderException):
    """The caller is neither the customer of the order nor the owner of its store."""

    def __init__(self, order_id: int, user_id: int):
        super().__init__(
            f"User {user_id} may not change order {order_id}",
            details={'order_id': order_id, 'user_id': user_id}
        )
        self.order_id = order_id
        self.user_id = user_id
