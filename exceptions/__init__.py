"""
Custom exceptions for the marketplace core.

This module provides a hierarchy of custom exceptions for consistent error handling
throughout the application.

Exception Hierarchy:
--------------------
MarketplaceException (base)
├── AuthRequiredException
├── PermissionDeniedException
├── RemoteReadFailedException
├── UnsupportedColumnException
├── ValidationFailedException
│   ├── MissingSizeException
│   ├── OutOfStockException
│   ├── VendorScopeException
│   ├── EmptyMessageException
│   └── InvalidRatingException
├── CartException
│   ├── EmptyCartException
│   ├── CartItemNotFoundException
│   └── CheckoutFailedException
└── OrderException
    ├── OrderNotFoundException
    ├── InvalidOrderStateException
    └── OrderOwnershipException

Usage:
------
Services raise specific exceptions:
    raise EmptyCartException(user_id=123)

Operation boundaries catch them and publish a notice:
    try:
        ...
    except MarketplaceException as e:
        self.notices.push(handle_service_error(e))
"""

from .base import (
    MarketplaceException,
    AuthRequiredException,
    PermissionDeniedException,
    RemoteReadFailedException,
    UnsupportedColumnException,
)
from .cart import CartException, EmptyCartException, CartItemNotFoundException, CheckoutFailedException
from .order import OrderException, OrderNotFoundException, InvalidOrderStateException, OrderOwnershipException
from .validation import (
    ValidationFailedException,
    MissingSizeException,
    OutOfStockException,
    VendorScopeException,
    EmptyMessageException,
    InvalidRatingException,
)

__all__ = [
    # Base
    'MarketplaceException',
    'AuthRequiredException',
    'PermissionDeniedException',
    'RemoteReadFailedException',
    'UnsupportedColumnException',

    # Validation
    'ValidationFailedException',
    'MissingSizeException',
    'OutOfStockException',
    'VendorScopeException',
    'EmptyMessageException',
    'InvalidRatingException',

    # Cart
    'CartException',
    'EmptyCartException',
    'CartItemNotFoundException',
    'CheckoutFailedException',

    # Order
    'OrderException',
    'OrderNotFoundException',
    'InvalidOrderStateException',
    'OrderOwnershipException',
]
