"""
Error Handler Utility for service operation boundaries

Provides centralized error handling with:
- Localized notice texts
- Consistent user experience
- Automatic exception to notice mapping
- Logging for debugging

Usage in services:
    from utils.error_handler import handle_service_error

    try:
        result = await SomeRepository.some_method()
    except MarketplaceException as e:
        self.notices.push(handle_service_error(e))
"""

import logging

from enums.notice_variant import NoticeVariant
from enums.text_entity import TextEntity
from exceptions import (
    MarketplaceException,
    AuthRequiredException,
    PermissionDeniedException,
    RemoteReadFailedException,
    UnsupportedColumnException,
    ValidationFailedException,
    MissingSizeException,
    OutOfStockException,
    VendorScopeException,
    EmptyMessageException,
    InvalidRatingException,
    EmptyCartException,
    CartItemNotFoundException,
    CheckoutFailedException,
    OrderNotFoundException,
    InvalidOrderStateException,
    OrderOwnershipException,
)
from services.notice import NoticeDTO
from utils.localizator import Localizator

# Exception type -> (l10n entity, l10n key, error code)
ERROR_MAPPING: dict[type, tuple[TextEntity, str, str]] = {
    AuthRequiredException: (TextEntity.COMMON, "error_auth_required", "auth_required"),
    PermissionDeniedException: (TextEntity.COMMON, "error_permission_denied", "permission_denied"),
    RemoteReadFailedException: (TextEntity.COMMON, "error_remote_read_failed", "remote_read_failed"),
    UnsupportedColumnException: (TextEntity.COMMON, "error_unsupported_column", "remote_write_failed"),

    # Validation exceptions
    ValidationFailedException: (TextEntity.COMMON, "error_validation_failed", "validation_failed"),
    MissingSizeException: (TextEntity.USER, "error_missing_size", "validation_failed"),
    OutOfStockException: (TextEntity.USER, "error_out_of_stock", "validation_failed"),
    VendorScopeException: (TextEntity.USER, "error_vendor_scope", "validation_failed"),
    EmptyMessageException: (TextEntity.USER, "error_empty_message", "validation_failed"),
    InvalidRatingException: (TextEntity.USER, "error_invalid_rating", "validation_failed"),

    # Cart exceptions
    EmptyCartException: (TextEntity.USER, "error_empty_cart", "empty_cart"),
    CartItemNotFoundException: (TextEntity.USER, "error_cart_item_not_found", "validation_failed"),
    CheckoutFailedException: (TextEntity.USER, "error_checkout_failed", "checkout_failed"),

    # Order exceptions
    OrderNotFoundException: (TextEntity.COMMON, "error_order_not_found", "remote_read_failed"),
    InvalidOrderStateException: (TextEntity.COMMON, "error_order_invalid_state", "validation_failed"),
    OrderOwnershipException: (TextEntity.COMMON, "error_order_ownership", "permission_denied"),
}

FORMAT_ATTRIBUTES = (
    'order_id', 'current_status', 'requested_status', 'available', 'requested',
    'reason', 'resource', 'table', 'column', 'product_name', 'status',
)


def _lookup(exception: MarketplaceException) -> tuple[TextEntity, str, str] | None:
    for exception_type in type(exception).__mro__:
        if exception_type in ERROR_MAPPING:
            return ERROR_MAPPING[exception_type]
    return None


def handle_service_error(exception: MarketplaceException) -> NoticeDTO:
    """
    Convert service exception to a localized, user-facing notice.

    Args:
        exception: The custom exception raised by a service or repository

    Returns:
        NoticeDTO with localized title and description, destructive variant
        and the error code of the exception kind

    Example:
        try:
            await CartService.checkout(options)
        except CheckoutFailedException as e:
            notices.push(handle_service_error(e))
    """
    logging.warning(f"Service error handled: {type(exception).__name__} - {str(exception)}")

    mapping = _lookup(exception)
    if mapping is None:
        logging.error(f"Unmapped exception type: {type(exception).__name__}")
        return NoticeDTO(
            title=Localizator.get_text(TextEntity.COMMON, "error_unexpected_title"),
            description=Localizator.get_text(TextEntity.COMMON, "error_unexpected"),
            variant=NoticeVariant.DESTRUCTIVE,
        )
    entity, localization_key, code = mapping

    exception_data = {}
    for attribute in FORMAT_ATTRIBUTES:
        if hasattr(exception, attribute):
            exception_data[attribute] = getattr(exception, attribute)

    title = Localizator.get_text(entity, f"{localization_key}_title")
    try:
        description = Localizator.get_text(entity, localization_key).format(**exception_data)
    except KeyError as e:
        # Missing formatting parameter - log and return without formatting
        logging.error(f"Missing format parameter in error message: {e}")
        description = Localizator.get_text(entity, localization_key)

    return NoticeDTO(title=title, description=description, variant=NoticeVariant.DESTRUCTIVE, code=code)


def handle_unexpected_error(exception: Exception) -> NoticeDTO:
    """
    Handle unexpected exceptions (non-MarketplaceException).

    Note:
        Also logs the full exception for debugging
    """
    logging.error(f"Unexpected error: {type(exception).__name__} - {str(exception)}", exc_info=True)
    return NoticeDTO(
        title=Localizator.get_text(TextEntity.COMMON, "error_unexpected_title"),
        description=Localizator.get_text(TextEntity.COMMON, "error_unexpected"),
        variant=NoticeVariant.DESTRUCTIVE,
    )


def to_notice(exception: Exception) -> NoticeDTO:
    if isinstance(exception, MarketplaceException):
        return handle_service_error(exception)
    return handle_unexpected_error(exception)
