from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"              # Created at checkout, waiting for the vendor
    CONFIRMED = "confirmed"          # Accepted by the vendor
    PREPARING = "preparing"
    READY = "ready"                  # Ready for pickup
    FOR_DELIVERY = "for_delivery"    # Out with the rider
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
