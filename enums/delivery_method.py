from enum import Enum


class DeliveryMethod(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
