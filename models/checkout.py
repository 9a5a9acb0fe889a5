# Request/response DTOs of the checkout flow. Not persisted.
from pydantic import BaseModel, Field

import config
from enums.delivery_method import DeliveryMethod


class CheckoutOptionsDTO(BaseModel):
    # Aggregate fee for the whole checkout; None means the default for the method
    delivery_fee: float | None = None
    delivery_fee_by_vendor: dict[int, float] | None = None
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    # None checks out the whole cart
    selected_item_ids: list[int] | None = None

    def resolved_delivery_fee(self) -> float:
        if self.delivery_fee is not None:
            return self.delivery_fee
        if self.delivery_method == DeliveryMethod.DELIVERY:
            return config.DEFAULT_DELIVERY_FEE
        return 0.0


class CheckoutOrderDTO(BaseModel):
    id: int
    vendor_id: int
    subtotal: float
    delivery_fee: float = 0.0
    total: float
    delivery_method: DeliveryMethod | None = None


class CheckoutResultDTO(BaseModel):
    orders: list[CheckoutOrderDTO] = Field(default_factory=list)
    error: str | None = None

    @property
    def order_ids(self) -> list[int]:
        return [order.id for order in self.orders]
