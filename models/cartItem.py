from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, String, ForeignKey, CheckConstraint, Index, func
from sqlalchemy.orm import relationship

from models.base import Base


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    size = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    product = relationship("Product")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
    )


# One line per (cart, product, size); NULL size counts as one value
Index('uq_cart_item_line', CartItem.cart_id, CartItem.product_id, func.coalesce(CartItem.size, ''), unique=True)


class CartProductDTO(BaseModel):
    """Product fields joined into a cart line for display and checkout."""
    id: int | None = None
    name: str | None = None
    price: float | None = None
    stock: int | None = None
    vendor_id: int | None = None


class CartItemDTO(BaseModel):
    id: int | None = None
    cart_id: int | None = None
    product_id: int | None = None
    size: str | None = None
    quantity: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    product: CartProductDTO | None = None

    @property
    def vendor_id(self) -> int | None:
        return self.product.vendor_id if self.product else None

    @property
    def line_total(self) -> float:
        price = self.product.price if self.product and self.product.price is not None else 0.0
        return price * (self.quantity or 0)
