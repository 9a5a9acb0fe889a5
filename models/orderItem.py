from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, Float, String, func, ForeignKey, CheckConstraint, Index

from models.base import Base


class OrderItem(Base):
    """Snapshot of a purchased cart line. Rows are never updated after insert."""
    __tablename__ = 'order_items'

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_order_item_positive_quantity'),
        CheckConstraint('unit_price >= 0', name='ck_order_item_positive_price'),
        Index('ix_order_items_order_id', 'order_id'),
    )

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    size = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)


class OrderItemDTO(BaseModel):
    id: int | None = None
    order_id: int | None = None
    product_id: int | None = None
    quantity: int | None = None
    unit_price: float | None = None
    size: str | None = None
    created_at: datetime | None = None
    # Joined for display, not a column of order_items
    product_name: str | None = None
