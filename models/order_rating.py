from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, UniqueConstraint, CheckConstraint, func

from models.base import Base


class OrderRating(Base):
    __tablename__ = 'order_ratings'

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('order_id', 'user_id', name='uq_order_rating_order_user'),
        CheckConstraint('rating >= 1', name='check_rating_positive'),
    )


class OrderRatingDTO(BaseModel):
    id: int | None = None
    order_id: int | None = None
    user_id: int | None = None
    vendor_id: int | None = None
    rating: int | None = None
    review: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
