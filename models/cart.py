# A cart belongs to one customer. vendor_id optionally scopes it to a single
# storefront; an unscoped cart may hold products from several vendors and is
# split into one order per vendor at checkout.
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, ForeignKey, func

from models.base import Base


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class CartDTO(BaseModel):
    id: int | None = None
    user_id: int | None = None
    vendor_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
