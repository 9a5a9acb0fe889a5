from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, String, Float, ForeignKey, JSON, CheckConstraint, func

from models.base import Base


class Product(Base):
    __tablename__ = 'products'

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    # NULL means the vendor does not track stock for this product
    stock = Column(Integer, nullable=True)
    # e.g. ["S", "M", "L"]; NULL or empty when the product has no size selection
    size_options = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('price >= 0', name='check_product_price_positive'),
        CheckConstraint('stock IS NULL OR stock >= 0', name='check_product_stock_positive'),
    )


class ProductDTO(BaseModel):
    id: int | None = None
    vendor_id: int | None = None
    name: str | None = None
    price: float | None = None
    stock: int | None = None
    size_options: list[str] | None = None
    created_at: datetime | None = None

    @property
    def requires_size(self) -> bool:
        return bool(self.size_options)
