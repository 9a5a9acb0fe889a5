from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, func, text, CheckConstraint, Enum as SQLEnum

from enums.delivery_method import DeliveryMethod
from enums.order_status import OrderStatus
from models.base import Base


class Order(Base):
    __tablename__ = 'orders'

    id = Column(Integer, primary_key=True, unique=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False)
    status = Column(SQLEnum(OrderStatus, values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=OrderStatus.PENDING)
    subtotal = Column(Float, nullable=False, default=0.0)
    # Stored inclusive of delivery_fee
    total = Column(Float, nullable=False, default=0.0)

    # Added by migrations/add_delivery_method_to_orders.py, absent on legacy schemas
    delivery_fee = Column(Float, nullable=False, server_default=text("0"))
    delivery_method = Column(SQLEnum(DeliveryMethod, values_callable=lambda e: [m.value for m in e]),
                             nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('subtotal >= 0', name='check_order_subtotal_positive'),
        CheckConstraint('total >= subtotal', name='check_order_total_covers_subtotal'),
    )


class OrderDTO(BaseModel):
    id: int | None = None
    user_id: int | None = None
    vendor_id: int | None = None
    status: OrderStatus | None = None
    subtotal: float | None = None
    total: float | None = None
    delivery_fee: float | None = None
    delivery_method: DeliveryMethod | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
