from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, String, ForeignKey, func

from models.base import Base


class PushSubscription(Base):
    __tablename__ = 'push_subscriptions'

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    # "telegram:<chat_id>" for bot delivery
    endpoint = Column(String, nullable=False, unique=True)
    p256dh = Column(String, nullable=True)
    auth = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class PushSubscriptionDTO(BaseModel):
    id: int | None = None
    user_id: int | None = None
    endpoint: str | None = None
    p256dh: str | None = None
    auth: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
