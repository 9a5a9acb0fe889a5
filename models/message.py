from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, Index, func

from models.base import Base


class Message(Base):
    __tablename__ = 'messages'

    id = Column(Integer, primary_key=True)
    sender_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    receiver_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    # Set when the conversation happens on behalf of a storefront
    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_messages_receiver_unread', 'receiver_user_id', 'read_at'),
        Index('ix_messages_sender', 'sender_user_id'),
    )


class MessageDTO(BaseModel):
    id: int | None = None
    sender_user_id: int | None = None
    receiver_user_id: int | None = None
    vendor_id: int | None = None
    content: str | None = None
    created_at: datetime | None = None
    read_at: datetime | None = None
