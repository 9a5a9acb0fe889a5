# View models of the conversation mirror. Not persisted.
from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel

from enums.message_state import MessageState
from models.message import MessageDTO


class ConversationKey(NamedTuple):
    """
    Identifies one conversation from the viewer's side.

    (vendor, customer): the viewer owns vendor and talks to customer
    (vendor, None): the viewer talks to the storefront vendor
    (None, user): direct conversation with user
    """
    vendor_id: int | None
    counterpart_user_id: int | None


class ConversationEntryDTO(BaseModel):
    # Stored message id, None while the entry is pending
    id: int | None = None
    # Client-side id of optimistic and broadcast entries
    temp_id: str | None = None
    sender_user_id: int
    receiver_user_id: int
    vendor_id: int | None = None
    content: str
    created_at: datetime
    read_at: datetime | None = None
    state: MessageState = MessageState.CONFIRMED

    @property
    def fingerprint(self) -> tuple:
        return self.sender_user_id, self.receiver_user_id, self.content, self.vendor_id

    @classmethod
    def from_message(cls, message: MessageDTO) -> "ConversationEntryDTO":
        return cls(
            id=message.id,
            sender_user_id=message.sender_user_id,
            receiver_user_id=message.receiver_user_id,
            vendor_id=message.vendor_id,
            content=message.content,
            created_at=message.created_at,
            read_at=message.read_at,
            state=MessageState.CONFIRMED
        )


class ConversationSummaryDTO(BaseModel):
    vendor_id: int | None = None
    counterpart_user_id: int | None = None
    last_message: ConversationEntryDTO
    unread_count: int = 0

    @property
    def key(self) -> ConversationKey:
        return ConversationKey(self.vendor_id, self.counterpart_user_id)
