from sqlalchemy import select, update, or_, and_

from db import get_db_session, session_commit, session_execute, session_refresh
from enums.realtime_event_type import RealtimeEventType
from models.message import Message, MessageDTO
from services.realtime import RealtimeService
from utils.time import utc_now


class MessageRepository:
    @staticmethod
    async def create(message_dto: MessageDTO) -> MessageDTO:
        async with get_db_session() as session:
            message = Message(**message_dto.model_dump(exclude_none=True, exclude={'id'}))
            session.add(message)
            await session_commit(session)
            await session_refresh(session, message)
            message_dto = MessageDTO.model_validate(message, from_attributes=True)
        await RealtimeService.publish_change("messages", RealtimeEventType.INSERT, new=message_dto)
        return message_dto

    @staticmethod
    async def get_by_user_id(user_id: int) -> list[MessageDTO]:
        stmt = select(Message).where(
            or_(Message.sender_user_id == user_id, Message.receiver_user_id == user_id)
        ).order_by(Message.created_at, Message.id)
        async with get_db_session() as session:
            messages = await session_execute(stmt, session)
            return [MessageDTO.model_validate(message, from_attributes=True) for message in messages.scalars().all()]

    @staticmethod
    async def mark_read(receiver_user_id: int,
                        vendor_id: int | None,
                        counterpart_user_id: int | None) -> list[MessageDTO]:
        """
        Set read_at on the unread messages of one conversation.

        Only rows addressed to receiver_user_id are touched; messages the
        user sent stay unread for the other party.

        Returns:
            The rows that were updated
        """
        conditions = [Message.receiver_user_id == receiver_user_id, Message.read_at.is_(None)]
        conditions.append(Message.vendor_id.is_(None) if vendor_id is None else Message.vendor_id == vendor_id)
        if counterpart_user_id is not None:
            conditions.append(Message.sender_user_id == counterpart_user_id)
        where_clause = and_(*conditions)

        async with get_db_session() as session:
            ids = await session_execute(select(Message.id).where(where_clause), session)
            ids = list(ids.scalars().all())
            if not ids:
                return []
            await session_execute(update(Message).where(Message.id.in_(ids)).values(read_at=utc_now()), session)
            await session_commit(session)
            messages = await session_execute(select(Message).where(Message.id.in_(ids)), session)
            updated = [MessageDTO.model_validate(message, from_attributes=True)
                       for message in messages.scalars().all()]
        for message_dto in updated:
            await RealtimeService.publish_change("messages", RealtimeEventType.UPDATE, new=message_dto)
        return updated
