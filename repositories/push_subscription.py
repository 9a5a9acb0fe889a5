from sqlalchemy import select, delete
from sqlalchemy.dialects.sqlite import insert

from db import get_db_session, session_commit, session_execute
from models.push_subscription import PushSubscription, PushSubscriptionDTO
from utils.time import utc_now


class PushSubscriptionRepository:
    @staticmethod
    async def upsert(subscription_dto: PushSubscriptionDTO) -> PushSubscriptionDTO:
        """Insert or take over the row with the same endpoint."""
        values = subscription_dto.model_dump(exclude_none=True, exclude={'id', 'created_at', 'updated_at'})
        stmt = insert(PushSubscription).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PushSubscription.endpoint],
            set_={**{k: v for k, v in values.items() if k != 'endpoint'}, 'updated_at': utc_now()}
        )
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
            subscription = await session_execute(
                select(PushSubscription).where(PushSubscription.endpoint == subscription_dto.endpoint), session)
            return PushSubscriptionDTO.model_validate(subscription.scalar(), from_attributes=True)

    @staticmethod
    async def get_by_user_id(user_id: int) -> list[PushSubscriptionDTO]:
        stmt = select(PushSubscription).where(PushSubscription.user_id == user_id).order_by(PushSubscription.id)
        async with get_db_session() as session:
            subscriptions = await session_execute(stmt, session)
            return [PushSubscriptionDTO.model_validate(subscription, from_attributes=True)
                    for subscription in subscriptions.scalars().all()]

    @staticmethod
    async def delete_by_endpoint(endpoint: str) -> None:
        stmt = delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
