from sqlalchemy import select, func
from sqlalchemy.dialects.sqlite import insert

import config
from db import get_db_session, session_commit, session_execute
from models.order_rating import OrderRating, OrderRatingDTO
from utils.time import utc_now


class OrderRatingRepository:
    @staticmethod
    async def upsert(rating_dto: OrderRatingDTO) -> OrderRatingDTO:
        """One rating per (order, user): a second save overwrites the first."""
        values = rating_dto.model_dump(exclude={'id', 'created_at', 'updated_at'})
        stmt = insert(OrderRating).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[OrderRating.order_id, OrderRating.user_id],
            set_={
                'rating': values['rating'],
                'review': values['review'],
                'vendor_id': values['vendor_id'],
                'updated_at': utc_now(),
            }
        )
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
            rating = await session_execute(select(OrderRating).where(
                OrderRating.order_id == rating_dto.order_id,
                OrderRating.user_id == rating_dto.user_id
            ), session)
            return OrderRatingDTO.model_validate(rating.scalar(), from_attributes=True)

    @staticmethod
    async def get_by_user_id(user_id: int, order_ids: list[int] | None = None) -> list[OrderRatingDTO]:
        stmt = select(OrderRating).where(OrderRating.user_id == user_id)
        if order_ids is not None:
            stmt = stmt.where(OrderRating.order_id.in_(order_ids))
        async with get_db_session() as session:
            ratings = await session_execute(stmt, session)
            return [OrderRatingDTO.model_validate(rating, from_attributes=True) for rating in ratings.scalars().all()]

    @staticmethod
    async def get_by_vendor_id(vendor_id: int, limit: int | None = None) -> list[OrderRatingDTO]:
        stmt = select(OrderRating).where(OrderRating.vendor_id == vendor_id).order_by(
            OrderRating.created_at.desc(), OrderRating.id.desc()
        ).limit(limit or config.VENDOR_REVIEWS_LIMIT)
        async with get_db_session() as session:
            ratings = await session_execute(stmt, session)
            return [OrderRatingDTO.model_validate(rating, from_attributes=True) for rating in ratings.scalars().all()]

    @staticmethod
    async def get_vendor_summary(vendor_id: int) -> tuple[float | None, int]:
        stmt = select(func.avg(OrderRating.rating), func.count(OrderRating.id)).where(
            OrderRating.vendor_id == vendor_id)
        async with get_db_session() as session:
            result = await session_execute(stmt, session)
            average, count = result.one()
            return (float(average) if average is not None else None), count
