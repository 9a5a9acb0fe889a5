from sqlalchemy import select, update

from db import get_db_session, session_commit, session_execute, session_refresh
from models.user import User, UserDTO


class UserRepository:
    @staticmethod
    async def get_by_id(user_id: int) -> UserDTO | None:
        stmt = select(User).where(User.id == user_id)
        async with get_db_session() as session:
            user = await session_execute(stmt, session)
            user = user.scalar()
            if user is not None:
                return UserDTO.model_validate(user, from_attributes=True)
            else:
                return None

    @staticmethod
    async def get_by_auth_user_id(auth_user_id: str) -> UserDTO | None:
        stmt = select(User).where(User.auth_user_id == auth_user_id)
        async with get_db_session() as session:
            user = await session_execute(stmt, session)
            user = user.scalar()
            if user is not None:
                return UserDTO.model_validate(user, from_attributes=True)
            else:
                return None

    @staticmethod
    async def get_by_ids(user_ids: list[int]) -> list[UserDTO]:
        if not user_ids:
            return []
        stmt = select(User).where(User.id.in_(user_ids))
        async with get_db_session() as session:
            users = await session_execute(stmt, session)
            return [UserDTO.model_validate(user, from_attributes=True) for user in users.scalars().all()]

    @staticmethod
    async def create(user_dto: UserDTO) -> UserDTO:
        async with get_db_session() as session:
            user = User(**user_dto.model_dump(exclude_none=True))
            session.add(user)
            await session_commit(session)
            await session_refresh(session, user)
            return UserDTO.model_validate(user, from_attributes=True)

    @staticmethod
    async def update(user_dto: UserDTO) -> None:
        user_dto_dict = user_dto.model_dump(exclude_none=True)
        user_dto_dict.pop('id', None)
        stmt = update(User).where(User.id == user_dto.id).values(**user_dto_dict)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
