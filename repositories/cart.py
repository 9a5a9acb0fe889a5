from sqlalchemy import select

from db import get_db_session, session_commit, session_execute, session_refresh
from models.cart import Cart, CartDTO


class CartRepository:
    @staticmethod
    async def get_by_user_id(user_id: int) -> CartDTO | None:
        stmt = select(Cart).where(Cart.user_id == user_id).order_by(Cart.id).limit(1)
        async with get_db_session() as session:
            cart = await session_execute(stmt, session)
            cart = cart.scalar()
            if cart is not None:
                return CartDTO.model_validate(cart, from_attributes=True)
            else:
                return None

    @staticmethod
    async def create(user_id: int, vendor_id: int | None = None) -> CartDTO:
        async with get_db_session() as session:
            cart = Cart(user_id=user_id, vendor_id=vendor_id)
            session.add(cart)
            await session_commit(session)
            await session_refresh(session, cart)
            return CartDTO.model_validate(cart, from_attributes=True)
