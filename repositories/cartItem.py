from sqlalchemy import select, update, delete
from sqlalchemy.orm import joinedload

from db import get_db_session, session_commit, session_execute
from models.cartItem import CartItem, CartItemDTO


class CartItemRepository:
    @staticmethod
    def _select_with_product():
        return select(CartItem).options(joinedload(CartItem.product))

    @staticmethod
    async def get_by_id(cart_item_id: int) -> CartItemDTO | None:
        stmt = CartItemRepository._select_with_product().where(CartItem.id == cart_item_id)
        async with get_db_session() as session:
            cart_item = await session_execute(stmt, session)
            cart_item = cart_item.scalar()
            if cart_item is not None:
                return CartItemDTO.model_validate(cart_item, from_attributes=True)
            else:
                return None

    @staticmethod
    async def get_by_cart_id(cart_id: int) -> list[CartItemDTO]:
        stmt = CartItemRepository._select_with_product().where(CartItem.cart_id == cart_id).order_by(CartItem.id)
        async with get_db_session() as session:
            cart_items = await session_execute(stmt, session)
            return [CartItemDTO.model_validate(cart_item, from_attributes=True)
                    for cart_item in cart_items.scalars().all()]

    @staticmethod
    async def get_by_product_and_size(cart_id: int, product_id: int, size: str | None) -> CartItemDTO | None:
        size_clause = CartItem.size.is_(None) if size is None else CartItem.size == size
        stmt = CartItemRepository._select_with_product().where(
            CartItem.cart_id == cart_id,
            CartItem.product_id == product_id,
            size_clause
        ).limit(1)
        async with get_db_session() as session:
            cart_item = await session_execute(stmt, session)
            cart_item = cart_item.scalar()
            if cart_item is not None:
                return CartItemDTO.model_validate(cart_item, from_attributes=True)
            else:
                return None

    @staticmethod
    async def create(cart_id: int, product_id: int, quantity: int, size: str | None = None) -> CartItemDTO:
        async with get_db_session() as session:
            cart_item = CartItem(cart_id=cart_id, product_id=product_id, quantity=quantity, size=size)
            session.add(cart_item)
            await session_commit(session)
            cart_item_id = cart_item.id
        return await CartItemRepository.get_by_id(cart_item_id)

    @staticmethod
    async def update_quantity(cart_item_id: int, quantity: int) -> CartItemDTO | None:
        stmt = update(CartItem).where(CartItem.id == cart_item_id).values(quantity=quantity)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
        return await CartItemRepository.get_by_id(cart_item_id)

    @staticmethod
    async def increment_quantity(cart_item_id: int, quantity: int) -> CartItemDTO | None:
        """Add to the stored quantity in one UPDATE, so concurrent adds are not lost."""
        stmt = update(CartItem).where(CartItem.id == cart_item_id).values(quantity=CartItem.quantity + quantity)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
        return await CartItemRepository.get_by_id(cart_item_id)

    @staticmethod
    async def remove_from_cart(cart_item_id: int) -> None:
        stmt = delete(CartItem).where(CartItem.id == cart_item_id)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)

    @staticmethod
    async def remove_many(cart_item_ids: list[int]) -> None:
        if not cart_item_ids:
            return
        stmt = delete(CartItem).where(CartItem.id.in_(cart_item_ids))
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)

    @staticmethod
    async def clear_cart(cart_id: int) -> None:
        stmt = delete(CartItem).where(CartItem.cart_id == cart_id)
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
