from sqlalchemy import select

from db import get_db_session, session_commit, session_execute
from models.orderItem import OrderItem, OrderItemDTO
from models.product import Product


class OrderItemRepository:
    @staticmethod
    async def create_many(order_items: list[OrderItemDTO]) -> None:
        async with get_db_session() as session:
            for order_item_dto in order_items:
                order_item = OrderItem(**order_item_dto.model_dump(exclude_none=True, exclude={'product_name'}))
                session.add(order_item)
            await session_commit(session)

    @staticmethod
    async def get_by_order_ids(order_ids: list[int]) -> list[OrderItemDTO]:
        if not order_ids:
            return []
        stmt = (
            select(OrderItem, Product.name)
            .join(Product, Product.id == OrderItem.product_id, isouter=True)
            .where(OrderItem.order_id.in_(order_ids))
            .order_by(OrderItem.order_id, OrderItem.id)
        )
        async with get_db_session() as session:
            rows = await session_execute(stmt, session)
            order_items = []
            for order_item, product_name in rows.all():
                order_item_dto = OrderItemDTO.model_validate(order_item, from_attributes=True)
                order_item_dto.product_name = product_name
                order_items.append(order_item_dto)
            return order_items

    @staticmethod
    async def get_by_order_id(order_id: int) -> list[OrderItemDTO]:
        return await OrderItemRepository.get_by_order_ids([order_id])
