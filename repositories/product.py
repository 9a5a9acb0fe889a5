import logging

from sqlalchemy import select, update, case

from db import get_db_session, session_commit, session_execute, session_refresh
from models.product import Product, ProductDTO

logger = logging.getLogger(__name__)


class ProductRepository:
    @staticmethod
    async def get_by_id(product_id: int) -> ProductDTO | None:
        stmt = select(Product).where(Product.id == product_id)
        async with get_db_session() as session:
            product = await session_execute(stmt, session)
            product = product.scalar()
            if product is not None:
                return ProductDTO.model_validate(product, from_attributes=True)
            else:
                return None

    @staticmethod
    async def create(product_dto: ProductDTO) -> ProductDTO:
        async with get_db_session() as session:
            product = Product(**product_dto.model_dump(exclude_none=True))
            session.add(product)
            await session_commit(session)
            await session_refresh(session, product)
            return ProductDTO.model_validate(product, from_attributes=True)

    @staticmethod
    async def decrement_stock(product_id: int, quantity: int) -> int | None:
        """
        Atomically subtract quantity from tracked stock, flooring at zero.

        Single UPDATE statement, safe against concurrent checkouts.
        Untracked stock (NULL) is left untouched.

        Returns:
            Remaining stock, or None if the product does not track stock
        """
        remaining = Product.stock - quantity
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock.is_not(None))
            .values(stock=case((remaining < 0, 0), else_=remaining))
        )
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
            stock = await session_execute(select(Product.stock).where(Product.id == product_id), session)
            return stock.scalar()

    @staticmethod
    async def set_stock(product_id: int, stock: int) -> None:
        stmt = update(Product).where(Product.id == product_id).values(stock=max(stock, 0))
        async with get_db_session() as session:
            await session_execute(stmt, session)
            await session_commit(session)
