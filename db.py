from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event, Engine, text, Result, CursorResult
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

import config
from models.base import Base

"""
Imports of these models are needed to correctly create tables in the database.
For more information see https://stackoverflow.com/questions/7478403/sqlalchemy-classes-across-files
"""
from models.user import User
from models.vendor import Vendor
from models.product import Product
from models.cart import Cart
from models.cartItem import CartItem
from models.order import Order
from models.orderItem import OrderItem
from models.message import Message
from models.push_subscription import PushSubscription
from models.order_rating import OrderRating

# Keep SQL echo off, statements would drown the application log
sql_echo = False

url = config.DB_URL
engine = create_async_engine(url, echo=sql_echo)
session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

if url.startswith("sqlite+aiosqlite:///data/"):
    data_folder = Path("data")
    if data_folder.exists() is False:
        data_folder.mkdir()


@asynccontextmanager
async def get_db_session() -> AsyncSession:
    session = None
    try:
        async with session_maker() as async_session:
            session = async_session
            yield session
    finally:
        if session is not None:
            await session.close()


async def session_execute(stmt, session: AsyncSession) -> Result[Any] | CursorResult[Any]:
    query_result = await session.execute(stmt)
    return query_result


async def session_flush(session: AsyncSession) -> None:
    await session.flush()


async def session_commit(session: AsyncSession) -> None:
    await session.commit()


async def session_rollback(session: AsyncSession) -> None:
    await session.rollback()


async def session_refresh(session: AsyncSession, instance) -> None:
    await session.refresh(instance)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def check_all_tables_exist(session: AsyncSession):
    for table in Base.metadata.tables.values():
        sql_query = text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name")
        result = await session.execute(sql_query, {"name": table.name})
        if result.scalar() is None:
            return False
    return True


async def create_db_and_tables():
    async with get_db_session() as session:
        if await check_all_tables_exist(session):
            return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
