import logging

from sqlalchemy import select, update, insert
from sqlalchemy.exc import OperationalError, ProgrammingError

from db import get_db_session, session_commit, session_execute
from enums.delivery_method import DeliveryMethod
from enums.order_status import OrderStatus
from enums.realtime_event_type import RealtimeEventType
from exceptions import UnsupportedColumnException
from models.order import Order, OrderDTO
from services.realtime import RealtimeService

logger = logging.getLogger(__name__)

DELIVERY_COLUMNS = ('delivery_fee', 'delivery_method')


class OrderRepository:
    # Flipped off the first time the store rejects one of DELIVERY_COLUMNS,
    # reads then stop selecting them
    delivery_columns_supported = True

    @staticmethod
    def _columns():
        columns = [column for column in Order.__table__.columns]
        if not OrderRepository.delivery_columns_supported:
            columns = [column for column in columns if column.name not in DELIVERY_COLUMNS]
        return columns

    @staticmethod
    def _select():
        return select(*OrderRepository._columns())

    @staticmethod
    def _to_dto(row) -> OrderDTO:
        return OrderDTO.model_validate(dict(row._mapping))

    @staticmethod
    def _raise_if_unsupported_column(error: Exception) -> None:
        message = str(error)
        for column in DELIVERY_COLUMNS:
            if column in message:
                OrderRepository.delivery_columns_supported = False
                logger.warning(f"Store rejected orders.{column}, falling back to legacy columns")
                raise UnsupportedColumnException("orders", column) from error

    @staticmethod
    async def create(order_dto: OrderDTO) -> OrderDTO:
        """
        Insert an order. Only the fields set on the DTO are written, so a
        caller that leaves delivery_method unset works on legacy schemas.

        Raises:
            UnsupportedColumnException: the store has no delivery_method/delivery_fee column
        """
        values = order_dto.model_dump(exclude_none=True, exclude={'id', 'created_at', 'updated_at'})
        stmt = insert(Order).values(**values)
        try:
            async with get_db_session() as session:
                result = await session_execute(stmt, session)
                await session_commit(session)
                order_id = result.inserted_primary_key[0]
        except (OperationalError, ProgrammingError) as e:
            OrderRepository._raise_if_unsupported_column(e)
            raise
        order = await OrderRepository.get_by_id(order_id)
        await RealtimeService.publish_change("orders", RealtimeEventType.INSERT, new=order)
        return order

    @staticmethod
    async def get_by_id(order_id: int) -> OrderDTO | None:
        stmt = OrderRepository._select().where(Order.id == order_id)
        async with get_db_session() as session:
            order = await session_execute(stmt, session)
            order = order.first()
            if order is not None:
                return OrderRepository._to_dto(order)
            else:
                return None

    @staticmethod
    async def get_by_ids(order_ids: list[int]) -> list[OrderDTO]:
        if not order_ids:
            return []
        stmt = OrderRepository._select().where(Order.id.in_(order_ids)).order_by(Order.id)
        async with get_db_session() as session:
            orders = await session_execute(stmt, session)
            return [OrderRepository._to_dto(order) for order in orders.all()]

    @staticmethod
    async def get_by_user_id(user_id: int) -> list[OrderDTO]:
        stmt = OrderRepository._select().where(Order.user_id == user_id).order_by(
            Order.created_at.desc(), Order.id.desc())
        async with get_db_session() as session:
            orders = await session_execute(stmt, session)
            return [OrderRepository._to_dto(order) for order in orders.all()]

    @staticmethod
    async def get_by_vendor_id(vendor_id: int, statuses: list[OrderStatus] | None = None) -> list[OrderDTO]:
        stmt = OrderRepository._select().where(Order.vendor_id == vendor_id)
        if statuses:
            stmt = stmt.where(Order.status.in_(statuses))
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
        async with get_db_session() as session:
            orders = await session_execute(stmt, session)
            return [OrderRepository._to_dto(order) for order in orders.all()]

    @staticmethod
    async def _update(order_id: int, **values) -> OrderDTO | None:
        old = await OrderRepository.get_by_id(order_id)
        stmt = update(Order).where(Order.id == order_id).values(**values)
        try:
            async with get_db_session() as session:
                await session_execute(stmt, session)
                await session_commit(session)
        except (OperationalError, ProgrammingError) as e:
            OrderRepository._raise_if_unsupported_column(e)
            raise
        new = await OrderRepository.get_by_id(order_id)
        if new is not None:
            await RealtimeService.publish_change("orders", RealtimeEventType.UPDATE, new=new, old=old)
        return new

    @staticmethod
    async def update_totals(order_id: int,
                            total: float,
                            delivery_fee: float | None = None,
                            delivery_method: DeliveryMethod | None = None) -> OrderDTO | None:
        """
        Patch the total of an order created by the atomic checkout procedure.

        delivery_fee/delivery_method are only written when given, so
        update_totals(order_id, total) is the legacy-schema variant.
        """
        values = {'total': total}
        if delivery_fee is not None:
            values['delivery_fee'] = delivery_fee
        if delivery_method is not None:
            values['delivery_method'] = delivery_method
        return await OrderRepository._update(order_id, **values)

    @staticmethod
    async def update_delivery_method(order_id: int, delivery_method: DeliveryMethod) -> OrderDTO | None:
        return await OrderRepository._update(order_id, delivery_method=delivery_method)

    @staticmethod
    async def update_status(order_id: int, status: OrderStatus) -> OrderDTO | None:
        return await OrderRepository._update(order_id, status=status)
