"""
Unit Tests: OrderService

Tests for services/order.py against an in-memory store covering:
- order history with lines, product and store names
- status updates through the state machine
- change event published for the customer's listener
"""

import asyncio

import pytest

from enums.order_status import OrderStatus
from exceptions import InvalidOrderStateException, OrderOwnershipException, PermissionDeniedException
from models.order import OrderDTO
from models.orderItem import OrderItemDTO
from repositories.order import OrderRepository
from repositories.orderItem import OrderItemRepository
from services.order import OrderService
from services.realtime import RealtimeService


@pytest.fixture
def place_order(marketplace):
    async def place(status=OrderStatus.PENDING) -> OrderDTO:
        order = await OrderRepository.create(OrderDTO(
            user_id=marketplace["customer"].id,
            vendor_id=marketplace["nena_store"].id,
            status=status,
            subtotal=10.0,
            total=60.0,
            delivery_fee=50.0
        ))
        await OrderItemRepository.create_many([
            OrderItemDTO(order_id=order.id, product_id=marketplace["pandesal"].id, quantity=2, unit_price=5.0)
        ])
        return order
    return place


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_newest_first_with_details(self, place_order, customer_session):
        first = await place_order()
        second = await place_order()

        history = await OrderService.get_order_history(customer_session)

        assert [details.order.id for details in history] == [second.id, first.id]
        assert history[0].vendor_name == "Aling Nena's"
        assert history[0].items[0].product_name == "Pandesal"

    @pytest.mark.asyncio
    async def test_confirmation_keeps_requested_order(self, place_order, customer_session):
        first = await place_order()
        second = await place_order()

        details = await OrderService.get_confirmation(customer_session, [second.id, first.id])

        assert [d.order.id for d in details] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_vendor_orders_for_owner_only(self, place_order, session_factory, marketplace):
        await place_order()
        store = marketplace["nena_store"].id

        orders = await OrderService.get_vendor_orders(session_factory(marketplace["nena"].id), store)
        assert len(orders) == 1

        with pytest.raises(PermissionDeniedException):
            await OrderService.get_vendor_orders(session_factory(marketplace["jose"].id), store)


class TestUpdateStatus:

    @pytest.mark.asyncio
    async def test_owner_moves_order_forward(self, place_order, session_factory, marketplace):
        order = await place_order()

        updated = await OrderService.update_status(session_factory(marketplace["nena"].id), order.id,
                                                   OrderStatus.CONFIRMED)

        assert updated.status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_customer_may_cancel_pending(self, place_order, customer_session):
        order = await place_order()

        updated = await OrderService.update_status(customer_session, order.id, OrderStatus.CANCELLED)

        assert updated.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_customer_cannot_confirm(self, place_order, customer_session):
        order = await place_order()

        with pytest.raises(InvalidOrderStateException):
            await OrderService.update_status(customer_session, order.id, OrderStatus.CONFIRMED)

    @pytest.mark.asyncio
    async def test_invalid_transition(self, place_order, session_factory, marketplace):
        order = await place_order()

        with pytest.raises(InvalidOrderStateException):
            await OrderService.update_status(session_factory(marketplace["nena"].id), order.id,
                                             OrderStatus.DELIVERED)

    @pytest.mark.asyncio
    async def test_stranger_rejected(self, place_order, session_factory, marketplace):
        order = await place_order()

        with pytest.raises(OrderOwnershipException):
            await OrderService.update_status(session_factory(marketplace["jose"].id), order.id,
                                             OrderStatus.CANCELLED)

    @pytest.mark.asyncio
    async def test_update_publishes_change(self, place_order, session_factory, marketplace):
        order = await place_order()
        subscription = await RealtimeService.subscribe_changes("orders")
        events = subscription.__aiter__()
        try:
            await OrderService.update_status(session_factory(marketplace["nena"].id), order.id,
                                             OrderStatus.PREPARING)
            event = await asyncio.wait_for(events.__anext__(), timeout=2)
        finally:
            await subscription.close()

        assert event.new["status"] == "preparing"
        assert event.old["status"] == "pending"
