import logging

from pydantic import BaseModel

from enums.order_status import OrderStatus
from exceptions import (
    OrderNotFoundException,
    InvalidOrderStateException,
    OrderOwnershipException,
    PermissionDeniedException,
)
from models.order import OrderDTO
from models.orderItem import OrderItemDTO
from repositories.order import OrderRepository
from repositories.orderItem import OrderItemRepository
from repositories.vendor import VendorRepository
from services.session import SessionService
from utils.order_state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


class OrderDetailsDTO(BaseModel):
    order: OrderDTO
    items: list[OrderItemDTO] = []
    vendor_name: str | None = None


class OrderService:

    @staticmethod
    async def _with_details(orders: list[OrderDTO]) -> list[OrderDetailsDTO]:
        if len(orders) == 0:
            return []
        order_ids = [order.id for order in orders]
        items = await OrderItemRepository.get_by_order_ids(order_ids)
        vendors = await VendorRepository.get_by_ids(list({order.vendor_id for order in orders}))
        vendor_names = {vendor.id: vendor.store_name for vendor in vendors}

        items_by_order: dict[int, list[OrderItemDTO]] = {}
        for item in items:
            items_by_order.setdefault(item.order_id, []).append(item)
        return [OrderDetailsDTO(order=order,
                                items=items_by_order.get(order.id, []),
                                vendor_name=vendor_names.get(order.vendor_id))
                for order in orders]

    @staticmethod
    async def get_order_history(session: SessionService) -> list[OrderDetailsDTO]:
        """
        Orders of the signed-in user, newest first, with their lines
        (product names joined in) and the store name of each vendor.
        """
        user_id = session.require_user_id("load order history")
        orders = await OrderRepository.get_by_user_id(user_id)
        return await OrderService._with_details(orders)

    @staticmethod
    async def get_confirmation(session: SessionService, order_ids: list[int]) -> list[OrderDetailsDTO]:
        """Details of just-placed orders for the confirmation screen, in the given order."""
        user_id = session.require_user_id("load order confirmation")
        orders = await OrderRepository.get_by_ids(order_ids)
        position = {order_id: index for index, order_id in enumerate(order_ids)}
        orders = sorted((order for order in orders if order.user_id == user_id),
                        key=lambda order: position[order.id])
        return await OrderService._with_details(orders)

    @staticmethod
    async def get_vendor_orders(session: SessionService,
                                vendor_id: int,
                                statuses: list[OrderStatus] | None = None) -> list[OrderDetailsDTO]:
        user_id = session.require_user_id("load vendor orders")
        vendor = await VendorRepository.get_by_id(vendor_id)
        if vendor is None or vendor.owner_user_id != user_id:
            raise PermissionDeniedException(f"vendor {vendor_id} orders", "not the store owner")
        orders = await OrderRepository.get_by_vendor_id(vendor_id, statuses)
        return await OrderService._with_details(orders)

    @staticmethod
    async def update_status(session: SessionService, order_id: int, status: OrderStatus) -> OrderDTO:
        """
        Move an order to a new status.

        The store owner may perform any valid transition, the customer only
        those that need no vendor (cancelling a pending order). The
        repository publishes the change, which reaches the customer's
        OrderStatusListener.

        Raises:
            OrderNotFoundException: Unknown order
            OrderOwnershipException: Caller is neither customer nor store owner
            InvalidOrderStateException: Transition not allowed
        """
        user_id = session.require_user_id("update order status")
        order = await OrderRepository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)

        vendor = await VendorRepository.get_by_id(order.vendor_id)
        is_vendor = vendor is not None and vendor.owner_user_id == user_id
        if not is_vendor and order.user_id != user_id:
            raise OrderOwnershipException(order_id, user_id)

        current = order.status.value
        valid = OrderStateMachine.validate_and_log_transition(
            order_id, current, status.value,
            vendor_user_id=user_id if is_vendor else None,
            user_id=user_id
        )
        if not valid:
            raise InvalidOrderStateException(order_id, current, status.value)

        updated = await OrderRepository.update_status(order_id, status)
        if updated is None:
            raise OrderNotFoundException(order_id)
        return updated
