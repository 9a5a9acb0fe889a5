import logging

from sqlalchemy import select, insert, delete

from db import session_execute, session_flush
from enums.order_status import OrderStatus
from enums.realtime_event_type import RealtimeEventType
from models.cart import Cart
from models.cartItem import CartItem
from models.order import Order
from models.orderItem import OrderItem
from models.product import Product
from repositories.order import OrderRepository
from services.realtime import RealtimeService
from utils.transaction_manager import TransactionManager

logger = logging.getLogger(__name__)


class CheckoutRepository:
    @staticmethod
    async def finalize_checkout(user_id: int, vendor_id: int) -> int | None:
        """
        Server-side checkout procedure for one vendor.

        In a single transaction: create the order from the user's cart lines
        of vendor_id (total = subtotal, no delivery fee), snapshot the lines
        into order_items and delete them from the cart.

        Returns:
            The new order id, or None if the cart holds nothing from vendor_id
        """
        async with TransactionManager.atomic_transaction() as session:
            cart_id = await session_execute(
                select(Cart.id).where(Cart.user_id == user_id).order_by(Cart.id).limit(1), session)
            cart_id = cart_id.scalar()
            if cart_id is None:
                return None

            lines = await session_execute(
                select(CartItem.id, CartItem.product_id, CartItem.quantity, CartItem.size, Product.price)
                .join(Product, Product.id == CartItem.product_id)
                .where(CartItem.cart_id == cart_id, Product.vendor_id == vendor_id),
                session
            )
            lines = lines.all()
            if len(lines) == 0:
                return None

            subtotal = round(sum(line.price * line.quantity for line in lines), 2)
            result = await session_execute(insert(Order).values(
                user_id=user_id,
                vendor_id=vendor_id,
                status=OrderStatus.PENDING,
                subtotal=subtotal,
                total=subtotal
            ), session)
            order_id = result.inserted_primary_key[0]

            for line in lines:
                session.add(OrderItem(
                    order_id=order_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.price,
                    size=line.size
                ))
            await session_flush(session)
            await session_execute(delete(CartItem).where(CartItem.id.in_([line.id for line in lines])), session)

        logger.info(f"Checkout procedure created order {order_id} for user {user_id}, vendor {vendor_id}")
        order = await OrderRepository.get_by_id(order_id)
        await RealtimeService.publish_change("orders", RealtimeEventType.INSERT, new=order)
        return order_id
