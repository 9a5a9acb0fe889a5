import logging

from sqlalchemy.exc import SQLAlchemyError

from enums.delivery_method import DeliveryMethod
from enums.order_status import OrderStatus
from enums.text_entity import TextEntity
from exceptions import UnsupportedColumnException
from models.cartItem import CartItemDTO
from models.checkout import CheckoutOrderDTO
from models.message import MessageDTO
from models.order import OrderDTO
from models.orderItem import OrderItemDTO
from repositories.checkout import CheckoutRepository
from repositories.message import MessageRepository
from repositories.order import OrderRepository
from repositories.orderItem import OrderItemRepository
from repositories.product import ProductRepository
from repositories.vendor import VendorRepository
from utils.localizator import Localizator

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Remote side of checkout, one vendor at a time.

    Stateless: CartService owns the local mirror, the snapshot and the
    rollback; everything here talks to the store only.
    """

    @staticmethod
    async def finalize_atomic(user_id: int, vendor_id: int) -> int | None:
        """
        Run the atomic server-side checkout for one vendor.

        Returns:
            The created order id, or None if the procedure produced no order
            or failed (the caller then falls back to per-vendor inserts)
        """
        try:
            return await CheckoutRepository.finalize_checkout(user_id, vendor_id)
        except SQLAlchemyError as e:
            logger.warning(f"Atomic checkout failed for user {user_id}, vendor {vendor_id}: {e}")
            return None

    @staticmethod
    async def apply_delivery(order_id: int,
                             delivery_fee: float,
                             delivery_method: DeliveryMethod) -> CheckoutOrderDTO:
        """
        Patch an order created by the atomic procedure with the delivery details.

        fee > 0: total becomes subtotal + fee, written together with the method;
        if the store rejects the method column the total is written alone.
        fee == 0: only the method is written, failures are logged and ignored.

        Args:
            order_id: Order created by finalize_atomic()
            delivery_fee: Fee allocated to the order's vendor
            delivery_method: Pickup or delivery

        Returns:
            CheckoutOrderDTO describing the final order
        """
        order = await OrderRepository.get_by_id(order_id)
        subtotal = order.subtotal or 0.0
        total = subtotal
        stored_method = None

        if delivery_fee > 0:
            total = round(subtotal + delivery_fee, 2)
            try:
                await OrderRepository.update_totals(order_id, total, delivery_fee, delivery_method)
                stored_method = delivery_method
            except UnsupportedColumnException:
                logger.info(f"Order {order_id}: delivery columns unsupported, storing total only")
                await OrderRepository.update_totals(order_id, total)
        else:
            try:
                await OrderRepository.update_delivery_method(order_id, delivery_method)
                stored_method = delivery_method
            except (UnsupportedColumnException, SQLAlchemyError) as e:
                logger.warning(f"Order {order_id}: delivery method not stored: {e}")

        return CheckoutOrderDTO(
            id=order_id,
            vendor_id=order.vendor_id,
            subtotal=subtotal,
            delivery_fee=delivery_fee if total > subtotal else 0.0,
            total=total,
            delivery_method=stored_method
        )

    @staticmethod
    async def place_vendor_order(user_id: int,
                                 vendor_id: int,
                                 items: list[CartItemDTO],
                                 delivery_fee: float,
                                 delivery_method: DeliveryMethod) -> CheckoutOrderDTO:
        """
        Create one vendor's order from cart lines (non-atomic fallback).

        Steps: insert the order, insert the order item snapshots, then two
        best-effort steps that never fail the checkout: a system message to
        the vendor owner and the stock decrement.

        Args:
            user_id: Customer placing the order
            vendor_id: Vendor the lines belong to
            items: Cart lines of this vendor, with product snapshots
            delivery_fee: Fee allocated to this vendor
            delivery_method: Pickup or delivery

        Returns:
            CheckoutOrderDTO of the created order

        Raises:
            SQLAlchemyError: order or order item insert failed
        """
        subtotal = round(sum(item.line_total for item in items), 2)
        total = round(subtotal + delivery_fee, 2)
        order_dto = OrderDTO(
            user_id=user_id,
            vendor_id=vendor_id,
            status=OrderStatus.PENDING,
            subtotal=subtotal,
            total=total,
            delivery_fee=delivery_fee,
            delivery_method=delivery_method
        )
        legacy_dto = order_dto.model_copy(update={'delivery_fee': None, 'delivery_method': None})

        if OrderRepository.delivery_columns_supported:
            try:
                order = await OrderRepository.create(order_dto)
            except UnsupportedColumnException:
                logger.info(f"Retrying order for vendor {vendor_id} without delivery columns")
                order = await OrderRepository.create(legacy_dto)
        else:
            order = await OrderRepository.create(legacy_dto)

        await OrderItemRepository.create_many([
            OrderItemDTO(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.product.price if item.product else 0.0,
                size=item.size
            ) for item in items
        ])
        logger.info(f"Order {order.id} created for user {user_id}, vendor {vendor_id}, total {total:.2f}")

        await CheckoutService.notify_vendor(user_id, vendor_id, order.id, total)
        await CheckoutService.decrement_stock(items)

        return CheckoutOrderDTO(
            id=order.id,
            vendor_id=vendor_id,
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            total=total,
            delivery_method=order.delivery_method
        )

    @staticmethod
    async def notify_vendor(user_id: int, vendor_id: int, order_id: int, total: float) -> None:
        try:
            vendor = await VendorRepository.get_by_id(vendor_id)
            if vendor is None:
                logger.warning(f"Vendor {vendor_id} not found, order {order_id} message skipped")
                return
            content = Localizator.get_text(TextEntity.VENDOR, "new_order_message").format(
                order_id=order_id,
                total=Localizator.format_price(total)
            )
            await MessageRepository.create(MessageDTO(
                sender_user_id=user_id,
                receiver_user_id=vendor.owner_user_id,
                vendor_id=vendor_id,
                content=content
            ))
        except SQLAlchemyError as e:
            logger.warning(f"Order {order_id}: vendor message not sent: {e}")

    @staticmethod
    async def decrement_stock(items: list[CartItemDTO]) -> None:
        """Atomic decrement per product, read-then-write as fallback. Never raises on store errors."""
        for item in items:
            try:
                await ProductRepository.decrement_stock(item.product_id, item.quantity)
                continue
            except SQLAlchemyError as e:
                logger.warning(f"Atomic stock decrement failed for product {item.product_id}: {e}")
            try:
                product = await ProductRepository.get_by_id(item.product_id)
                if product is not None and product.stock is not None:
                    await ProductRepository.set_stock(product.id, product.stock - item.quantity)
            except SQLAlchemyError as e:
                logger.warning(f"Stock for product {item.product_id} not updated: {e}")
