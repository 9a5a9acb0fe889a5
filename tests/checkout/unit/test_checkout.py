"""
Unit Tests: Checkout

Tests for CartService.checkout() and services/checkout.py covering:
- single-vendor whole-cart checkout through the atomic procedure
- multi-vendor checkout, one order per vendor
- partial failure: local cart restored, created orders kept
- negative delivery fees charge nothing
- legacy schema without delivery columns
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import OperationalError

from enums.delivery_method import DeliveryMethod
from enums.notice_variant import NoticeVariant
from exceptions import UnsupportedColumnException
from models.cartItem import CartItemDTO, CartProductDTO
from models.checkout import CheckoutOptionsDTO
from models.order import OrderDTO
from repositories.cartItem import CartItemRepository
from repositories.checkout import CheckoutRepository
from repositories.message import MessageRepository
from repositories.order import OrderRepository
from repositories.orderItem import OrderItemRepository
from repositories.product import ProductRepository
from services.cart import CartService
from services.checkout import CheckoutService


async def filled_cart(session, notices, *lines) -> CartService:
    cart = CartService(session, notices)
    for product, quantity in lines:
        await cart.add_item(product.id, quantity)
    notices.drain()
    return cart


class TestSingleVendorCheckout:

    @pytest.mark.asyncio
    async def test_atomic_path_with_delivery_fee(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices, (marketplace["pandesal"], 4))

        with patch.object(CheckoutRepository, 'finalize_checkout',
                          wraps=CheckoutRepository.finalize_checkout) as finalize:
            result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=50))

        finalize.assert_awaited_once()
        assert result.error is None
        assert len(result.orders) == 1
        order = await OrderRepository.get_by_id(result.order_ids[0])
        assert order.subtotal == 20.0
        assert order.total == 70.0
        assert order.delivery_fee == 50.0
        assert order.delivery_method == DeliveryMethod.DELIVERY
        assert await CartItemRepository.get_by_cart_id(cart.cart.id) == []
        assert cart.items == []

        items = await OrderItemRepository.get_by_order_id(order.id)
        assert [(item.product_name, item.quantity, item.unit_price) for item in items] == [("Pandesal", 4, 5.0)]
        assert notices.notices[-1].variant == NoticeVariant.SUCCESS

    @pytest.mark.asyncio
    async def test_pickup_has_no_fee(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices, (marketplace["pandesal"], 2))

        result = await cart.checkout(CheckoutOptionsDTO(delivery_method=DeliveryMethod.PICKUP))

        order = await OrderRepository.get_by_id(result.order_ids[0])
        assert order.total == order.subtotal == 10.0
        assert order.delivery_method == DeliveryMethod.PICKUP

    @pytest.mark.asyncio
    async def test_partial_selection_skips_atomic_path(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices, (marketplace["pandesal"], 1))
        shirt_line = await cart.add_item(marketplace["shirt"].id, 1, size="M")
        pandesal_line = next(item for item in cart.items if item.product_id == marketplace["pandesal"].id)

        with patch('services.checkout.CheckoutService.finalize_atomic', new_callable=AsyncMock) as finalize:
            result = await cart.checkout(CheckoutOptionsDTO(selected_item_ids=[pandesal_line.id], delivery_fee=0))

        finalize.assert_not_awaited()
        assert len(result.orders) == 1
        assert [item.id for item in cart.items] == [shirt_line.id]
        remaining = await CartItemRepository.get_by_cart_id(cart.cart.id)
        assert [item.id for item in remaining] == [shirt_line.id]

    @pytest.mark.asyncio
    async def test_empty_selection(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices, (marketplace["pandesal"], 1))

        result = await cart.checkout(CheckoutOptionsDTO(selected_item_ids=[]))

        assert result.orders == []
        assert notices.notices[-1].code == "empty_cart"

    @pytest.mark.asyncio
    async def test_requires_session(self, anonymous_session, notices):
        result = await CartService(anonymous_session, notices).checkout()

        assert result.error is not None
        assert notices.notices[-1].code == "auth_required"


class TestMultiVendorCheckout:

    @pytest.mark.asyncio
    async def test_one_order_per_vendor(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 3), (marketplace["rice"], 2))

        result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=60))

        assert result.error is None
        orders = {order.vendor_id: order for order in await OrderRepository.get_by_ids(result.order_ids)}
        nena, jose = marketplace["nena_store"].id, marketplace["jose_store"].id
        assert set(orders) == {nena, jose}
        assert orders[nena].total == 15.0 + 30.0
        assert orders[jose].total == 110.0 + 30.0
        assert await CartItemRepository.get_by_cart_id(cart.cart.id) == []

    @pytest.mark.asyncio
    async def test_stock_decremented_and_vendor_messaged(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 3), (marketplace["rice"], 2))

        result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=0))

        assert (await ProductRepository.get_by_id(marketplace["pandesal"].id)).stock == 7
        assert (await ProductRepository.get_by_id(marketplace["rice"].id)).stock == 3
        nena_inbox = await MessageRepository.get_by_user_id(marketplace["nena"].id)
        assert len(nena_inbox) == 1
        assert nena_inbox[0].sender_user_id == customer_session.user_id
        nena_order = next(order for order in result.orders if order.vendor_id == marketplace["nena_store"].id)
        assert f"#{nena_order.id}" in nena_inbox[0].content

    @pytest.mark.asyncio
    async def test_fee_map_per_vendor(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 1), (marketplace["rice"], 1))
        jose = marketplace["jose_store"].id

        result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=100, delivery_fee_by_vendor={jose: 0}))

        fees = {order.vendor_id: order.delivery_fee for order in result.orders}
        assert fees[jose] == 0.0
        assert fees[marketplace["nena_store"].id] == 50.0

    @pytest.mark.asyncio
    async def test_failure_restores_cart_and_keeps_created_orders(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 1), (marketplace["rice"], 1))
        before = [item.id for item in cart.items]
        real_create = OrderRepository.create
        calls = []

        async def flaky_create(order_dto):
            calls.append(order_dto.vendor_id)
            if len(calls) == 2:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await real_create(order_dto)

        with patch('repositories.order.OrderRepository.create', side_effect=flaky_create):
            result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=0))

        assert result.orders == []
        assert result.error is not None
        assert [item.id for item in cart.items] == before
        assert notices.notices[-1].code == "checkout_failed"
        # The first vendor's order stays, its lines were not deleted remotely
        orders = await OrderRepository.get_by_user_id(customer_session.user_id)
        assert [order.vendor_id for order in orders] == [calls[0]]
        assert len(await CartItemRepository.get_by_cart_id(cart.cart.id)) == 2

    @pytest.mark.asyncio
    async def test_negative_fee_charges_nothing(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 2), (marketplace["rice"], 1))

        result = await cart.checkout(CheckoutOptionsDTO(delivery_fee=-50))

        assert result.error is None
        orders = await OrderRepository.get_by_ids(result.order_ids)
        assert len(orders) == 2
        for order in orders:
            assert order.delivery_fee == 0.0
            assert order.total == order.subtotal

    @pytest.mark.asyncio
    async def test_line_removed_during_failed_checkout_stays_removed(self, marketplace, customer_session, notices):
        cart = await filled_cart(customer_session, notices,
                                 (marketplace["pandesal"], 1), (marketplace["rice"], 1))
        rice_line = next(item for item in cart.items if item.product_id == marketplace["rice"].id)

        async def failing_order(*args):
            await asyncio.sleep(0)
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        with patch('services.checkout.CheckoutService.place_vendor_order', side_effect=failing_order):
            result, removed = await asyncio.gather(cart.checkout(CheckoutOptionsDTO(delivery_fee=0)),
                                                   cart.remove_item(rice_line.id))

        assert result.error is not None
        assert removed is True
        assert [item.product_id for item in cart.items] == [marketplace["pandesal"].id]
        assert len(await CartItemRepository.get_by_cart_id(cart.cart.id)) == 1


class TestLegacySchema:

    @pytest.mark.asyncio
    async def test_apply_delivery_retries_total_only(self):
        order = OrderDTO(id=9, vendor_id=2, subtotal=100.0, total=100.0)
        with patch('repositories.order.OrderRepository.get_by_id', new_callable=AsyncMock, return_value=order), \
                patch('repositories.order.OrderRepository.update_totals', new_callable=AsyncMock,
                      side_effect=[UnsupportedColumnException("orders", "delivery_method"), order]) as update:
            result = await CheckoutService.apply_delivery(9, 50.0, DeliveryMethod.DELIVERY)

        assert update.await_args_list[0].args == (9, 150.0, 50.0, DeliveryMethod.DELIVERY)
        assert update.await_args_list[1].args == (9, 150.0)
        assert result.total == 150.0
        assert result.delivery_method is None

    @pytest.mark.asyncio
    async def test_apply_delivery_zero_fee_ignores_method_failure(self):
        order = OrderDTO(id=9, vendor_id=2, subtotal=100.0, total=100.0)
        with patch('repositories.order.OrderRepository.get_by_id', new_callable=AsyncMock, return_value=order), \
                patch('repositories.order.OrderRepository.update_delivery_method', new_callable=AsyncMock,
                      side_effect=UnsupportedColumnException("orders", "delivery_method")):
            result = await CheckoutService.apply_delivery(9, 0.0, DeliveryMethod.PICKUP)

        assert result.total == 100.0
        assert result.delivery_fee == 0.0

    @pytest.mark.asyncio
    async def test_place_vendor_order_retries_without_delivery_columns(self):
        items = [CartItemDTO(id=1, product_id=4, quantity=2,
                             product=CartProductDTO(id=4, name="Pandesal", price=5.0, vendor_id=2))]
        created = OrderDTO(id=11, user_id=1, vendor_id=2, subtotal=10.0, total=60.0)

        with patch('repositories.order.OrderRepository.create', new_callable=AsyncMock,
                   side_effect=[UnsupportedColumnException("orders", "delivery_fee"), created]) as create, \
                patch('repositories.orderItem.OrderItemRepository.create_many', new_callable=AsyncMock), \
                patch('services.checkout.CheckoutService.notify_vendor', new_callable=AsyncMock), \
                patch('services.checkout.CheckoutService.decrement_stock', new_callable=AsyncMock):
            result = await CheckoutService.place_vendor_order(1, 2, items, 50.0, DeliveryMethod.DELIVERY)

        retry_dto = create.await_args_list[1].args[0]
        assert retry_dto.delivery_fee is None
        assert retry_dto.delivery_method is None
        assert retry_dto.total == 60.0
        assert result.id == 11

    @pytest.mark.asyncio
    async def test_missing_column_flips_repository_flag(self):
        error = OperationalError("INSERT", {}, Exception("table orders has no column named delivery_method"))

        with pytest.raises(UnsupportedColumnException):
            OrderRepository._raise_if_unsupported_column(error)
        assert OrderRepository.delivery_columns_supported is False
        assert 'delivery_fee' not in [column.name for column in OrderRepository._columns()]
