import asyncio
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from enums.notice_variant import NoticeVariant
from enums.text_entity import TextEntity
from exceptions import (
    MarketplaceException,
    AuthRequiredException,
    EmptyCartException,
    CartItemNotFoundException,
    CheckoutFailedException,
    RemoteReadFailedException,
    ValidationFailedException,
    MissingSizeException,
    OutOfStockException,
    VendorScopeException,
)
from models.cart import CartDTO
from models.cartItem import CartItemDTO
from models.checkout import CheckoutOptionsDTO, CheckoutOrderDTO, CheckoutResultDTO
from repositories.cart import CartRepository
from repositories.cartItem import CartItemRepository
from repositories.product import ProductRepository
from services.checkout import CheckoutService
from services.delivery_fee import allocate_delivery_fees
from services.notice import NoticeService, NoticeDTO
from services.session import SessionService
from utils.error_handler import handle_service_error, to_notice
from utils.localizator import Localizator

logger = logging.getLogger(__name__)


class CartService:
    """
    Local mirror of one customer's cart, kept in step with the store.

    One instance per consumer (screen, request scope). Every operation
    catches its own failures and reports them through the NoticeService,
    so callers never need try/except around cart calls.

    Attributes:
        cart: The remote cart row, None until loaded or created
        items: Cart lines with their product snapshot
        loading: True while load() is running
        error: Message of the last failed load, None otherwise
    """

    def __init__(self,
                 session: SessionService,
                 notices: NoticeService,
                 vendor_id: int | None = None,
                 auto_create: bool = True):
        self.session = session
        self.notices = notices
        self.vendor_id = vendor_id
        self.auto_create = auto_create

        self.cart: CartDTO | None = None
        self.items: list[CartItemDTO] = []
        self.loading = False
        self.error: str | None = None

        self._mounted = True
        self._lock = asyncio.Lock()

    def close(self) -> None:
        """Detach the consumer. Results of in-flight calls are discarded."""
        self._mounted = False

    def _apply(self, **state) -> None:
        if not self._mounted:
            logger.debug(f"Cart state update after close ignored: {', '.join(state)}")
            return
        for name, value in state.items():
            setattr(self, name, value)

    def _fail(self, exception: Exception, resource: str = "cart") -> None:
        if isinstance(exception, SQLAlchemyError):
            exception = RemoteReadFailedException(resource, str(exception))
        self.notices.push(to_notice(exception))

    def _replace_item(self, row: CartItemDTO) -> None:
        items = [item for item in self.items if item.id != row.id]
        position = next((index for index, item in enumerate(self.items) if item.id == row.id), len(items))
        items.insert(position, row)
        self._apply(items=items)

    def _find_local(self, product_id: int, size: str | None) -> CartItemDTO | None:
        return next((item for item in self.items
                     if item.product_id == product_id and item.size == size), None)

    async def _ensure_cart(self, user_id: int) -> CartDTO:
        if self.cart is not None:
            return self.cart
        cart = await CartRepository.get_by_user_id(user_id)
        if cart is None:
            created = await CartRepository.create(user_id, self.vendor_id)
            logger.info(f"Cart {created.id} created for user {user_id}")
            # Concurrent creators all settle on the oldest cart
            cart = await CartRepository.get_by_user_id(user_id)
        self._apply(cart=cart)
        return cart

    @property
    def subtotal(self) -> float:
        return round(sum(item.line_total for item in self.items), 2)

    @property
    def item_count(self) -> int:
        return sum(item.quantity or 0 for item in self.items)

    def vendor_groups(self, items: list[CartItemDTO] | None = None) -> dict[int | None, list[CartItemDTO]]:
        groups: dict[int | None, list[CartItemDTO]] = {}
        for item in self.items if items is None else items:
            groups.setdefault(item.vendor_id, []).append(item)
        return groups

    async def load(self) -> list[CartItemDTO]:
        """
        Fetch the user's cart and its lines.

        Creates the cart when auto_create is set and none exists. Without a
        session the mirror is reset to empty.

        Returns:
            The loaded lines (the previous ones if the load failed)
        """
        user_id = self.session.user_id
        if user_id is None:
            self._apply(cart=None, items=[], error=None)
            return []

        self._apply(loading=True, error=None)
        try:
            cart = await CartRepository.get_by_user_id(user_id)
            if cart is None and self.auto_create:
                cart = await CartRepository.create(user_id, self.vendor_id)
            items = await CartItemRepository.get_by_cart_id(cart.id) if cart is not None else []
            self._apply(cart=cart, items=items)
            return items
        except SQLAlchemyError as e:
            logger.error(f"Loading cart for user {user_id} failed: {e}")
            self._apply(error=str(e))
            self._fail(e)
            return self.items
        finally:
            self._apply(loading=False)

    async def add_item(self,
                       product_id: int,
                       quantity: int = 1,
                       size: str | None = None,
                       product_name: str | None = None) -> CartItemDTO | None:
        """
        Add quantity of a product (in a size) to the cart.

        A line for the same (product, size) is incremented rather than
        duplicated; the remote lookup covers lines the mirror has not seen yet.

        Args:
            product_id: Product to add
            quantity: Units to add, at least 1
            size: Size option, required when the product has size options
            product_name: Display name for the notice, defaults to the stored name

        Returns:
            The stored cart line, or None if the add was rejected
        """
        try:
            user_id = self.session.require_user_id("add to cart")
            if quantity < 1:
                raise ValidationFailedException(f"Quantity must be at least 1 (got {quantity})")
            size = size or None

            async with self._lock:
                product = await ProductRepository.get_by_id(product_id)
                if product is None:
                    raise ValidationFailedException(f"Product {product_id} is no longer available")
                if product.requires_size and size is None:
                    raise MissingSizeException(product_id, product.name)
                if size is not None and product.requires_size and size not in product.size_options:
                    raise ValidationFailedException(f"Size {size} is not offered for {product.name}")

                cart = await self._ensure_cart(user_id)
                if cart.vendor_id is not None and product.vendor_id != cart.vendor_id:
                    raise VendorScopeException(product_id, cart.vendor_id, product.vendor_id)

                existing = self._find_local(product_id, size)
                if existing is None:
                    existing = await CartItemRepository.get_by_product_and_size(cart.id, product_id, size)

                new_quantity = (existing.quantity if existing else 0) + quantity
                if product.stock is not None and new_quantity > product.stock:
                    raise OutOfStockException(product_id, new_quantity, product.stock)

                if existing is None:
                    try:
                        row = await CartItemRepository.create(cart.id, product_id, quantity, size)
                    except IntegrityError:
                        # Another consumer inserted the same line first
                        existing = await CartItemRepository.get_by_product_and_size(cart.id, product_id, size)
                        if existing is None:
                            raise
                        logger.info(f"Cart line {existing.id} created concurrently, adding {quantity} to it")
                        if product.stock is not None and existing.quantity + quantity > product.stock:
                            raise OutOfStockException(product_id, existing.quantity + quantity, product.stock)
                if existing is not None:
                    row = await CartItemRepository.increment_quantity(existing.id, quantity)
                    if row is None:
                        raise CartItemNotFoundException(existing.id)
                self._replace_item(row)

            self.notices.push(NoticeDTO(
                title=Localizator.get_text(TextEntity.USER, "added_to_cart_title"),
                description=Localizator.get_text(TextEntity.USER, "added_to_cart").format(
                    product_name=product_name or product.name),
                variant=NoticeVariant.SUCCESS
            ))
            return row
        except (MarketplaceException, SQLAlchemyError) as e:
            self._fail(e)
            return None

    async def update_quantity(self, cart_item_id: int, quantity: int) -> CartItemDTO | None:
        """Set a line's quantity; anything below 1 removes the line."""
        if quantity < 1:
            await self.remove_item(cart_item_id)
            return None
        try:
            async with self._lock:
                local = next((item for item in self.items if item.id == cart_item_id), None)
                if local is not None and local.product is not None and local.product.stock is not None \
                        and quantity > local.product.stock:
                    raise OutOfStockException(local.product_id, quantity, local.product.stock)
                row = await CartItemRepository.update_quantity(cart_item_id, quantity)
                if row is None:
                    raise CartItemNotFoundException(cart_item_id)
                self._replace_item(row)
                return row
        except (MarketplaceException, SQLAlchemyError) as e:
            self._fail(e)
            return None

    async def remove_item(self, cart_item_id: int) -> bool:
        async with self._lock:
            try:
                await CartItemRepository.remove_from_cart(cart_item_id)
            except SQLAlchemyError as e:
                self._fail(e)
                return False
            self._apply(items=[item for item in self.items if item.id != cart_item_id])
            return True

    async def clear_cart(self) -> bool:
        if self.cart is None:
            return False
        async with self._lock:
            try:
                await CartItemRepository.clear_cart(self.cart.id)
            except SQLAlchemyError as e:
                self._fail(e)
                return False
            self._apply(items=[])
            return True

    async def checkout(self, options: CheckoutOptionsDTO | None = None) -> CheckoutResultDTO:
        """
        Turn the selected cart lines into one order per vendor.

        The selected lines leave the mirror immediately. When the selection
        is the whole cart and holds a single vendor, the atomic server-side
        procedure is used; otherwise (or when it yields no order) each vendor
        group is inserted separately. On failure the mirror is restored,
        orders already created stay in the store.

        Args:
            options: Fees, delivery method and selected line ids

        Returns:
            CheckoutResultDTO with the created orders, empty on failure
        """
        options = options or CheckoutOptionsDTO()
        try:
            user_id = self.session.require_user_id("checkout")
        except AuthRequiredException as e:
            self.notices.push(handle_service_error(e))
            return CheckoutResultDTO(error=e.message)

        if options.selected_item_ids is None:
            selected = list(self.items)
        else:
            wanted = set(options.selected_item_ids)
            selected = [item for item in self.items if item.id in wanted]
        if len(selected) == 0:
            error = EmptyCartException(user_id)
            self.notices.push(handle_service_error(error))
            return CheckoutResultDTO(error=error.message)

        async with self._lock:
            return await self._checkout_locked(user_id, selected, options)

    async def _checkout_locked(self,
                               user_id: int,
                               selected: list[CartItemDTO],
                               options: CheckoutOptionsDTO) -> CheckoutResultDTO:
        snapshot_items = list(self.items)
        snapshot_cart = self.cart

        groups = self.vendor_groups(selected)
        orphaned = groups.pop(None, [])
        if orphaned:
            logger.warning(f"Skipping {len(orphaned)} cart line(s) without vendor for user {user_id}")
        if len(groups) == 0:
            error = EmptyCartException(user_id)
            self.notices.push(handle_service_error(error))
            return CheckoutResultDTO(error=error.message)
        checked_out_ids = {item.id for group in groups.values() for item in group}
        self._apply(items=[item for item in self.items if item.id not in checked_out_ids])

        vendor_ids = list(groups.keys())
        fees = allocate_delivery_fees(vendor_ids, options.resolved_delivery_fee(), options.delivery_fee_by_vendor)
        method = options.delivery_method
        created: list[CheckoutOrderDTO] = []

        try:
            atomic_order_id = None
            covers_whole_cart = checked_out_ids == {item.id for item in snapshot_items}
            if len(vendor_ids) == 1 and covers_whole_cart:
                atomic_order_id = await CheckoutService.finalize_atomic(user_id, vendor_ids[0])

            if atomic_order_id is not None:
                created.append(await CheckoutService.apply_delivery(atomic_order_id, fees[vendor_ids[0]], method))
            else:
                for vendor_id, items in groups.items():
                    created.append(await CheckoutService.place_vendor_order(
                        user_id, vendor_id, items, fees[vendor_id], method))
                await CartItemRepository.remove_many(list(checked_out_ids))
        except Exception as e:
            self._apply(items=snapshot_items, cart=snapshot_cart)
            created_ids = [order.id for order in created]
            if created_ids:
                logger.warning(f"Checkout for user {user_id} failed after creating orders {created_ids}; "
                               f"they remain in the store")
            logger.error(f"Checkout failed for user {user_id}: {e}", exc_info=True)
            failure = CheckoutFailedException(user_id, str(e), created_ids)
            self.notices.push(handle_service_error(failure))
            return CheckoutResultDTO(error=failure.reason)

        self.notices.push(NoticeDTO(
            title=Localizator.get_text(TextEntity.USER, "order_placed_title"),
            description=Localizator.get_text(TextEntity.USER, "order_placed").format(count=len(created)),
            variant=NoticeVariant.SUCCESS
        ))
        logger.info(f"Checkout for user {user_id} created orders {[order.id for order in created]}")
        return CheckoutResultDTO(orders=created)
