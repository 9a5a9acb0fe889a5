import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

import config
from enums.order_status import OrderStatus
from enums.push_permission import PushPermission
from enums.realtime_event_type import RealtimeEventType
from enums.text_entity import TextEntity
from exceptions import MarketplaceException
from services.notice import NoticeService, NoticeDTO
from services.push import PushSender
from services.realtime import RealtimeService, ChangeEventDTO, RealtimeSubscription
from services.session import SessionService
from utils.error_handler import to_notice
from utils.localizator import Localizator

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Delivers a notification the best way available: native push when the
    user granted permission and an endpoint accepted it, in-app toast otherwise.
    """

    def __init__(self, notices: NoticeService, permission: PushPermission = PushPermission.DEFAULT):
        self.notices = notices
        self.permission = permission

    async def notify(self, user_id: int, title: str, body: str, url: str | None = None) -> bool:
        """
        Returns:
            True if delivered as native push, False if shown as toast
        """
        if self.permission == PushPermission.GRANTED and config.PUSH_ENABLED:
            try:
                result = await PushSender.send_to_user(user_id, title, body, url)
                if result.sent > 0:
                    return True
            except SQLAlchemyError as e:
                logger.warning(f"Push lookup for user {user_id} failed, falling back to toast: {e}")
        self.notices.push(NoticeDTO(title=title, description=body))
        return False


class OrderStatusListener:
    """
    Turns status changes of the user's orders into notifications.

    A change is announced once: events that carry no new status, repeat the
    previous status or repeat a status already announced for that order are
    dropped.
    """

    STATUS_TEXT_KEYS = {
        OrderStatus.CONFIRMED.value: "order_status_confirmed",
        OrderStatus.PREPARING.value: "order_status_preparing",
        OrderStatus.READY.value: "order_status_ready",
        OrderStatus.FOR_DELIVERY.value: "order_status_for_delivery",
        OrderStatus.DELIVERED.value: "order_status_delivered",
        OrderStatus.COMPLETED.value: "order_status_completed",
        OrderStatus.CANCELLED.value: "order_status_cancelled",
    }

    def __init__(self, session: SessionService, notifier: NotificationService):
        self.session = session
        self.notifier = notifier
        self._last_seen: dict[int, str] = {}
        self._subscription: RealtimeSubscription | None = None
        self._task: asyncio.Task | None = None

    def describe(self, order_id: int, status: str) -> tuple[str, str]:
        title = Localizator.get_text(TextEntity.USER, "order_status_title").format(order_id=order_id)
        key = self.STATUS_TEXT_KEYS.get(status)
        if key is None:
            body = Localizator.get_text(TextEntity.USER, "order_status_generic").format(
                status=status.replace("_", " "))
        else:
            body = Localizator.get_text(TextEntity.USER, key)
        return title, body

    async def handle(self, event: ChangeEventDTO) -> bool:
        """
        Returns:
            True if the event produced a notification
        """
        if event.table != "orders" or event.event_type != RealtimeEventType.UPDATE or event.new is None:
            return False
        order_id = event.new.get('id')
        status = event.new.get('status')
        if not order_id or not status:
            return False
        if event.new.get('user_id') != self.session.user_id:
            return False
        old_status = (event.old or {}).get('status')
        if old_status == status or self._last_seen.get(order_id) == status:
            return False

        self._last_seen[order_id] = status
        title, body = self.describe(order_id, status)
        logger.info(f"Order {order_id} of user {self.session.user_id} moved to {status}")
        await self.notifier.notify(self.session.user_id, title, body, url="/orders")
        return True

    async def start(self) -> bool:
        user_id = self.session.user_id
        if user_id is None or self._task is not None:
            return False
        try:
            self._subscription = await RealtimeService.subscribe_changes(
                "orders",
                predicate=lambda event: event.record.get('user_id') == user_id
            )
        except MarketplaceException as e:
            self.notifier.notices.push(to_notice(e))
            return False
        self._task = asyncio.create_task(self._consume())
        return True

    async def _consume(self) -> None:
        async for event in self._subscription:
            await self.handle(event)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
