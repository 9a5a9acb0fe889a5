import logging

from aiogram.exceptions import TelegramAPIError, TelegramForbiddenError
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

import config
from bot_instance import get_bot, chat_endpoint, chat_id_from_endpoint
from enums.push_permission import PushPermission
from enums.text_entity import TextEntity
from models.push_subscription import PushSubscriptionDTO
from repositories.push_subscription import PushSubscriptionRepository
from services.session import SessionService
from utils.html_escape import safe_html
from utils.localizator import Localizator

logger = logging.getLogger(__name__)


class EnsureResultDTO(BaseModel):
    ok: bool
    # unsupported | unauthenticated | permission-denied | permission-not-granted
    reason: str | None = None


class PushDeliveryDTO(BaseModel):
    endpoint: str
    ok: bool
    error: str | None = None


class PushResultDTO(BaseModel):
    sent: int = 0
    results: list[PushDeliveryDTO] = Field(default_factory=list)


class PushSubscriptionService:
    """Registration of this device/chat as a push endpoint of the signed-in user."""

    @staticmethod
    async def ensure_subscription(session: SessionService,
                                  permission: PushPermission,
                                  endpoint: str | None,
                                  p256dh: str | None = None,
                                  auth: str | None = None,
                                  user_agent: str | None = None) -> EnsureResultDTO:
        """
        Store the endpoint for the current user if everything allows it.

        Args:
            session: Current session
            permission: Notification permission granted by the user
            endpoint: Push endpoint, None when the client cannot receive push
            p256dh: Client public key (web push clients only)
            auth: Client auth secret (web push clients only)
            user_agent: Client description, informational

        Returns:
            EnsureResultDTO, ok=False with the reason when nothing was stored
        """
        if not config.PUSH_ENABLED or not endpoint:
            return EnsureResultDTO(ok=False, reason="unsupported")
        if session.user_id is None:
            return EnsureResultDTO(ok=False, reason="unauthenticated")
        if permission == PushPermission.DENIED:
            return EnsureResultDTO(ok=False, reason="permission-denied")
        if permission != PushPermission.GRANTED:
            return EnsureResultDTO(ok=False, reason="permission-not-granted")

        await PushSubscriptionRepository.upsert(PushSubscriptionDTO(
            user_id=session.user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent
        ))
        logger.info(f"Push endpoint registered for user {session.user_id}")
        return EnsureResultDTO(ok=True)

    @staticmethod
    async def link_telegram_chat(session: SessionService,
                                 permission: PushPermission,
                                 chat_id: int,
                                 user_agent: str | None = "telegram") -> EnsureResultDTO:
        return await PushSubscriptionService.ensure_subscription(
            session, permission, chat_endpoint(chat_id), user_agent=user_agent
        )

    @staticmethod
    async def sync_if_granted(session: SessionService,
                              permission: PushPermission,
                              endpoint: str | None,
                              p256dh: str | None = None,
                              auth: str | None = None,
                              user_agent: str | None = None) -> EnsureResultDTO | None:
        """
        Refresh an existing registration on sign-in without prompting.

        Returns:
            None when permission was never granted, the ensure result otherwise
        """
        if permission != PushPermission.GRANTED or session.user_id is None:
            return None
        return await PushSubscriptionService.ensure_subscription(
            session, permission, endpoint, p256dh, auth, user_agent
        )


class PushSender:
    """Server side of push: fans a notification out to every endpoint of a user."""

    @staticmethod
    def _format(title: str, body: str, url: str | None) -> str:
        text = f"<b>{safe_html(title)}</b>\n{safe_html(body)}"
        if url:
            text += f"\n{safe_html(url)}"
        return text

    @staticmethod
    async def _deliver(subscription: PushSubscriptionDTO, text: str) -> PushDeliveryDTO:
        endpoint = subscription.endpoint
        try:
            chat_id = chat_id_from_endpoint(endpoint)
        except ValueError:
            return PushDeliveryDTO(endpoint=endpoint, ok=False, error="malformed endpoint")
        if chat_id is None:
            return PushDeliveryDTO(endpoint=endpoint, ok=False, error="unsupported endpoint")

        try:
            await get_bot().send_message(chat_id, text)
            return PushDeliveryDTO(endpoint=endpoint, ok=True)
        except TelegramForbiddenError as e:
            # Chat blocked the bot, the endpoint is gone for good
            logger.info(f"Removing push endpoint of user {subscription.user_id}: {e}")
            try:
                await PushSubscriptionRepository.delete_by_endpoint(endpoint)
            except SQLAlchemyError as delete_error:
                logger.warning(f"Push endpoint cleanup failed: {delete_error}")
            return PushDeliveryDTO(endpoint=endpoint, ok=False, error=str(e))
        except TelegramAPIError as e:
            logger.warning(f"Push to user {subscription.user_id} failed: {e}")
            return PushDeliveryDTO(endpoint=endpoint, ok=False, error=str(e))

    @staticmethod
    async def send_to_user(user_id: int,
                           title: str | None = None,
                           body: str | None = None,
                           url: str | None = None) -> PushResultDTO:
        """
        Send a notification to all push endpoints of user_id.

        Args:
            user_id: Recipient
            title: Defaults to the localized "Order update"
            body: Defaults to the localized "Your order status changed."
            url: Link shown under the body, defaults to /orders

        Returns:
            PushResultDTO with the number of successful deliveries and one
            result per endpoint
        """
        title = title or Localizator.get_text(TextEntity.USER, "push_default_title")
        body = body or Localizator.get_text(TextEntity.USER, "push_default_body")
        url = url or "/orders"

        subscriptions = await PushSubscriptionRepository.get_by_user_id(user_id)
        text = PushSender._format(title, body, url)
        result = PushResultDTO()
        for subscription in subscriptions:
            delivery = await PushSender._deliver(subscription, text)
            result.results.append(delivery)
            if delivery.ok:
                result.sent += 1
        logger.info(f"Push for user {user_id}: {result.sent}/{len(subscriptions)} delivered")
        return result
