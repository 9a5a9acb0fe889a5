"""
Push transport: the marketplace Telegram bot.

A push endpoint of the form ``telegram:<chat_id>`` is a chat that started
the bot and linked itself to a marketplace user. PushSender resolves such
endpoints with chat_id_from_endpoint() and sends through get_bot().

Usage:
    from bot_instance import get_bot, chat_id_from_endpoint
    chat_id = chat_id_from_endpoint(subscription.endpoint)
    await get_bot().send_message(chat_id, text)
"""

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

import config

CHAT_ENDPOINT_PREFIX = "telegram:"

_bot_instance = None


def chat_endpoint(chat_id: int) -> str:
    return f"{CHAT_ENDPOINT_PREFIX}{chat_id}"


def chat_id_from_endpoint(endpoint: str) -> int | None:
    """
    Chat id addressed by a push endpoint.

    Returns:
        None for endpoints of another transport

    Raises:
        ValueError: the endpoint is a bot endpoint with a malformed chat id
    """
    if not endpoint.startswith(CHAT_ENDPOINT_PREFIX):
        return None
    return int(endpoint[len(CHAT_ENDPOINT_PREFIX):])


def get_bot() -> Bot:
    """Shared bot, created on first push. Messages go out in HTML parse mode."""
    global _bot_instance
    if _bot_instance is None:
        _bot_instance = Bot(
            token=config.TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML)
        )
    return _bot_instance


async def close_bot():
    """Close the bot's HTTP session on server shutdown. No-op if no push was sent."""
    global _bot_instance
    if _bot_instance is not None:
        await _bot_instance.session.close()
        _bot_instance = None
