"""
Realtime transport over Redis pub/sub.

Two kinds of traffic share the Redis connection:

- change feed: every committed insert/update/delete on a watched table is
  published to ``realtime:changes:<table>`` as a ChangeEventDTO
- broadcast: ephemeral, client-to-client payloads on
  ``realtime:broadcast:<topic>``; nothing is stored

Publishing is best effort. A lost event is repaired by the next load() of
the consumer, so Redis errors on publish are logged and swallowed.
"""

import logging
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Optional, Type

from pydantic import BaseModel, Field
from redis.asyncio.client import PubSub
from redis.exceptions import AuthenticationError, NoPermissionError, RedisError

from enums.realtime_event_type import RealtimeEventType
from exceptions import PermissionDeniedException, RemoteReadFailedException
from redis_instance import get_redis
from utils.time import utc_now

logger = logging.getLogger(__name__)

CHANGE_CHANNEL_PREFIX = "realtime:changes:"
BROADCAST_CHANNEL_PREFIX = "realtime:broadcast:"


class ChangeEventDTO(BaseModel):
    table: str
    event_type: RealtimeEventType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    committed_at: datetime = Field(default_factory=utc_now)

    @property
    def record(self) -> dict[str, Any]:
        """Row the event is about: new for INSERT/UPDATE, old for DELETE."""
        return self.new if self.new is not None else (self.old or {})


class BroadcastEventDTO(BaseModel):
    topic: str
    event: str
    payload: dict[str, Any] = Field(default_factory=dict)
    # Client id of the sender, lets receivers drop their own echo
    origin: str | None = None


class RealtimeSubscription:
    """
    Async iterator over the events of one channel.

    Usage:
        subscription = await RealtimeService.subscribe_changes("messages")
        async for event in subscription:
            ...
        await subscription.close()
    """

    def __init__(self, pubsub: PubSub, channel: str, model: Type[BaseModel],
                 predicate: Optional[Callable[[Any], bool]] = None):
        self._pubsub = pubsub
        self.channel = channel
        self._model = model
        self._predicate = predicate
        self.closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self):
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = self._model.model_validate_json(message["data"])
            except ValueError as e:
                logger.warning(f"Dropping malformed realtime payload on {self.channel}: {e}")
                continue
            if self._predicate is None or self._predicate(event):
                yield event

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._pubsub.unsubscribe(self.channel)
        finally:
            await self._pubsub.aclose()


class RealtimeService:

    @staticmethod
    def change_channel(table: str) -> str:
        return f"{CHANGE_CHANNEL_PREFIX}{table}"

    @staticmethod
    def broadcast_channel(topic: str) -> str:
        return f"{BROADCAST_CHANNEL_PREFIX}{topic}"

    @staticmethod
    def user_topic(user_id: int) -> str:
        return f"user:{user_id}"

    @staticmethod
    async def publish_change(table: str,
                             event_type: RealtimeEventType,
                             new: BaseModel | None = None,
                             old: BaseModel | None = None) -> None:
        """
        Publish a committed row change to the change feed.

        Args:
            table: Table name the row belongs to
            event_type: INSERT, UPDATE or DELETE
            new: Row after the change (INSERT/UPDATE)
            old: Row before the change (UPDATE/DELETE), if known
        """
        event = ChangeEventDTO(
            table=table,
            event_type=event_type,
            new=new.model_dump(mode="json") if new is not None else None,
            old=old.model_dump(mode="json") if old is not None else None,
        )
        try:
            await get_redis().publish(RealtimeService.change_channel(table), event.model_dump_json())
        except RedisError as e:
            logger.warning(f"Change event {table}/{event_type.value} not published: {e}")

    @staticmethod
    async def broadcast(topic: str, event: str, payload: dict[str, Any], origin: str | None = None) -> bool:
        """
        Send an ephemeral payload to everyone listening on topic.

        Returns:
            True if Redis accepted the payload, False otherwise
        """
        message = BroadcastEventDTO(topic=topic, event=event, payload=payload, origin=origin)
        try:
            await get_redis().publish(RealtimeService.broadcast_channel(topic), message.model_dump_json())
            return True
        except RedisError as e:
            logger.warning(f"Broadcast {event} on {topic} not delivered: {e}")
            return False

    @staticmethod
    async def _subscribe(channel: str, model: Type[BaseModel],
                         predicate: Optional[Callable[[Any], bool]]) -> RealtimeSubscription:
        pubsub = get_redis().pubsub()
        try:
            await pubsub.subscribe(channel)
        except (AuthenticationError, NoPermissionError) as e:
            await pubsub.aclose()
            raise PermissionDeniedException(channel, str(e)) from e
        except RedisError as e:
            await pubsub.aclose()
            raise RemoteReadFailedException(channel, str(e)) from e
        logger.debug(f"Subscribed to {channel}")
        return RealtimeSubscription(pubsub, channel, model, predicate)

    @staticmethod
    async def subscribe_changes(table: str,
                                predicate: Optional[Callable[[ChangeEventDTO], bool]] = None) -> RealtimeSubscription:
        return await RealtimeService._subscribe(RealtimeService.change_channel(table), ChangeEventDTO, predicate)

    @staticmethod
    async def subscribe_broadcast(topic: str) -> RealtimeSubscription:
        return await RealtimeService._subscribe(RealtimeService.broadcast_channel(topic), BroadcastEventDTO, None)
