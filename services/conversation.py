import asyncio
import logging
from datetime import datetime, timedelta
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

import config
from enums.message_state import MessageState
from enums.notice_variant import NoticeVariant
from enums.realtime_event_type import RealtimeEventType
from enums.text_entity import TextEntity
from exceptions import MarketplaceException, EmptyMessageException, RemoteReadFailedException
from models.conversation import ConversationKey, ConversationEntryDTO, ConversationSummaryDTO
from models.message import MessageDTO
from repositories.message import MessageRepository
from repositories.vendor import VendorRepository
from services.notice import NoticeService, NoticeDTO
from services.realtime import RealtimeService, ChangeEventDTO, BroadcastEventDTO, RealtimeSubscription
from services.session import SessionService
from utils.error_handler import to_notice
from utils.localizator import Localizator
from utils.message_state_machine import MessageStateMachine, MessageEvent
from utils.time import utc_now

logger = logging.getLogger(__name__)

BROADCAST_MESSAGE_EVENT = "message"


class ConversationService:
    """
    Conversation mirror of one user, merged from three sources.

    - persisted rows: load() and the realtime change feed of ``messages``
    - broadcast entries: ephemeral copies pushed by the sender before its
      insert lands, so the receiver sees the message without delay
    - optimistic entries: the user's own sends, shown before the insert returns

    A pending (broadcast or optimistic) entry disappears as soon as a stored
    row with the same (sender, receiver, content, vendor) fingerprint and a
    timestamp within MESSAGE_DEDUP_WINDOW_SECONDS is known, so one message
    is shown once whatever order its copies arrive in.
    """

    def __init__(self,
                 session: SessionService,
                 notices: NoticeService,
                 notifier=None,
                 client_id: str | None = None):
        self.session = session
        self.notices = notices
        self.notifier = notifier
        self.client_id = client_id or uuid4().hex

        self.owned_vendor_ids: set[int] = set()
        self.loading = False

        self._persisted: dict[int, MessageDTO] = {}
        self._deleted_ids: set[int] = set()
        self._pending: dict[str, ConversationEntryDTO] = {}
        self._vendor_owners: dict[int, int] = {}

        self._subscriptions: list[RealtimeSubscription] = []
        self._tasks: list[asyncio.Task] = []
        self._notify_tasks: set[asyncio.Task] = set()

    @property
    def user_id(self) -> int | None:
        return self.session.user_id

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(seconds=config.MESSAGE_DEDUP_WINDOW_SECONDS)

    def _touches_me(self, sender_user_id: int | None, receiver_user_id: int | None) -> bool:
        return self.user_id is not None and self.user_id in (sender_user_id, receiver_user_id)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        user_id = self.user_id
        if user_id is None:
            self._persisted = {}
            self._pending = {}
            return
        self.loading = True
        try:
            messages = await MessageRepository.get_by_user_id(user_id)
            vendors = await VendorRepository.get_by_owner(user_id)
            self.owned_vendor_ids = {vendor.id for vendor in vendors}
            for vendor in vendors:
                self._vendor_owners[vendor.id] = user_id
            # Merged, events applied while the read was in flight stay
            for message in messages:
                self._upsert(message)
            self._prune_pending()
        except SQLAlchemyError as e:
            logger.error(f"Loading messages for user {user_id} failed: {e}")
            self.notices.push(to_notice(RemoteReadFailedException("messages", str(e))))
        finally:
            self.loading = False

    # ------------------------------------------------------------------
    # Realtime input
    # ------------------------------------------------------------------

    def apply_change(self, event: ChangeEventDTO) -> None:
        """
        Apply a change-feed event of the messages table.

        Events about other users' messages are ignored. Applying the same
        event twice, or INSERT after UPDATE, leaves the mirror unchanged.
        """
        if event.table != "messages":
            return
        try:
            message = MessageDTO.model_validate(event.record)
        except ValidationError as e:
            logger.warning(f"Malformed message change event dropped: {e}")
            return
        if message.id is None or not self._touches_me(message.sender_user_id, message.receiver_user_id):
            return

        if event.event_type == RealtimeEventType.DELETE:
            self._persisted.pop(message.id, None)
            self._deleted_ids.add(message.id)
            return
        is_new = self._upsert(message)
        self._prune_pending()

        if is_new and event.event_type == RealtimeEventType.INSERT and message.receiver_user_id == self.user_id:
            self._announce_incoming(message)

    def _upsert(self, message: MessageDTO) -> bool:
        """Store a row unless it was deleted. Returns True if the id was not known yet."""
        if message.id in self._deleted_ids:
            return False
        existing = self._persisted.get(message.id)
        if existing is not None and existing.read_at is not None and message.read_at is None:
            # read_at only moves forward, a late INSERT must not unread the row
            message = message.model_copy(update={'read_at': existing.read_at})
        self._persisted[message.id] = message
        return existing is None

    def apply_broadcast(self, event: BroadcastEventDTO) -> None:
        """Keep an ephemeral copy of a message addressed to this user until its row arrives."""
        if event.event != BROADCAST_MESSAGE_EVENT:
            return
        if event.origin is not None and event.origin == self.client_id:
            return
        try:
            entry = ConversationEntryDTO(**event.payload, state=MessageState.PENDING)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Malformed message broadcast dropped: {e}")
            return
        if entry.sender_user_id == self.user_id or entry.receiver_user_id != self.user_id:
            return
        if entry.temp_id is None:
            entry.temp_id = f"broadcast-{uuid4().hex}"
        if entry.temp_id in self._pending:
            return
        if self._find_persisted_match(entry, claimed=set()) is not None:
            return
        self._pending[entry.temp_id] = entry

    def _announce_incoming(self, message: MessageDTO) -> None:
        if self.notifier is None:
            return
        title = Localizator.get_text(TextEntity.USER, "new_message_title")
        task = asyncio.create_task(self.notifier.notify(self.user_id, title, message.content))
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_done)

    def _notify_done(self, task: asyncio.Task) -> None:
        self._notify_tasks.discard(task)
        if task.cancelled():
            return
        exception = task.exception()
        if exception is not None:
            logger.error(f"New message notification for user {self.user_id} failed: {exception}")

    # ------------------------------------------------------------------
    # Dedup
    # ------------------------------------------------------------------

    def _find_persisted_match(self, entry: ConversationEntryDTO, claimed: set[int]) -> int | None:
        window = self.dedup_window
        for message in self._persisted.values():
            if message.id in claimed:
                continue
            fingerprint = (message.sender_user_id, message.receiver_user_id, message.content, message.vendor_id)
            if fingerprint != entry.fingerprint:
                continue
            if message.created_at is None or abs(message.created_at - entry.created_at) <= window:
                return message.id
        return None

    def _prune_pending(self) -> None:
        claimed: set[int] = set()
        for temp_id, entry in sorted(self._pending.items(), key=lambda item: item[1].created_at):
            match = self._find_persisted_match(entry, claimed)
            if match is None:
                continue
            claimed.add(match)
            entry.state = MessageStateMachine.next_state(entry.state, MessageEvent.PERSISTED_MATCH)
            del self._pending[temp_id]
            logger.debug(f"Pending message {temp_id} matched stored message {match}")

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def conversation_key(self, entry: ConversationEntryDTO | MessageDTO) -> ConversationKey:
        other = entry.receiver_user_id if entry.sender_user_id == self.user_id else entry.sender_user_id
        if entry.vendor_id is not None and entry.vendor_id in self.owned_vendor_ids:
            return ConversationKey(entry.vendor_id, other)
        if entry.vendor_id is not None:
            return ConversationKey(entry.vendor_id, None)
        return ConversationKey(None, other)

    def entries(self) -> list[ConversationEntryDTO]:
        entries = [ConversationEntryDTO.from_message(message) for message in self._persisted.values()]
        entries.extend(self._pending.values())
        return sorted(entries, key=lambda entry: (entry.created_at, entry.id or 0))

    def thread(self, key: ConversationKey) -> list[ConversationEntryDTO]:
        return [entry for entry in self.entries() if self.conversation_key(entry) == key]

    def _is_unread(self, message: MessageDTO) -> bool:
        return message.receiver_user_id == self.user_id and message.read_at is None

    def unread_count(self, key: ConversationKey | None = None) -> int:
        return sum(1 for message in self._persisted.values()
                   if self._is_unread(message) and (key is None or self.conversation_key(message) == key))

    def conversations(self) -> list[ConversationSummaryDTO]:
        summaries: dict[ConversationKey, ConversationSummaryDTO] = {}
        for entry in self.entries():
            key = self.conversation_key(entry)
            summary = summaries.get(key)
            if summary is None:
                summaries[key] = ConversationSummaryDTO(
                    vendor_id=key.vendor_id,
                    counterpart_user_id=key.counterpart_user_id,
                    last_message=entry
                )
            else:
                summary.last_message = entry
        for key, summary in summaries.items():
            summary.unread_count = self.unread_count(key)
        return sorted(summaries.values(), key=lambda summary: summary.last_message.created_at, reverse=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _resolve_receiver(self, key: ConversationKey) -> int:
        if key.counterpart_user_id is not None:
            return key.counterpart_user_id
        if key.vendor_id not in self._vendor_owners:
            vendor = await VendorRepository.get_by_id(key.vendor_id)
            if vendor is None:
                raise RemoteReadFailedException("vendor", f"vendor {key.vendor_id} not found")
            self._vendor_owners[key.vendor_id] = vendor.owner_user_id
        return self._vendor_owners[key.vendor_id]

    async def send_message(self, key: ConversationKey, content: str) -> MessageDTO | None:
        """
        Send a message into the conversation identified by key.

        The entry shows up immediately (optimistic), is broadcast to the
        receiver, then inserted. A failed insert removes the entry again and
        reports a notice.

        Returns:
            The stored message, or None if the send failed
        """
        try:
            user_id = self.session.require_user_id("send message")
            content = (content or "").strip()
            if not content:
                raise EmptyMessageException()
            receiver_user_id = await self._resolve_receiver(key)
        except (MarketplaceException, SQLAlchemyError) as e:
            self.notices.push(to_notice(e))
            return None

        entry = ConversationEntryDTO(
            temp_id=f"temp-{uuid4().hex}",
            sender_user_id=user_id,
            receiver_user_id=receiver_user_id,
            vendor_id=key.vendor_id,
            content=content,
            created_at=utc_now(),
            state=MessageState.PENDING
        )
        self._pending[entry.temp_id] = entry

        await RealtimeService.broadcast(
            RealtimeService.user_topic(receiver_user_id),
            BROADCAST_MESSAGE_EVENT,
            entry.model_dump(mode="json", include={'temp_id', 'sender_user_id', 'receiver_user_id',
                                                   'vendor_id', 'content', 'created_at'}),
            origin=self.client_id
        )

        try:
            stored = await MessageRepository.create(MessageDTO(
                sender_user_id=user_id,
                receiver_user_id=receiver_user_id,
                vendor_id=key.vendor_id,
                content=content
            ))
        except SQLAlchemyError as e:
            entry.state = MessageStateMachine.next_state(entry.state, MessageEvent.INSERT_REJECTED)
            self._pending.pop(entry.temp_id, None)
            logger.warning(f"Message from user {user_id} to {receiver_user_id} rejected: {e}")
            self.notices.push(NoticeDTO(
                title=Localizator.get_text(TextEntity.USER, "message_failed_title"),
                description=Localizator.get_text(TextEntity.USER, "message_failed").format(reason=str(e)),
                variant=NoticeVariant.DESTRUCTIVE,
                code="remote_write_failed"
            ))
            return None

        entry.state = MessageStateMachine.next_state(entry.state, MessageEvent.INSERT_CONFIRMED)
        self._pending.pop(entry.temp_id, None)
        self._upsert(stored)
        self._prune_pending()
        return stored

    async def open_conversation(self, key: ConversationKey) -> int:
        """
        Mark the conversation read.

        Local rows addressed to this user are marked first; the remote update
        is restricted to rows where this user is the receiver.

        Returns:
            Number of rows marked read locally
        """
        user_id = self.user_id
        if user_id is None:
            return 0
        now = utc_now()
        marked = 0
        for message_id, message in list(self._persisted.items()):
            if self._is_unread(message) and self.conversation_key(message) == key:
                self._persisted[message_id] = message.model_copy(update={'read_at': now})
                marked += 1
        if marked == 0:
            return 0

        try:
            await MessageRepository.mark_read(user_id, key.vendor_id, key.counterpart_user_id)
        except SQLAlchemyError as e:
            logger.warning(f"Marking conversation {key} read failed for user {user_id}: {e}")
            self.notices.push(to_notice(RemoteReadFailedException("messages", str(e))))
        return marked

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Subscribe to the change feed and the user's broadcast topic."""
        user_id = self.user_id
        if user_id is None or self._tasks:
            return False
        try:
            changes = await RealtimeService.subscribe_changes(
                "messages",
                predicate=lambda event: self._touches_me(event.record.get('sender_user_id'),
                                                         event.record.get('receiver_user_id'))
            )
            self._subscriptions.append(changes)
            broadcasts = await RealtimeService.subscribe_broadcast(RealtimeService.user_topic(user_id))
            self._subscriptions.append(broadcasts)
        except MarketplaceException as e:
            self.notices.push(to_notice(e))
            await self.stop()
            return False

        self._tasks = [
            asyncio.create_task(self._consume(changes, self.apply_change)),
            asyncio.create_task(self._consume(broadcasts, self.apply_broadcast)),
        ]
        logger.info(f"Conversation listeners started for user {user_id}")
        return True

    async def _consume(self, subscription: RealtimeSubscription, apply) -> None:
        async for event in subscription:
            apply(event)

    async def stop(self) -> None:
        for task in list(self._notify_tasks):
            task.cancel()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        for subscription in self._subscriptions:
            await subscription.close()
        self._subscriptions = []
