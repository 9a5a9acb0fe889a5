"""
Unit Tests: ConversationService

Tests for services/conversation.py covering:
- a message seen through broadcast and change feed is shown once
- pending entries claim stored rows one-to-one within the dedup window
- read marking only touches messages addressed to the viewer
- grouping into conversations from customer and store owner side
- load() merges with rows that arrived while it was reading
- new message notifications are tracked and cancelled on stop()
"""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import OperationalError

from enums.message_state import MessageState
from enums.realtime_event_type import RealtimeEventType
from models.conversation import ConversationKey
from models.message import MessageDTO
from services.conversation import ConversationService, BROADCAST_MESSAGE_EVENT
from services.realtime import ChangeEventDTO, BroadcastEventDTO
from utils.time import utc_now

CUSTOMER = 1
OWNER = 2
STORE = 10


def stored(message_id, sender, receiver, content, vendor_id=STORE, created_at=None, read_at=None) -> MessageDTO:
    return MessageDTO(id=message_id, sender_user_id=sender, receiver_user_id=receiver, vendor_id=vendor_id,
                      content=content, created_at=created_at or utc_now(), read_at=read_at)


def insert_event(message: MessageDTO, event_type=RealtimeEventType.INSERT) -> ChangeEventDTO:
    return ChangeEventDTO(table="messages", event_type=event_type, new=message.model_dump(mode="json"))


def broadcast(sender, receiver, content, temp_id, vendor_id=STORE, created_at=None, origin="other-client"):
    return BroadcastEventDTO(
        topic=f"user:{receiver}",
        event=BROADCAST_MESSAGE_EVENT,
        payload={
            "temp_id": temp_id,
            "sender_user_id": sender,
            "receiver_user_id": receiver,
            "vendor_id": vendor_id,
            "content": content,
            "created_at": (created_at or utc_now()).isoformat(),
        },
        origin=origin
    )


@pytest.fixture
def customer_view(session_factory, notices):
    return ConversationService(session_factory(CUSTOMER), notices, client_id="customer-client")


@pytest.fixture
def owner_view(session_factory, notices):
    service = ConversationService(session_factory(OWNER), notices, client_id="owner-client")
    service.owned_vendor_ids = {STORE}
    return service


class TestDedup:

    def test_broadcast_then_insert_shows_once(self, owner_view):
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "May pandesal pa?", "t1"))
        assert len(owner_view.entries()) == 1

        owner_view.apply_change(insert_event(stored(100, CUSTOMER, OWNER, "May pandesal pa?")))

        entries = owner_view.entries()
        assert len(entries) == 1
        assert entries[0].id == 100
        assert entries[0].state == MessageState.CONFIRMED

    def test_insert_then_broadcast_ignored(self, owner_view):
        owner_view.apply_change(insert_event(stored(100, CUSTOMER, OWNER, "Hello")))
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "Hello", "t1"))

        assert [entry.id for entry in owner_view.entries()] == [100]

    def test_each_stored_row_claims_one_pending_entry(self, owner_view):
        now = utc_now()
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "ok", "t1", created_at=now))
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "ok", "t2", created_at=now + timedelta(seconds=1)))

        owner_view.apply_change(insert_event(stored(100, CUSTOMER, OWNER, "ok", created_at=now)))

        entries = owner_view.entries()
        assert len(entries) == 2
        assert sorted(entry.id or 0 for entry in entries) == [0, 100]

    def test_outside_window_not_deduplicated(self, owner_view):
        old = utc_now() - timedelta(minutes=5)
        owner_view.apply_change(insert_event(stored(100, CUSTOMER, OWNER, "ok", created_at=old)))
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "ok", "t1"))

        assert len(owner_view.entries()) == 2

    def test_duplicate_temp_id_ignored(self, owner_view):
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "hi", "t1"))
        owner_view.apply_broadcast(broadcast(CUSTOMER, OWNER, "hi", "t1"))

        assert len(owner_view.entries()) == 1

    def test_own_echo_dropped(self, customer_view):
        customer_view.apply_broadcast(broadcast(OWNER, CUSTOMER, "hi", "t1", origin="customer-client"))

        assert customer_view.entries() == []

    def test_insert_replayed_is_idempotent(self, owner_view):
        event = insert_event(stored(100, CUSTOMER, OWNER, "hi"))
        owner_view.apply_change(event)
        owner_view.apply_change(event)

        assert len(owner_view.entries()) == 1

    def test_late_insert_keeps_read_at(self, owner_view):
        message = stored(100, CUSTOMER, OWNER, "hi")
        owner_view.apply_change(insert_event(message.model_copy(update={'read_at': utc_now()}),
                                             RealtimeEventType.UPDATE))
        owner_view.apply_change(insert_event(message))

        assert owner_view.unread_count() == 0

    def test_deleted_row_stays_deleted(self, owner_view):
        message = stored(100, CUSTOMER, OWNER, "hi")
        owner_view.apply_change(insert_event(message))
        owner_view.apply_change(ChangeEventDTO(table="messages", event_type=RealtimeEventType.DELETE,
                                               old=message.model_dump(mode="json")))
        owner_view.apply_change(insert_event(message))

        assert owner_view.entries() == []

    def test_foreign_messages_ignored(self, owner_view):
        owner_view.apply_change(insert_event(stored(100, 7, 8, "not for you")))

        assert owner_view.entries() == []


class TestGrouping:

    def test_owner_sees_one_conversation_per_customer(self, owner_view):
        owner_view.apply_change(insert_event(stored(1, CUSTOMER, OWNER, "a")))
        owner_view.apply_change(insert_event(stored(2, 5, OWNER, "b")))

        keys = {summary.key for summary in owner_view.conversations()}

        assert keys == {ConversationKey(STORE, CUSTOMER), ConversationKey(STORE, 5)}

    def test_customer_sees_store_conversation(self, customer_view):
        customer_view.apply_change(insert_event(stored(1, CUSTOMER, OWNER, "a")))
        customer_view.apply_change(insert_event(stored(2, OWNER, CUSTOMER, "b")))

        summaries = customer_view.conversations()

        assert len(summaries) == 1
        assert summaries[0].key == ConversationKey(STORE, None)
        assert summaries[0].unread_count == 1

    def test_direct_conversation(self, customer_view):
        customer_view.apply_change(insert_event(stored(1, 9, CUSTOMER, "hey", vendor_id=None)))

        assert customer_view.conversations()[0].key == ConversationKey(None, 9)

    def test_newest_conversation_first(self, owner_view):
        now = utc_now()
        owner_view.apply_change(insert_event(stored(1, CUSTOMER, OWNER, "old", created_at=now - timedelta(hours=1))))
        owner_view.apply_change(insert_event(stored(2, 5, OWNER, "new", created_at=now)))

        assert [summary.counterpart_user_id for summary in owner_view.conversations()] == [5, CUSTOMER]


class TestReadMarking:

    @pytest.mark.asyncio
    async def test_only_incoming_messages_marked(self, customer_view):
        customer_view.apply_change(insert_event(stored(1, CUSTOMER, OWNER, "mine")))
        customer_view.apply_change(insert_event(stored(2, OWNER, CUSTOMER, "theirs")))
        key = ConversationKey(STORE, None)

        with patch('repositories.message.MessageRepository.mark_read', new_callable=AsyncMock) as mark_read:
            marked = await customer_view.open_conversation(key)

        assert marked == 1
        mark_read.assert_awaited_once_with(CUSTOMER, STORE, None)
        assert customer_view._persisted[1].read_at is None
        assert customer_view._persisted[2].read_at is not None

    @pytest.mark.asyncio
    async def test_nothing_unread_skips_store(self, customer_view):
        customer_view.apply_change(insert_event(stored(1, CUSTOMER, OWNER, "mine")))

        with patch('repositories.message.MessageRepository.mark_read', new_callable=AsyncMock) as mark_read:
            assert await customer_view.open_conversation(ConversationKey(STORE, None)) == 0

        mark_read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_reported(self, customer_view, notices):
        customer_view.apply_change(insert_event(stored(2, OWNER, CUSTOMER, "theirs")))

        with patch('repositories.message.MessageRepository.mark_read', new_callable=AsyncMock,
                   side_effect=OperationalError("UPDATE", {}, Exception("locked"))):
            await customer_view.open_conversation(ConversationKey(STORE, None))

        assert notices.notices[-1].code == "remote_read_failed"


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_send_to_store_resolves_owner(self, customer_view):
        created = stored(55, CUSTOMER, OWNER, "Order ready?")
        vendor = type("Vendor", (), {"owner_user_id": OWNER})()

        with patch('repositories.vendor.VendorRepository.get_by_id', new_callable=AsyncMock, return_value=vendor), \
                patch('repositories.message.MessageRepository.create', new_callable=AsyncMock,
                      return_value=created) as create, \
                patch('services.realtime.RealtimeService.broadcast', new_callable=AsyncMock) as send_broadcast:
            result = await customer_view.send_message(ConversationKey(STORE, None), "  Order ready?  ")

        assert result.id == 55
        assert create.await_args.args[0].receiver_user_id == OWNER
        assert create.await_args.args[0].content == "Order ready?"
        assert send_broadcast.await_args.args[0] == f"user:{OWNER}"
        assert send_broadcast.await_args.kwargs["origin"] == "customer-client"
        assert [entry.id for entry in customer_view.entries()] == [55]

    @pytest.mark.asyncio
    async def test_rejected_insert_removes_entry(self, customer_view, notices):
        with patch('repositories.message.MessageRepository.create', new_callable=AsyncMock,
                   side_effect=OperationalError("INSERT", {}, Exception("denied"))), \
                patch('services.realtime.RealtimeService.broadcast', new_callable=AsyncMock):
            result = await customer_view.send_message(ConversationKey(None, 9), "hello")

        assert result is None
        assert customer_view.entries() == []
        assert notices.notices[-1].code == "remote_write_failed"

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, customer_view, notices):
        assert await customer_view.send_message(ConversationKey(None, 9), "   ") is None
        assert notices.notices[-1].code == "validation_failed"

    @pytest.mark.asyncio
    async def test_optimistic_echo_and_stored_row_show_once(self, customer_view):
        created = stored(55, CUSTOMER, 9, "Salamat po", vendor_id=None)

        async def create_while_copies_arrive(message):
            customer_view.apply_broadcast(broadcast(CUSTOMER, 9, "Salamat po", "echo", vendor_id=None,
                                                    origin="customer-client"))
            customer_view.apply_change(insert_event(created))
            return created

        with patch('repositories.message.MessageRepository.create', new_callable=AsyncMock,
                   side_effect=create_while_copies_arrive), \
                patch('services.realtime.RealtimeService.broadcast', new_callable=AsyncMock):
            await customer_view.send_message(ConversationKey(None, 9), "Salamat po")

        entries = customer_view.entries()
        assert len(entries) == 1
        assert entries[0].id == 55


class TestLoad:

    @pytest.mark.asyncio
    async def test_change_during_load_is_kept(self, customer_view):
        arrived = stored(200, OWNER, CUSTOMER, "Ready na po")

        async def owned_stores(user_id):
            customer_view.apply_change(insert_event(arrived))
            return []

        with patch('repositories.message.MessageRepository.get_by_user_id', new_callable=AsyncMock,
                   return_value=[]), \
                patch('repositories.vendor.VendorRepository.get_by_owner', new_callable=AsyncMock,
                      side_effect=owned_stores):
            await customer_view.load()

        assert [entry.id for entry in customer_view.entries()] == [200]

    @pytest.mark.asyncio
    async def test_load_keeps_local_read_and_delete(self, customer_view):
        read_locally = stored(1, OWNER, CUSTOMER, "a")
        deleted = stored(2, OWNER, CUSTOMER, "b")
        customer_view.apply_change(insert_event(read_locally.model_copy(update={'read_at': utc_now()}),
                                                RealtimeEventType.UPDATE))
        customer_view.apply_change(ChangeEventDTO(table="messages", event_type=RealtimeEventType.DELETE,
                                                  old=deleted.model_dump(mode="json")))

        with patch('repositories.message.MessageRepository.get_by_user_id', new_callable=AsyncMock,
                   return_value=[read_locally, deleted]), \
                patch('repositories.vendor.VendorRepository.get_by_owner', new_callable=AsyncMock,
                      return_value=[]):
            await customer_view.load()

        assert [entry.id for entry in customer_view.entries()] == [1]
        assert customer_view.unread_count() == 0


class TestIncomingNotification:

    @pytest.mark.asyncio
    async def test_failed_notification_is_collected(self, session_factory, notices):
        notifier = AsyncMock()
        notifier.notify.side_effect = RuntimeError("bot unreachable")
        view = ConversationService(session_factory(CUSTOMER), notices, notifier=notifier)

        view.apply_change(insert_event(stored(1, OWNER, CUSTOMER, "hi")))
        assert len(view._notify_tasks) == 1
        for _ in range(3):
            await asyncio.sleep(0)

        notifier.notify.assert_awaited_once()
        assert view._notify_tasks == set()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_notification(self, session_factory, notices):
        async def never_delivered(*args):
            await asyncio.sleep(60)

        notifier = AsyncMock()
        notifier.notify.side_effect = never_delivered
        view = ConversationService(session_factory(CUSTOMER), notices, notifier=notifier)

        view.apply_change(insert_event(stored(1, OWNER, CUSTOMER, "hi")))
        task = next(iter(view._notify_tasks))
        await asyncio.sleep(0)
        await view.stop()
        for _ in range(3):
            await asyncio.sleep(0)

        assert task.cancelled()
        assert view._notify_tasks == set()
