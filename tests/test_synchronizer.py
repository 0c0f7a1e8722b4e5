import asyncio

import pytest

from pairchat.chat import MessageThreadSynchronizer, ThreadState
from pairchat.config import MESSAGE_COOLDOWN_MS
from pairchat.contacts import ContactGraphManager
from pairchat.database.data_models.message import Message
from pairchat.database.in_memory import InMemoryMessageDatabase
from pairchat.errors import AuthorizationError, NotFoundError, TransientError, ValidationError
from pairchat.realtime.base import ChangeEvent, ChangeKind


class GatedMessageDatabase(InMemoryMessageDatabase):
    """Holds thread queries for selected peers until their gate is opened."""

    def __init__(self) -> None:
        super().__init__()
        self.gates: dict[str, asyncio.Event] = {}

    async def get_messages_between(self, caller_id, user_a, user_b):
        gate = self.gates.get(user_b)
        if gate is not None:
            await gate.wait()
        return await super().get_messages_between(caller_id, user_a, user_b)


class FailingMessageDatabase(InMemoryMessageDatabase):
    def __init__(self) -> None:
        super().__init__()
        self.fail_thread = False

    async def get_messages_between(self, caller_id, user_a, user_b):
        if self.fail_thread:
            raise TransientError("backend unavailable")
        return await super().get_messages_between(caller_id, user_a, user_b)


class BrokenRefetchDatabase(InMemoryMessageDatabase):
    """Writes succeed but every thread query fails once 'broken' is set."""

    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    async def get_messages_between(self, caller_id, user_a, user_b):
        if self.broken:
            raise RuntimeError("connection reset")
        return await super().get_messages_between(caller_id, user_a, user_b)


def message(id: str, sender: str, receiver: str, ts: int, content: str = "hi") -> Message:
    return Message(
        id=id,
        sender_id=sender,
        receiver_id=receiver,
        content=content,
        create_timestamp=ts,
        update_timestamp=ts,
    )


def change(sender: str, receiver: str) -> ChangeEvent:
    return ChangeEvent(kind=ChangeKind.INSERT, message_id="x", sender_id=sender, receiver_id=receiver)


def test_open_thread_moves_from_idle_to_ready(backend, clock):
    async def scenario():
        await backend.message_db.create_message("b", message("m1", "b", "a", 10, "hey"))
        sync = MessageThreadSynchronizer("a", backend.message_db, clock=clock)
        states = [sync.state]
        async with sync:
            snapshot = await sync.open_thread("b", "Bob")
            states.append(sync.state)
        return states, snapshot

    states, snapshot = asyncio.run(scenario())
    assert states == [ThreadState.IDLE, ThreadState.READY]
    assert snapshot.peer_id == "b"
    assert snapshot.version == 1
    assert [m.content for m in snapshot.messages] == ["hey"]


def test_sends_within_cooldown_are_dropped(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            first = await sync.send("one")
            clock.advance(MESSAGE_COOLDOWN_MS - 1)
            second = await sync.send("two")
            clock.advance(1)
            third = await sync.send("three")
            return first, second, third, sync.snapshot

    first, second, third, snapshot = asyncio.run(scenario())
    assert first is not None and first.content == "one"
    assert second is None
    assert third is not None
    assert [m.content for m in snapshot.messages] == ["one", "three"]


@pytest.mark.parametrize("content", ["", "   ", None])
def test_empty_send_is_rejected_without_persisting(backend, clock, content):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            with pytest.raises(ValidationError):
                await sync.send(content)
            # A rejected send does not start the cooldown.
            accepted = await sync.send("after")
        return accepted, await backend.message_db.get_messages_between("a", "a", "b")

    accepted, stored = asyncio.run(scenario())
    assert accepted is not None
    assert [m.content for m in stored] == ["after"]


def test_send_without_open_thread_is_rejected(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.send("hello")

    with pytest.raises(ValidationError):
        asyncio.run(scenario())


def test_send_trims_content(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            return await sync.send("  hello \n")

    assert asyncio.run(scenario()).content == "hello"


def test_edit_keeps_creation_time(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            sent = await sync.send("hello")
            clock.advance(60_000)
            await sync.edit(sent.id, "hello!")
            return sent, sync.snapshot.get(sent.id)

    sent, edited = asyncio.run(scenario())
    assert edited.content == "hello!"
    assert edited.is_edited is True
    assert edited.create_timestamp == sent.create_timestamp
    assert edited.update_timestamp == sent.create_timestamp + 60_000


def test_editing_someone_elses_message_fails_and_keeps_snapshot(backend, clock):
    async def scenario():
        await backend.message_db.create_message("b", message("m1", "b", "a", 10, "mine"))
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            before = await sync.open_thread("b", "Bob")
            with pytest.raises(AuthorizationError):
                await sync.edit("m1", "not yours")
            return before, sync.snapshot

    before, after = asyncio.run(scenario())
    assert after is before
    assert after.get("m1").content == "mine"


def test_deleting_a_reply_target_keeps_the_reply(backend, clock):
    async def scenario():
        db = backend.message_db
        async with (
            MessageThreadSynchronizer("a", db, clock=clock) as alice,
            MessageThreadSynchronizer("b", db, clock=clock) as bob,
        ):
            await alice.open_thread("b", "Bob")
            await bob.open_thread("a", "Alice")
            original = await alice.send("question")
            reply = await bob.send("answer", reply_to_id=original.id)
            await alice.refresh()
            before = alice.snapshot.get(reply.id)
            removed = await alice.delete(original.id)
            after = alice.snapshot.get(reply.id)
            return before, removed, after, [m.id for m in alice.snapshot.messages]

    before, removed, after, ids = asyncio.run(scenario())
    assert before.reply_to.model_dump() == {"content": "question", "sender_name": "You"}
    assert removed is True
    assert after.content == "answer"
    assert after.reply_to is None
    assert ids == [after.id]


def test_peer_sees_changes_through_notifications(backend, clock):
    async def scenario():
        db = backend.message_db
        feed = backend.feed
        async with (
            MessageThreadSynchronizer("a", db, feed, clock=clock) as alice,
            MessageThreadSynchronizer("b", db, feed, clock=clock) as bob,
        ):
            await alice.open_thread("b", "Bob")
            await bob.open_thread("a", "Alice")
            sent = await alice.send("hello")
            await bob.wait_until_idle()
            return sent, bob.snapshot, bob.state

    sent, snapshot, state = asyncio.run(scenario())
    assert state == ThreadState.READY
    assert [m.id for m in snapshot.messages] == [sent.id]
    assert snapshot.version >= 2


def test_notifications_are_coalesced(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            for _ in range(3):
                sync.handle_notification(change("b", "a"))
            await sync.wait_until_idle()
            return sync.snapshot.version

    assert asyncio.run(scenario()) == 2


def test_notification_without_open_thread_is_ignored(backend, clock):
    async def scenario():
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            sync.handle_notification(change("b", "a"))
            await sync.wait_until_idle()
            return sync.state, sync.snapshot

    assert asyncio.run(scenario()) == (ThreadState.IDLE, None)


@pytest.mark.parametrize("scope_to_pair, expected_version", [(False, 2), (True, 1)])
def test_unrelated_changes_refetch_unless_scoped(backend, clock, scope_to_pair, expected_version):
    async def scenario():
        async with MessageThreadSynchronizer(
            "a", backend.message_db, backend.feed, clock=clock, scope_to_pair=scope_to_pair
        ) as sync:
            await sync.open_thread("b", "Bob")
            await backend.message_db.create_message("c", message("m1", "c", "b", 10))
            await sync.wait_until_idle()
            return sync.snapshot

    snapshot = asyncio.run(scenario())
    assert snapshot.version == expected_version
    assert snapshot.messages == []


def test_switching_peers_discards_the_stale_load():
    db = GatedMessageDatabase()

    async def scenario():
        await db.create_message("a", message("to-b", "a", "b", 10))
        await db.create_message("a", message("to-c", "a", "c", 20))
        gate = asyncio.Event()
        db.gates["b"] = gate
        applied = []
        async with MessageThreadSynchronizer("a", db, on_snapshot=applied.append) as sync:
            first = asyncio.create_task(sync.open_thread("b", "Bob"))
            for _ in range(5):
                await asyncio.sleep(0)
            second = asyncio.create_task(sync.open_thread("c", "Carol"))
            await asyncio.sleep(0)
            state_while_loading = sync.state
            gate.set()
            return await first, await second, state_while_loading, sync.snapshot, applied

    first, second, state_while_loading, snapshot, applied = asyncio.run(scenario())
    assert first is None
    assert state_while_loading == ThreadState.LOADING
    assert second.peer_id == "c"
    assert snapshot is second
    assert [m.id for m in snapshot.messages] == ["to-c"]
    assert [s.peer_id for s in applied] == ["c"]


def test_failed_reconcile_keeps_previous_snapshot(clock):
    db = FailingMessageDatabase()

    async def scenario():
        await db.create_message("b", message("m1", "b", "a", 10))
        async with MessageThreadSynchronizer("a", db, clock=clock) as sync:
            before = await sync.open_thread("b", "Bob")
            db.fail_thread = True
            with pytest.raises(TransientError):
                await sync.refresh()
            after_command = (sync.state, sync.snapshot)
            sync.handle_notification(change("b", "a"))
            await sync.wait_until_idle()
            after_notification = (sync.state, sync.snapshot)
            db.fail_thread = False
            await db.create_message("b", message("m2", "b", "a", 20))
            sync.handle_notification(change("b", "a"))
            await sync.wait_until_idle()
            return before, after_command, after_notification, sync.snapshot

    before, after_command, after_notification, recovered = asyncio.run(scenario())
    assert after_command == (ThreadState.READY, before)
    assert after_notification == (ThreadState.READY, before)
    assert [m.id for m in recovered.messages] == ["m1", "m2"]
    assert recovered.version == 2


def test_failed_first_load_returns_to_idle(clock):
    db = FailingMessageDatabase()
    db.fail_thread = True

    async def scenario():
        async with MessageThreadSynchronizer("a", db, clock=clock) as sync:
            with pytest.raises(TransientError):
                await sync.open_thread("b", "Bob")
            return sync.state, sync.snapshot, sync.peer_id

    assert asyncio.run(scenario()) == (ThreadState.IDLE, None, "b")


def test_close_unsubscribes_and_stops_accepting_commands(backend, clock):
    sync = MessageThreadSynchronizer("a", backend.message_db, backend.feed, clock=clock)

    async def scenario():
        await sync.start()
        subscribed = backend.feed.subscriber_count
        await sync.close()
        with pytest.raises(RuntimeError):
            await sync.open_thread("b", "Bob")
        return subscribed, backend.feed.subscriber_count

    assert asyncio.run(scenario()) == (1, 0)


def test_add_send_edit_delete_end_to_end(backend, clock):
    async def scenario():
        await backend.add_profile("user-a", "Alice", "ab12cd34")
        await backend.add_profile("user-b", "Bob", "zz99yy88")
        contact = await ContactGraphManager(backend.directory, backend.contact_db, backend.profile_db).add_contact(
            "user-a", "zz99yy88"
        )
        db, feed = backend.message_db, backend.feed
        async with (
            MessageThreadSynchronizer("user-a", db, feed, backend.profile_db, clock=clock) as alice,
            MessageThreadSynchronizer("user-b", db, feed, backend.profile_db, clock=clock) as bob,
        ):
            await alice.open_thread(contact.contact_user_id, contact.profile.name)
            await bob.open_thread("user-a", "Alice")

            sent = await alice.send("hello")
            await bob.wait_until_idle()
            seen_by_bob = [(m.content, m.is_edited) for m in bob.snapshot.messages]

            clock.advance(1_000)
            await alice.edit(sent.id, "hello!")
            await bob.wait_until_idle()
            edited = bob.snapshot.get(sent.id)

            await alice.delete(sent.id)
            await bob.wait_until_idle()
            return contact, sent, seen_by_bob, edited, alice.snapshot.messages, bob.snapshot.messages

    contact, sent, seen_by_bob, edited, alice_after, bob_after = asyncio.run(scenario())
    assert contact.profile.name == "Bob"
    assert sent.sender_id == "user-a"
    assert sent.receiver_id == "user-b"
    assert seen_by_bob == [("hello", False)]
    assert edited.content == "hello!"
    assert edited.is_edited is True
    assert edited.create_timestamp == sent.create_timestamp
    assert alice_after == []
    assert bob_after == []


def test_send_with_unreadable_reply_target_is_rejected(backend, clock):
    async def scenario():
        await backend.message_db.create_message("c", message("secret", "c", "d", 5))
        async with MessageThreadSynchronizer("a", backend.message_db, clock=clock) as sync:
            await sync.open_thread("b", "Bob")
            for target in ("does-not-exist", "secret"):
                with pytest.raises(NotFoundError):
                    await sync.send("re", reply_to_id=target)
            # The rejected sends did not start the cooldown.
            accepted = await sync.send("plain")
            return accepted, sync.snapshot

    accepted, snapshot = asyncio.run(scenario())
    assert accepted is not None
    assert [m.content for m in snapshot.messages] == ["plain"]


def test_failed_refetch_after_send_still_returns_the_message(clock):
    db = BrokenRefetchDatabase()

    async def scenario():
        async with MessageThreadSynchronizer("a", db, clock=clock) as sync:
            before = await sync.open_thread("b", "Bob")
            db.broken = True
            sent = await sync.send("hello")
            state, snapshot = sync.state, sync.snapshot
            db.broken = False
            return before, sent, state, snapshot, await db.get_messages_between("a", "a", "b")

    before, sent, state, snapshot, stored = asyncio.run(scenario())
    assert sent is not None
    assert [m.id for m in stored] == [sent.id]
    assert state == ThreadState.READY
    assert snapshot is before


def test_commands_issued_while_closing_are_rejected(backend, clock):
    async def scenario():
        sync = MessageThreadSynchronizer("a", backend.message_db, clock=clock)
        await sync.start()
        closing = asyncio.create_task(sync.close())
        await asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            await sync.open_thread("b", "Bob")
        sync.handle_notification(change("b", "a"))
        await asyncio.wait_for(closing, timeout=1)
        return sync.is_idle()

    assert asyncio.run(scenario()) is True
