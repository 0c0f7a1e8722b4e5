"""
Message thread synchroniser.

One 'MessageThreadSynchronizer' drives the conversation view of one signed-in
user. It reacts to two kinds of stimuli:

    commands       open_thread / send / edit / delete, issued by the user
    notifications  change events from the realtime feed

Both are funnelled through a single 'asyncio.Queue' drained by one worker
task, so handlers never interleave and a reconcile is never observed half
applied. Every notification triggers a full refetch of the open thread
('load_thread'); notifications that arrive while a refetch is already queued
are folded into it.

Lifecycle of the open thread:

    IDLE -> LOADING -> READY <-> RECONCILING

Switching peers bumps a generation counter immediately, before the new load
is even queued. Any refetch that was issued for an older generation is
discarded when it completes instead of being applied to the new thread.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from pairchat.chat.data_models import ThreadSnapshot, ThreadState
from pairchat.chat.thread import load_thread
from pairchat.config import MESSAGE_COOLDOWN_MS
from pairchat.database.data_models.message import Message, MessageDatabase, check_message_content
from pairchat.database.data_models.profile import ProfileDatabase
from pairchat.errors import ValidationError
from pairchat.realtime.base import ChangeEvent, ChangeFeed, Subscription
from pairchat.utils.database import generate_uid
from pairchat.utils.throttle import SendThrottle
from pairchat.utils.time import get_current_timestamp

Job = tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any] | None]


class MessageThreadSynchronizer:
    """
    Client-side state of the open conversation of 'self_id'.

    Use as an async context manager (or call 'start' / 'close'). All public
    coroutines return once their job has been processed by the worker.

    Attributes:
        self_id: The signed-in user.
        message_db: Source of truth for messages.
        feed: Realtime change feed; None disables notifications.
        profile_db: Used to name the sender of a reply target from a third
            conversation. Optional.
        scope_to_pair: When True, ignore notifications for conversations other
            than the open one. The default refetches on every change.
        throttle: Minimum interval between accepted sends.
        on_snapshot: Called with every snapshot that gets applied.
    """

    def __init__(
        self,
        self_id: str,
        message_db: MessageDatabase,
        feed: ChangeFeed | None = None,
        profile_db: ProfileDatabase | None = None,
        cooldown_ms: int = MESSAGE_COOLDOWN_MS,
        clock: Callable[[], int] = get_current_timestamp,
        scope_to_pair: bool = False,
        on_snapshot: Callable[[ThreadSnapshot], None] | None = None,
    ) -> None:
        self.self_id = self_id
        self.message_db = message_db
        self.feed = feed
        self.profile_db = profile_db
        self.clock = clock
        self.scope_to_pair = scope_to_pair
        self.throttle = SendThrottle(cooldown_ms, clock=clock)
        self.on_snapshot = on_snapshot

        self.state = ThreadState.IDLE
        self.snapshot: ThreadSnapshot | None = None
        self.peer_id: str | None = None
        self.peer_name: str = ""

        self._generation = 0
        self._refresh_queued_for: int | None = None
        self._busy = False
        self._closing = False
        self._queue: asyncio.Queue[Job | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._listener: asyncio.Task[None] | None = None
        self._subscription: Subscription | None = None

    # Lifecycle

    async def start(self) -> None:
        if self._worker is not None:
            return
        self._closing = False
        self._worker = asyncio.create_task(self._run_worker())
        if self.feed is not None:
            self._subscription = self.feed.subscribe()
            self._listener = asyncio.create_task(self._listen(self._subscription))
        logger.debug(f"Thread synchroniser started for {self.self_id}")

    async def close(self) -> None:
        self._closing = True
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._listener is not None:
            await self._listener
            self._listener = None
        if self._worker is not None:
            self._queue.put_nowait(None)
            await self._worker
            self._worker = None
        logger.debug(f"Thread synchroniser closed for {self.self_id}")

    async def __aenter__(self) -> "MessageThreadSynchronizer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Event queue

    async def _run_worker(self) -> None:
        while True:
            job = await self._queue.get()
            if job is None:
                self._queue.task_done()
                return
            handler, future = job
            self._busy = True
            try:
                result = await handler()
            except Exception as exc:
                if future is None:
                    logger.warning(f"Background reconcile failed for {self.self_id}: {exc}")
                elif not future.cancelled():
                    future.set_exception(exc)
            else:
                if future is not None and not future.cancelled():
                    future.set_result(result)
            finally:
                self._busy = False
                self._queue.task_done()

    async def _submit(self, handler: Callable[[], Awaitable[Any]]) -> Any:
        if self._worker is None or self._closing:
            raise RuntimeError("Synchronizer is not running")
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((handler, future))
        return await future

    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            self.handle_notification(event)

    def handle_notification(self, event: ChangeEvent) -> None:
        """Queue a refetch of the open thread in response to a change event."""
        if self.peer_id is None:
            return
        if self.scope_to_pair and not event.involves(self.self_id, self.peer_id):
            return
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        generation = self._generation
        if self._closing or self._refresh_queued_for == generation:
            return
        self._refresh_queued_for = generation

        async def handler() -> ThreadSnapshot | None:
            if self._refresh_queued_for == generation:
                self._refresh_queued_for = None
            return await self._refresh(generation)

        self._queue.put_nowait((handler, None))

    def is_idle(self) -> bool:
        pending = self._subscription.pending() if self._subscription is not None else 0
        return self._queue.empty() and not self._busy and pending == 0

    async def wait_until_idle(self) -> None:
        """Wait until every delivered notification and queued command has been handled."""
        while not self.is_idle():
            await self._queue.join()
            await asyncio.sleep(0)

    # Reconcile

    async def _refresh(self, generation: int) -> ThreadSnapshot | None:
        if generation != self._generation or self.peer_id is None:
            logger.debug(f"Skipping refresh of generation {generation}, thread has moved on")
            return None

        peer_id, peer_name = self.peer_id, self.peer_name
        if self.state == ThreadState.READY:
            self.state = ThreadState.RECONCILING
        try:
            messages = await load_thread(self.self_id, peer_id, peer_name, self.message_db, self.profile_db)
        except Exception:
            if generation == self._generation:
                self.state = ThreadState.READY if self.snapshot is not None else ThreadState.IDLE
            raise

        if generation != self._generation:
            logger.debug(f"Discarding stale reconcile for peer {peer_id}")
            return None

        version = self.snapshot.version + 1 if self.snapshot is not None else 1
        self.snapshot = ThreadSnapshot(peer_id=peer_id, messages=messages, version=version)
        self.state = ThreadState.READY
        logger.debug(f"Thread {self.self_id}<->{peer_id} reconciled: {len(messages)} messages (v{version})")
        if self.on_snapshot is not None:
            self.on_snapshot(self.snapshot)
        return self.snapshot

    async def _refresh_after_write(self) -> None:
        try:
            await self._refresh(self._generation)
        except Exception as exc:
            logger.warning(f"Refetch after write failed, keeping previous snapshot: {exc}")

    # Commands

    async def open_thread(self, peer_id: str, peer_name: str) -> ThreadSnapshot | None:
        """Switch to the conversation with 'peer_id' and load it.

        Returns the loaded snapshot, or None if another 'open_thread' superseded
        this one before the load completed.
        """
        self._generation += 1
        generation = self._generation
        self.peer_id = peer_id
        self.peer_name = peer_name
        self.snapshot = None
        self.state = ThreadState.LOADING
        logger.info(f"User {self.self_id} opened thread with {peer_id}")
        return await self._submit(lambda: self._refresh(generation))

    async def refresh(self) -> ThreadSnapshot | None:
        """Refetch the open thread now. A no-op returning None when no thread is open."""
        if self.peer_id is None:
            return None
        generation = self._generation
        return await self._submit(lambda: self._refresh(generation))

    def _require_open_thread(self) -> str:
        if self.peer_id is None:
            raise ValidationError("No conversation is open")
        return self.peer_id

    async def send(self, content: str, reply_to_id: str | None = None) -> Message | None:
        """Send a message to the open peer.

        Returns the stored message, or None when the send was dropped because it
        came within the cooldown of the previous accepted send.

        Raises:
            ValidationError: Empty or over-long content, or no open thread.
        """
        content = (content or "").strip()
        check_message_content(content)
        receiver_id = self._require_open_thread()

        async def handler() -> Message | None:
            now = self.clock()
            if not self.throttle.is_allowed(self.self_id, now):
                logger.debug(f"Dropped send from {self.self_id}: within cooldown")
                return None
            message = await self.message_db.create_message(
                self.self_id,
                Message(
                    id=generate_uid(),
                    sender_id=self.self_id,
                    receiver_id=receiver_id,
                    content=content,
                    reply_to_id=reply_to_id,
                    create_timestamp=now,
                    update_timestamp=now,
                ),
            )
            self.throttle.record(self.self_id, now)
            await self._refresh_after_write()
            return message

        return await self._submit(handler)

    async def edit(self, message_id: str, new_content: str) -> Message:
        """Replace the content of one of the user's own messages."""
        content = (new_content or "").strip()
        check_message_content(content)

        async def handler() -> Message:
            message = await self.message_db.update_message_content(self.self_id, message_id, content)
            await self._refresh_after_write()
            return message

        return await self._submit(handler)

    async def delete(self, message_id: str) -> bool:
        """Delete one of the user's own messages. Returns False if it was already gone."""

        async def handler() -> bool:
            removed = await self.message_db.delete_message(self.self_id, message_id)
            await self._refresh_after_write()
            return removed

        return await self._submit(handler)
