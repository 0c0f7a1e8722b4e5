"""
In-memory repositories.

These implementations stand in for the managed relational store. They enforce
the same rules the hosted database does, independently of any check the
caller already made:

- profile handles and profile owners are unique,
- contact edges are unique per ordered pair and visible only to their owner,
- profiles are readable by their owner and by users holding an edge to them,
- messages are readable by sender and receiver, writable only by the sender,
- message content is validated on insert and update,
- a reply must reference an existing message the sender can read,
- deleting a message voids 'reply_to_id' on every dependent message.

Rows are stored as pydantic models and copied on the way in and out so callers
can never mutate stored state through a returned object.
"""

from collections.abc import Callable

from loguru import logger

from pairchat.database.data_models.contact import ContactDatabase, ContactEdge
from pairchat.database.data_models.message import Message, MessageDatabase, check_message_content
from pairchat.database.data_models.profile import Profile, ProfileDatabase, ProfileMatch
from pairchat.errors import AuthorizationError, ConflictError, DuplicateHandleError, NotFoundError, ValidationError
from pairchat.realtime.base import ChangeEvent, ChangeFeed, ChangeKind
from pairchat.utils.time import get_current_timestamp


class InMemoryContactDatabase(ContactDatabase):
    def __init__(self) -> None:
        self._edges: dict[str, ContactEdge] = {}

    async def create_contact(self, caller_id: str, edge: ContactEdge) -> ContactEdge:
        if edge.user_id != caller_id:
            raise AuthorizationError("Contacts can only be added to your own list")
        if edge.user_id == edge.contact_user_id:
            raise ValidationError("A user cannot add themselves as a contact")
        for existing in self._edges.values():
            if existing.user_id == edge.user_id and existing.contact_user_id == edge.contact_user_id:
                raise ConflictError(f"Contact {edge.contact_user_id} already exists for {edge.user_id}")
        self._edges[edge.id] = edge.model_copy()
        return edge.model_copy()

    async def get_contacts_by_user_id(self, caller_id: str, user_id: str) -> list[ContactEdge]:
        if caller_id != user_id:
            return []
        edges = [edge for edge in self._edges.values() if edge.user_id == user_id]
        return [edge.model_copy() for edge in sorted(edges, key=lambda e: (e.create_timestamp, e.id))]

    async def delete_contact(self, caller_id: str, contact_id: str) -> bool:
        edge = self._edges.get(contact_id)
        if edge is None or edge.user_id != caller_id:
            return False
        del self._edges[contact_id]
        return True


class InMemoryProfileDatabase(ProfileDatabase):
    """
    Profile store with owner-or-contact read visibility.

    Attributes:
        contact_db: Consulted to decide which foreign profiles a caller may read.
            Without it, callers can read only their own profile.
    """

    def __init__(
        self,
        contact_db: ContactDatabase | None = None,
        clock: Callable[[], int] = get_current_timestamp,
    ) -> None:
        self.contact_db = contact_db
        self.clock = clock
        self._profiles: dict[str, Profile] = {}

    async def _readable_user_ids(self, caller_id: str) -> set[str]:
        readable = {caller_id}
        if self.contact_db is not None:
            edges = await self.contact_db.get_contacts_by_user_id(caller_id, caller_id)
            readable.update(edge.contact_user_id for edge in edges)
        return readable

    def _uid_taken(self, uid: str, except_user_id: str | None = None) -> bool:
        return any(p.uid == uid and p.user_id != except_user_id for p in self._profiles.values())

    async def create_profile(self, profile: Profile) -> Profile:
        if profile.user_id in self._profiles:
            raise ConflictError(f"Profile for user {profile.user_id} already exists")
        if self._uid_taken(profile.uid):
            raise DuplicateHandleError(f"UID {profile.uid} is already taken")
        self._profiles[profile.user_id] = profile.model_copy()
        return profile.model_copy()

    async def get_profile_by_user_id(self, caller_id: str, user_id: str) -> Profile | None:
        if user_id not in await self._readable_user_ids(caller_id):
            return None
        profile = self._profiles.get(user_id)
        return profile.model_copy() if profile else None

    async def get_profiles_by_user_ids(self, caller_id: str, user_ids: list[str]) -> list[Profile]:
        readable = await self._readable_user_ids(caller_id)
        return [
            self._profiles[user_id].model_copy()
            for user_id in dict.fromkeys(user_ids)
            if user_id in readable and user_id in self._profiles
        ]

    async def find_by_uid(self, uid: str) -> ProfileMatch | None:
        for profile in self._profiles.values():
            if profile.uid == uid:
                return ProfileMatch(user_id=profile.user_id, name=profile.name)
        return None

    async def update_profile(
        self,
        caller_id: str,
        user_id: str,
        name: str | None = None,
        uid: str | None = None,
    ) -> Profile:
        if caller_id != user_id:
            raise AuthorizationError("Not authorized to update this profile")
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError(f"No profile for user {user_id}")
        if uid is not None and self._uid_taken(uid, except_user_id=user_id):
            raise DuplicateHandleError(f"UID {uid} is already taken")

        updates: dict[str, str | int] = {"update_timestamp": self.clock()}
        if name is not None:
            updates["name"] = name
        if uid is not None:
            updates["uid"] = uid
        updated = profile.model_copy(update=updates)
        self._profiles[user_id] = updated
        return updated.model_copy()


class InMemoryMessageDatabase(MessageDatabase):
    """
    Message store that announces every successful write on a change feed.

    Attributes:
        feed: Receives one 'ChangeEvent' per insert, update and delete. Optional
            so the store can be used on its own in tests.
    """

    def __init__(
        self,
        feed: ChangeFeed | None = None,
        clock: Callable[[], int] = get_current_timestamp,
    ) -> None:
        self.feed = feed
        self.clock = clock
        self._messages: dict[str, Message] = {}

    async def _announce(self, kind: ChangeKind, message: Message) -> None:
        if self.feed is None:
            return
        await self.feed.publish(
            ChangeEvent(
                kind=kind,
                message_id=message.id,
                sender_id=message.sender_id,
                receiver_id=message.receiver_id,
            )
        )

    def _owned(self, caller_id: str, message_id: str) -> Message:
        message = self._messages.get(message_id)
        if message is None or caller_id not in (message.sender_id, message.receiver_id):
            raise NotFoundError(f"Message {message_id} not found")
        if message.sender_id != caller_id:
            raise AuthorizationError("Only the sender can modify this message")
        return message

    async def create_message(self, caller_id: str, message: Message) -> Message:
        if message.sender_id != caller_id:
            raise AuthorizationError("Messages can only be sent as yourself")
        check_message_content(message.content)
        if message.reply_to_id is not None and await self.get_message_by_id(caller_id, message.reply_to_id) is None:
            raise NotFoundError(f"Reply target {message.reply_to_id} not found")
        if message.id in self._messages:
            raise ConflictError(f"Message {message.id} already exists")
        self._messages[message.id] = message.model_copy()
        await self._announce(ChangeKind.INSERT, message)
        return message.model_copy()

    async def get_messages_between(self, caller_id: str, user_a: str, user_b: str) -> list[Message]:
        if caller_id not in (user_a, user_b):
            return []
        thread = [message for message in self._messages.values() if message.involves(user_a, user_b)]
        return [message.model_copy() for message in sorted(thread, key=lambda m: (m.create_timestamp, m.id))]

    async def get_message_by_id(self, caller_id: str, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        if message is None or caller_id not in (message.sender_id, message.receiver_id):
            return None
        return message.model_copy()

    async def update_message_content(self, caller_id: str, message_id: str, content: str) -> Message:
        message = self._owned(caller_id, message_id)
        check_message_content(content)
        updated = message.model_copy(
            update={"content": content, "is_edited": True, "update_timestamp": self.clock()}
        )
        self._messages[message_id] = updated
        await self._announce(ChangeKind.UPDATE, updated)
        return updated.model_copy()

    async def delete_message(self, caller_id: str, message_id: str) -> bool:
        if await self.get_message_by_id(caller_id, message_id) is None:
            return False
        message = self._owned(caller_id, message_id)
        del self._messages[message_id]

        voided = 0
        for dependent_id, dependent in self._messages.items():
            if dependent.reply_to_id == message_id:
                self._messages[dependent_id] = dependent.model_copy(update={"reply_to_id": None})
                voided += 1
        if voided:
            logger.debug(f"Voided {voided} reply reference(s) to deleted message {message_id}")

        await self._announce(ChangeKind.DELETE, message)
        return True
