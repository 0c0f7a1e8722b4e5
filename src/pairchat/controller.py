"""
Messenger controller (Facade).

'MessengerController' is the single entry point for application logic. It
wires the identity provider, the three repositories, the change feed, the
UID directory and the contact graph manager, and exposes every user-level
operation keyed by the acting user's id:

    accounts   register / sign_in / sign_out / authenticate
    profile    get_profile / update_name / regenerate_uid / lookup
    contacts   add_contact / remove_contact / list_contacts
    messages   get_thread / send_message / edit_message / delete_message

Stateless request handlers (the HTTP API) call these directly. Interactive
clients call 'open_session' to get a 'MessageThreadSynchronizer' bound to the
same stores and feed.

Unlike the client-side throttle of the synchroniser, 'send_message' enforces
the minimum send interval server-side and rejects with 'RateLimitError'.
"""

from loguru import logger

from pairchat.auth.base import IdentityProvider, Session
from pairchat.auth.in_memory import InMemoryIdentityProvider
from pairchat.chat.data_models import ThreadMessage
from pairchat.chat.synchronizer import MessageThreadSynchronizer
from pairchat.chat.thread import load_thread
from pairchat.config import Settings
from pairchat.contacts.data_models import PLACEHOLDER_PROFILE, Contact
from pairchat.contacts.manager import ContactGraphManager
from pairchat.database.data_models.contact import ContactDatabase
from pairchat.database.data_models.message import Message, MessageDatabase, check_message_content
from pairchat.database.data_models.profile import Profile, ProfileDatabase, ProfileMatch
from pairchat.database.in_memory import InMemoryContactDatabase, InMemoryMessageDatabase, InMemoryProfileDatabase
from pairchat.directory.service import UidDirectoryService
from pairchat.errors import NotFoundError, RateLimitError, ValidationError
from pairchat.realtime.base import ChangeFeed
from pairchat.realtime.in_memory import InMemoryChangeFeed
from pairchat.utils.database import generate_uid
from pairchat.utils.throttle import SendThrottle
from pairchat.utils.time import get_current_timestamp


def validate_registration(name: str, email: str, password: str, confirm_password: str, min_length: int) -> None:
    if not name.strip():
        raise ValidationError("Name cannot be empty")
    if not email.strip():
        raise ValidationError("Email cannot be empty")
    if password != confirm_password:
        raise ValidationError("Passwords do not match")
    if len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")


class MessengerController:
    def __init__(
        self,
        identity_provider: IdentityProvider,
        profile_db: ProfileDatabase,
        contact_db: ContactDatabase,
        message_db: MessageDatabase,
        feed: ChangeFeed,
        directory: UidDirectoryService,
        settings: Settings | None = None,
    ):
        self.identity_provider = identity_provider
        self.profile_db = profile_db
        self.contact_db = contact_db
        self.message_db = message_db
        self.feed = feed
        self.directory = directory
        self.settings = settings or Settings()
        self.contacts = ContactGraphManager(directory, contact_db, profile_db)
        self.send_throttle = SendThrottle(self.settings.message_cooldown_ms)

    @classmethod
    def in_memory(cls, settings: Settings | None = None) -> "MessengerController":
        """Build a controller over fresh in-memory collaborators."""
        settings = settings or Settings()
        feed = InMemoryChangeFeed()
        contact_db = InMemoryContactDatabase()
        profile_db = InMemoryProfileDatabase(contact_db)
        message_db = InMemoryMessageDatabase(feed)
        directory = UidDirectoryService(profile_db, max_attempts=settings.max_regenerate_attempts)
        provider = InMemoryIdentityProvider(directory, session_ttl_seconds=settings.session_ttl_seconds)
        return cls(provider, profile_db, contact_db, message_db, feed, directory, settings)

    # Accounts

    async def register(self, name: str, email: str, password: str, confirm_password: str) -> Session:
        validate_registration(name, email, password, confirm_password, self.settings.min_password_length)
        return await self.identity_provider.sign_up(name.strip(), email, password)

    async def sign_in(self, email: str, password: str) -> Session:
        return await self.identity_provider.sign_in(email, password)

    async def sign_out(self, token: str) -> None:
        await self.identity_provider.sign_out(token)

    async def authenticate(self, token: str) -> str:
        return (await self.identity_provider.get_session(token)).user_id

    # Profile

    async def get_profile(self, user_id: str) -> Profile:
        profile = await self.profile_db.get_profile_by_user_id(user_id, user_id)
        if profile is None:
            raise NotFoundError(f"No profile for user {user_id}")
        return profile

    async def update_name(self, user_id: str, name: str) -> Profile:
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        profile = await self.profile_db.update_profile(user_id, user_id, name=name)
        logger.info(f"User {user_id} changed their display name")
        return profile

    async def regenerate_uid(self, user_id: str) -> str:
        return await self.directory.regenerate(user_id, user_id)

    async def lookup(self, uid: str) -> ProfileMatch | None:
        return await self.directory.lookup(uid)

    # Contacts

    async def add_contact(self, user_id: str, uid: str) -> Contact:
        return await self.contacts.add_contact(user_id, uid)

    async def remove_contact(self, user_id: str, contact_id: str) -> bool:
        return await self.contacts.remove_contact(user_id, contact_id)

    async def list_contacts(self, user_id: str) -> list[Contact]:
        return await self.contacts.list_contacts(user_id)

    # Messages

    async def _peer_name(self, user_id: str, peer_id: str) -> str:
        profile = await self.profile_db.get_profile_by_user_id(user_id, peer_id)
        return profile.name if profile else PLACEHOLDER_PROFILE.name

    async def get_thread(self, user_id: str, peer_id: str) -> list[ThreadMessage]:
        peer_name = await self._peer_name(user_id, peer_id)
        return await load_thread(user_id, peer_id, peer_name, self.message_db, self.profile_db)

    async def send_message(
        self,
        user_id: str,
        receiver_id: str,
        content: str,
        reply_to_id: str | None = None,
    ) -> Message:
        content = (content or "").strip()
        check_message_content(content)
        now = get_current_timestamp()
        if not self.send_throttle.is_allowed(user_id, now):
            raise RateLimitError("You are sending messages too quickly")
        message = await self.message_db.create_message(
            user_id,
            Message(
                id=generate_uid(),
                sender_id=user_id,
                receiver_id=receiver_id,
                content=content,
                reply_to_id=reply_to_id,
                create_timestamp=now,
                update_timestamp=now,
            ),
        )
        self.send_throttle.record(user_id, now)
        return message

    async def edit_message(self, user_id: str, message_id: str, content: str) -> Message:
        content = (content or "").strip()
        check_message_content(content)
        return await self.message_db.update_message_content(user_id, message_id, content)

    async def delete_message(self, user_id: str, message_id: str) -> bool:
        return await self.message_db.delete_message(user_id, message_id)

    def open_session(self, user_id: str, scope_to_pair: bool = False) -> MessageThreadSynchronizer:
        """Create a thread synchroniser for 'user_id'; the caller starts and closes it."""
        return MessageThreadSynchronizer(
            user_id,
            self.message_db,
            feed=self.feed,
            profile_db=self.profile_db,
            cooldown_ms=self.settings.message_cooldown_ms,
            scope_to_pair=scope_to_pair,
        )
