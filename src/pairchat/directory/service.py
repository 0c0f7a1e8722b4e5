"""
UID directory service.

Every account gets a short public handle ('uid') that other users type in to
add it as a contact, so the internal account id never has to be shared. The
directory

- resolves a handle to the minimal 'ProfileMatch' (id and display name),
- allocates handles for new profiles,
- regenerates a user's handle on request.

Handles are the first 'HANDLE_LENGTH' hex characters of an md5 digest over a
random uuid, the wall clock and extra random bits. Two allocations can pick the
same handle; the store rejects the second with 'DuplicateHandleError' and the
directory retries with a fresh candidate, at most 'MAX_REGENERATE_ATTEMPTS'
times, before failing with 'HandleAllocationError'.
"""

import hashlib
import random
import secrets
import time
import uuid
from collections.abc import Awaitable, Callable

from loguru import logger

from pairchat.config import AVATAR_PALETTE, HANDLE_LENGTH, MAX_REGENERATE_ATTEMPTS
from pairchat.database.data_models.profile import Profile, ProfileDatabase, ProfileMatch
from pairchat.errors import AuthorizationError, DuplicateHandleError, HandleAllocationError, ValidationError
from pairchat.utils.database import generate_uid
from pairchat.utils.retry import RetryExhaustedError, retry_bounded
from pairchat.utils.time import get_current_timestamp


def generate_handle() -> str:
    material = f"{uuid.uuid4()}{time.time_ns()}{secrets.randbits(64)}"
    return hashlib.md5(material.encode("utf-8"), usedforsecurity=False).hexdigest()[:HANDLE_LENGTH]


def is_valid_handle(handle: str | None) -> bool:
    return handle is not None and len(handle) == HANDLE_LENGTH


def pick_avatar_color() -> str:
    return random.choice(AVATAR_PALETTE)


class UidDirectoryService:
    """
    Handle lookup and allocation on top of a 'ProfileDatabase'.

    Attributes:
        profile_db: Store holding the profiles and enforcing handle uniqueness.
        max_attempts: Retry bound for handle allocation.
        handle_factory: Produces candidate handles. Replaceable so tests can
            force collisions.
    """

    def __init__(
        self,
        profile_db: ProfileDatabase,
        max_attempts: int = MAX_REGENERATE_ATTEMPTS,
        handle_factory: Callable[[], str] = generate_handle,
    ) -> None:
        self.profile_db = profile_db
        self.max_attempts = max_attempts
        self.handle_factory = handle_factory

    async def lookup(self, handle: str | None) -> ProfileMatch | None:
        """Resolve a handle. Anything that is not exactly 'HANDLE_LENGTH' long is a miss without a query."""
        if not is_valid_handle(handle):
            return None
        assert handle is not None
        return await self.profile_db.find_by_uid(handle)

    async def _allocate(self, write: Callable[[str], Awaitable[Profile]], description: str) -> Profile:
        async def attempt(number: int) -> Profile:
            return await write(self.handle_factory())

        try:
            return await retry_bounded(attempt, self.max_attempts, retry_on=DuplicateHandleError)
        except RetryExhaustedError as exc:
            logger.error(f"Could not allocate a handle for {description} after {exc.attempts} attempts")
            raise HandleAllocationError(
                f"Failed to generate unique UID after {exc.attempts} attempts"
            ) from exc.last_error

    async def create_profile(self, user_id: str, name: str) -> Profile:
        """Create the profile of a freshly registered account with a new handle and a palette colour."""
        name = name.strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        color = pick_avatar_color()

        async def write(candidate: str) -> Profile:
            now = get_current_timestamp()
            return await self.profile_db.create_profile(
                Profile(
                    id=generate_uid(),
                    user_id=user_id,
                    name=name,
                    uid=candidate,
                    avatar_color=color,
                    create_timestamp=now,
                    update_timestamp=now,
                )
            )

        profile = await self._allocate(write, f"new user {user_id}")
        logger.info(f"Created profile for user {user_id} with color {color}")
        return profile

    async def regenerate(self, caller_id: str, user_id: str) -> str:
        """Give 'user_id' a new handle and return it.

        The ownership check here is advisory; the store re-checks it on every write.

        Raises:
            AuthorizationError: If 'caller_id' is not 'user_id'.
            HandleAllocationError: If every candidate collided.
        """
        if caller_id != user_id:
            raise AuthorizationError("Not authorized to update this profile")

        async def write(candidate: str) -> Profile:
            return await self.profile_db.update_profile(caller_id, user_id, uid=candidate)

        profile = await self._allocate(write, f"user {user_id}")
        logger.info(f"Regenerated handle for user {user_id}")
        return profile.uid
