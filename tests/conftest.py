"""Pytest configuration and shared fixtures."""

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from pairchat.database.data_models.profile import Profile  # noqa: E402
from pairchat.database.in_memory import (  # noqa: E402
    InMemoryContactDatabase,
    InMemoryMessageDatabase,
    InMemoryProfileDatabase,
)
from pairchat.directory.service import UidDirectoryService  # noqa: E402
from pairchat.realtime.in_memory import InMemoryChangeFeed  # noqa: E402


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class Backend:
    """Fresh in-memory collaborators wired the way 'MessengerController.in_memory' wires them."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.feed = InMemoryChangeFeed()
        self.contact_db = InMemoryContactDatabase()
        self.profile_db = InMemoryProfileDatabase(self.contact_db, clock=clock)
        self.message_db = InMemoryMessageDatabase(self.feed, clock=clock)
        self.directory = UidDirectoryService(self.profile_db)

    async def add_profile(self, user_id: str, name: str, uid: str, color: str = "#3b82f6") -> Profile:
        now = self.clock()
        return await self.profile_db.create_profile(
            Profile(
                id=f"profile-{user_id}",
                user_id=user_id,
                name=name,
                uid=uid,
                avatar_color=color,
                create_timestamp=now,
                update_timestamp=now,
            )
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> Backend:
    return Backend(clock)


@pytest.fixture
def handle_sequence() -> Callable[[list[str]], Callable[[], str]]:
    """Build a handle factory that returns the given handles in order, then repeats the last one."""

    def build(handles: list[str]) -> Callable[[], str]:
        remaining = list(handles)

        def factory() -> str:
            return remaining.pop(0) if len(remaining) > 1 else remaining[0]

        return factory

    return build

