"""
Identity provider abstractions.

The identity provider owns accounts and sessions: it issues the opaque
'user_id' every other collaborator keys on and a bearer token per sign-in.
Session changes are pushed to listeners registered with 'on_session_change'
rather than polled.

Concrete implementation: 'InMemoryIdentityProvider'.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import StrEnum

from loguru import logger
from pydantic import BaseModel


class Session(BaseModel):
    token: str
    user_id: str
    email: str
    expires_at: int


class SessionEvent(StrEnum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


SessionListener = Callable[[SessionEvent, Session], None]


class IdentityProvider(ABC):
    """
    Abstract base class for authentication backends.

    Implementors call '_emit' whenever a session starts or ends so that
    listeners (typically the UI shell) can react without polling.
    """

    def __init__(self) -> None:
        self._listeners: list[SessionListener] = []

    @abstractmethod
    async def sign_up(self, name: str, email: str, password: str) -> Session:
        """Create an account with its profile and sign it in."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Raise 'AuthenticationError' on invalid credentials."""
        pass

    @abstractmethod
    async def sign_out(self, token: str) -> None:
        pass

    @abstractmethod
    async def get_session(self, token: str) -> Session:
        """Return the live session for 'token' or raise 'AuthenticationError'."""
        pass

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register 'listener' and return a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent, session: Session) -> None:
        logger.debug(f"Session event {event} for user {session.user_id}")
        for listener in list(self._listeners):
            listener(event, session)
