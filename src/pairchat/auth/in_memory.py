"""
Process-local identity provider.

Passwords are stored as salted PBKDF2-SHA256 hashes; tokens are random
url-safe strings that expire after 'session_ttl_seconds'. Signing up creates
the account's profile through the directory, which allocates its handle and
avatar colour.
"""

import hashlib
import hmac
import secrets
from collections.abc import Callable

from loguru import logger
from pydantic import BaseModel

from pairchat.auth.base import IdentityProvider, Session, SessionEvent
from pairchat.config import SESSION_TTL_SECONDS
from pairchat.directory.service import UidDirectoryService
from pairchat.errors import AuthenticationError, ConflictError, ValidationError
from pairchat.utils.database import generate_uid
from pairchat.utils.time import get_current_timestamp

PBKDF2_ITERATIONS = 120_000


class _Account(BaseModel):
    user_id: str
    email: str
    salt: bytes
    password_hash: bytes


def hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class InMemoryIdentityProvider(IdentityProvider):
    def __init__(
        self,
        directory: UidDirectoryService,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], int] = get_current_timestamp,
    ) -> None:
        super().__init__()
        self.directory = directory
        self.session_ttl_ms = session_ttl_seconds * 1000
        self.clock = clock
        self._accounts: dict[str, _Account] = {}
        self._sessions: dict[str, Session] = {}

    def _start_session(self, account: _Account) -> Session:
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=account.user_id,
            email=account.email,
            expires_at=self.clock() + self.session_ttl_ms,
        )
        self._sessions[session.token] = session
        self._emit(SessionEvent.SIGNED_IN, session)
        return session

    async def sign_up(self, name: str, email: str, password: str) -> Session:
        email = normalize_email(email)
        if "@" not in email:
            raise ValidationError("A valid email address is required")
        if email in self._accounts:
            raise ConflictError("An account with this email already exists")

        salt = secrets.token_bytes(16)
        account = _Account(
            user_id=generate_uid(),
            email=email,
            salt=salt,
            password_hash=hash_password(password, salt),
        )
        await self.directory.create_profile(account.user_id, name)
        self._accounts[email] = account
        logger.info(f"Registered account {account.user_id}")
        return self._start_session(account)

    async def sign_in(self, email: str, password: str) -> Session:
        account = self._accounts.get(normalize_email(email))
        if account is None or not hmac.compare_digest(account.password_hash, hash_password(password, account.salt)):
            raise AuthenticationError("Invalid email or password")
        return self._start_session(account)

    async def sign_out(self, token: str) -> None:
        session = self._sessions.pop(token, None)
        if session is not None:
            self._emit(SessionEvent.SIGNED_OUT, session)

    async def get_session(self, token: str) -> Session:
        session = self._sessions.get(token)
        if session is None:
            raise AuthenticationError("Unknown session")
        if session.expires_at <= self.clock():
            del self._sessions[token]
            self._emit(SessionEvent.SIGNED_OUT, session)
            raise AuthenticationError("Session expired")
        return session
