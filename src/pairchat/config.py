"""
Runtime settings.

Defaults live in module-level constants so that code and tests can refer to
them by name. 'Settings.from_env' overrides any field from a
'PAIRCHAT_<FIELD>' environment variable, e.g. 'PAIRCHAT_MESSAGE_COOLDOWN_MS=250'.
"""

import os

from pydantic import BaseModel, Field

ENV_PREFIX = "PAIRCHAT_"

HANDLE_LENGTH = 8
MAX_REGENERATE_ATTEMPTS = 10
MAX_MESSAGE_LENGTH = 10_000
MESSAGE_COOLDOWN_MS = 500
MIN_PASSWORD_LENGTH = 6
SESSION_TTL_SECONDS = 24 * 60 * 60

AVATAR_PALETTE = (
    "#ef4444",
    "#f97316",
    "#eab308",
    "#22c55e",
    "#14b8a6",
    "#3b82f6",
    "#8b5cf6",
    "#ec4899",
)


class Settings(BaseModel):
    """Tunable limits and the log level."""

    message_cooldown_ms: int = Field(default=MESSAGE_COOLDOWN_MS, ge=0)
    max_regenerate_attempts: int = Field(default=MAX_REGENERATE_ATTEMPTS, ge=1)
    min_password_length: int = Field(default=MIN_PASSWORD_LENGTH, ge=1)
    session_ttl_seconds: int = Field(default=SESSION_TTL_SECONDS, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from 'PAIRCHAT_*' variables; unknown variables are ignored."""
        environ = dict(os.environ) if environ is None else environ
        values: dict[str, str] = {}
        for name in cls.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in environ:
                values[name] = environ[key]
        return cls.model_validate(values)
