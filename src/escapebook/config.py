"""Environment configuration for Escapebook.

All knobs are read from ``ESCAPEBOOK_*`` environment variables by
:func:`load_settings`. Unparsable integers fall back to their defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from nacl.encoding import HexEncoder
from nacl.utils import random as nacl_random

from escapebook.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".escapebook" / "escapebook.db"
DEFAULT_AUTHOR_PREFIX = "Escapee "
DEFAULT_SALT = "salt"

MAX_TEXT_LENGTH = 300
MAX_RAW_LENGTH = 5000
MAX_RUN_LENGTH = 20
MAX_PAGE_LIMIT = 50
DEFAULT_PAGE_LIMIT = 20
MAX_BODY_BYTES = 64 * 1024

# Client-address headers a fronting proxy may be trusted to set. Empty means
# the socket peer is the client.
TRUSTED_PROXY_HEADERS = ("", "cf-connecting-ip", "x-forwarded-for")


class IdScheme(str, Enum):
    SEQUENTIAL = "sequential"
    TIME_DERIVED = "time-derived"


@dataclass(frozen=True)
class ThrottleLimits:
    """Escalation thresholds for consecutive login failures."""

    warn1: int = 5
    warn2: int = 8
    ban_at: int = 10
    ban_duration: timedelta = timedelta(hours=24)
    failure_retention: timedelta = timedelta(hours=24)

    def __post_init__(self):
        if not (0 < self.warn1 <= self.warn2 <= self.ban_at):
            raise ConfigError(
                f"Thresholds must satisfy 0 < WARN1 <= WARN2 <= BAN_AT, "
                f"got {self.warn1}, {self.warn2}, {self.ban_at}"
            )


@dataclass(frozen=True)
class Settings:
    password: str = ""
    admin_secret: str = ""
    secret_salt: str = DEFAULT_SALT
    session_secret: str = ""
    session_max_age: int = 86400
    author_prefix: str = DEFAULT_AUTHOR_PREFIX
    id_scheme: IdScheme = IdScheme.SEQUENTIAL
    release_identity_on_delete: bool = True
    limits: ThrottleLimits = field(default_factory=ThrottleLimits)
    db_path: Path = DEFAULT_DB_PATH
    cookie_secure: bool = True
    trusted_proxy_header: str = ""


def _parse_csv_env(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    parts = [part.strip() for part in value.split(",") if part.strip()]
    return parts or default


def _env_truthy(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer setting %r, using %d", value, default)
        return default


def get_cors_settings(environ: Mapping[str, str] | None = None) -> dict:
    env = os.environ if environ is None else environ
    return {
        "allow_origins": _parse_csv_env(
            env.get("ESCAPEBOOK_CORS_ALLOW_ORIGINS"),
            ["http://localhost:5173", "http://localhost:8788"],
        ),
        "allow_methods": _parse_csv_env(
            env.get("ESCAPEBOOK_CORS_ALLOW_METHODS"),
            ["GET", "POST", "DELETE", "OPTIONS"],
        ),
        "allow_headers": _parse_csv_env(
            env.get("ESCAPEBOOK_CORS_ALLOW_HEADERS"),
            ["Content-Type", "Authorization"],
        ),
        "allow_credentials": _env_truthy(
            env.get("ESCAPEBOOK_CORS_ALLOW_CREDENTIALS"),
            default=True,
        ),
    }


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from the environment."""
    env = os.environ if environ is None else environ

    salt = env.get("ESCAPEBOOK_SECRET_SALT")
    if not salt:
        logger.warning("ESCAPEBOOK_SECRET_SALT is not set; identity hashes use the default salt")
        salt = DEFAULT_SALT

    session_secret = env.get("ESCAPEBOOK_SESSION_SECRET")
    if not session_secret:
        # Tokens stop validating when the process restarts.
        logger.warning("ESCAPEBOOK_SESSION_SECRET is not set; using a per-process random key")
        session_secret = HexEncoder.encode(nacl_random(32)).decode("ascii")

    raw_scheme = env.get("ESCAPEBOOK_ID_SCHEME", IdScheme.SEQUENTIAL.value).strip().lower()
    try:
        id_scheme = IdScheme(raw_scheme)
    except ValueError:
        raise ConfigError(f"Unknown ESCAPEBOOK_ID_SCHEME: {raw_scheme!r}") from None

    limits = ThrottleLimits(
        warn1=_env_int(env.get("ESCAPEBOOK_WARN1"), 5),
        warn2=_env_int(env.get("ESCAPEBOOK_WARN2"), 8),
        ban_at=_env_int(env.get("ESCAPEBOOK_BAN_AT"), 10),
        ban_duration=timedelta(seconds=_env_int(env.get("ESCAPEBOOK_BAN_SECONDS"), 86400)),
        failure_retention=timedelta(
            seconds=_env_int(env.get("ESCAPEBOOK_FAILURE_RETENTION_SECONDS"), 86400)
        ),
    )

    db_path = env.get("ESCAPEBOOK_DB_PATH")

    trusted_proxy_header = env.get("ESCAPEBOOK_TRUSTED_PROXY_HEADER", "").strip().lower()
    if trusted_proxy_header not in TRUSTED_PROXY_HEADERS:
        raise ConfigError(
            f"Unknown ESCAPEBOOK_TRUSTED_PROXY_HEADER: {trusted_proxy_header!r}"
        )

    return Settings(
        password=env.get("ESCAPEBOOK_PASSWORD", ""),
        admin_secret=env.get("ESCAPEBOOK_ADMIN_SECRET", ""),
        secret_salt=salt,
        session_secret=session_secret,
        session_max_age=_env_int(env.get("ESCAPEBOOK_SESSION_MAX_AGE"), 86400),
        author_prefix=env.get("ESCAPEBOOK_AUTHOR_PREFIX", DEFAULT_AUTHOR_PREFIX),
        id_scheme=id_scheme,
        release_identity_on_delete=_env_truthy(
            env.get("ESCAPEBOOK_RELEASE_ON_DELETE"), default=True
        ),
        limits=limits,
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        cookie_secure=_env_truthy(env.get("ESCAPEBOOK_COOKIE_SECURE"), default=True),
        trusted_proxy_header=trusted_proxy_header,
    )
