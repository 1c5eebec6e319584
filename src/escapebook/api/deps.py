"""Shared dependencies for the Escapebook API."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import Request

from escapebook.config import Settings, load_settings
from escapebook.identity import UNKNOWN_ADDRESS, secrets_match
from escapebook.ledger import CommentLedger
from escapebook.locking import ProcessLocks
from escapebook.session import SESSION_COOKIE, verify_token
from escapebook.store import SQLiteKeyValueStore
from escapebook.throttle import LoginThrottle

# Module-level state, initialized in app lifespan
_store: Optional[SQLiteKeyValueStore] = None
_settings: Optional[Settings] = None
_ledger: Optional[CommentLedger] = None
_throttle: Optional[LoginThrottle] = None


def get_store() -> SQLiteKeyValueStore:
    """FastAPI dependency: return the shared key-value store."""
    if _store is None:
        raise RuntimeError("Store not initialized — app lifespan not started")
    return _store


def get_settings() -> Settings:
    if _settings is None:
        raise RuntimeError("Settings not initialized — app lifespan not started")
    return _settings


def get_ledger() -> CommentLedger:
    if _ledger is None:
        raise RuntimeError("Ledger not initialized — app lifespan not started")
    return _ledger


def get_throttle() -> LoginThrottle:
    if _throttle is None:
        raise RuntimeError("Throttle not initialized — app lifespan not started")
    return _throttle


def init_store(
    db_path: Optional[Path] = None,
    settings: Optional[Settings] = None,
) -> SQLiteKeyValueStore:
    """Initialize the shared store and the components built on it.

    Settings come from the environment unless given; an explicit ``db_path``
    wins over ESCAPEBOOK_DB_PATH.
    """
    global _store, _settings, _ledger, _throttle
    _settings = settings or load_settings()
    _store = SQLiteKeyValueStore(db_path=db_path or _settings.db_path)
    _ledger = CommentLedger.from_settings(_store, _settings, locks=ProcessLocks())
    _throttle = LoginThrottle.from_settings(_store, _settings)
    return _store


def close_store() -> None:
    """Close the shared store. Called from app lifespan."""
    global _store, _settings, _ledger, _throttle
    if _store is not None:
        _store.close()
    _store = None
    _settings = None
    _ledger = None
    _throttle = None


# --- Request helpers ---


def client_address(request: Request, settings: Settings) -> str:
    """Client IP used for identity hashing.

    The socket peer, unless ``settings.trusted_proxy_header`` names a header
    set by the proxy in front of the app. For ``X-Forwarded-For`` only the
    right-most hop is used: that is the one the proxy appended, anything to
    its left came from the client.
    """
    header = settings.trusted_proxy_header
    if header:
        value = request.headers.get(header, "")
        if header == "x-forwarded-for":
            value = value.rsplit(",", 1)[-1]
        if value.strip():
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ADDRESS


def bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def is_admin(request: Request, settings: Settings) -> bool:
    return secrets_match(bearer_token(request), settings.admin_secret)


def has_session(request: Request, settings: Settings) -> bool:
    return verify_token(request.cookies.get(SESSION_COOKIE), settings.session_secret)
