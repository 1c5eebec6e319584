"""Shared fixtures for Escapebook tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from escapebook.identity import IdentityHasher
from escapebook.ledger import CommentLedger
from escapebook.store import SQLiteKeyValueStore
from escapebook.throttle import LoginThrottle

PASSWORD = "open-sesame"
ADMIN_SECRET = "owner-secret"
SALT = "test-salt"


class FakeClock:
    """Settable UTC clock for deterministic timestamps."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture
def tmp_db(tmp_path):
    """Temporary SQLite database path."""
    return tmp_path / "test_escapebook.db"


@pytest.fixture
def store(tmp_db):
    """Fresh key-value store for each test."""
    s = SQLiteKeyValueStore(db_path=tmp_db)
    yield s
    s.close()


@pytest.fixture
def hasher():
    return IdentityHasher(SALT)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(store, hasher, clock):
    return CommentLedger(store, hasher, admin_secret=ADMIN_SECRET, now=clock)


@pytest.fixture
def throttle(store, hasher, clock):
    return LoginThrottle(
        store, hasher, password=PASSWORD, admin_secret=ADMIN_SECRET, now=clock,
    )
