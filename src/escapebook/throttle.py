"""Password gate with escalating lockout.

Per identity, consecutive failures move through
``normal -> warning1 -> warning2 -> locked``. A lockout rejects every attempt,
the right password included, until it expires. Only the administrator
secret gets through a lockout.

Key layout:

    failures:<identity>     JSON failure count, expires after the retention window
    lockout:<identity>      ISO-8601 lockout expiry, expires with the lockout
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from escapebook.config import Settings, ThrottleLimits
from escapebook.identity import IdentityHasher, secrets_match, short_hash
from escapebook.models import FailureRecord, LoginOutcome, LoginStage
from escapebook.store import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)


def failures_key(identity: str) -> str:
    return f"failures:{identity}"


def lockout_key(identity: str) -> str:
    return f"lockout:{identity}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoginThrottle:
    """Checks the shared login secret and tracks failures per client."""

    def __init__(
        self,
        store: KeyValueStore,
        hasher: IdentityHasher,
        password: str = "",
        admin_secret: str = "",
        limits: Optional[ThrottleLimits] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._hasher = hasher
        self._password = password
        self._admin_secret = admin_secret
        self.limits = limits or ThrottleLimits()
        self._now = now

    @classmethod
    def from_settings(cls, store: KeyValueStore, settings: Settings) -> LoginThrottle:
        return cls(
            store,
            IdentityHasher(settings.secret_salt),
            password=settings.password,
            admin_secret=settings.admin_secret,
            limits=settings.limits,
        )

    # --- Record helpers ---

    def _load(self, identity: str) -> FailureRecord:
        count = read_json(self._store, failures_key(identity))
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            count = 0
        until_raw = self._store.get(lockout_key(identity))
        until = None
        if until_raw:
            try:
                until = datetime.fromisoformat(until_raw)
            except ValueError:
                logger.warning("Discarding unreadable lockout for %s", short_hash(identity))
            else:
                if until.tzinfo is None:
                    until = until.replace(tzinfo=timezone.utc)
        return FailureRecord(count=count, lockout_until=until)

    def _clear(self, identity: str) -> None:
        self._store.delete(lockout_key(identity))
        self._store.delete(failures_key(identity))

    # --- Operations ---

    def status(self, client_address: Optional[str]) -> FailureRecord:
        """Current failure record for a client address."""
        return self._load(self._hasher(client_address))

    def reset(self, client_address: Optional[str]) -> None:
        """Forget all failures and any lockout for a client address."""
        identity = self._hasher(client_address)
        self._clear(identity)
        logger.info("Cleared login failures for %s", short_hash(identity))

    def authenticate(self, client_address: Optional[str], submitted: Optional[str]) -> LoginOutcome:
        """Check a login attempt and advance the failure state machine."""
        identity = self._hasher(client_address)
        now = self._now()

        if secrets_match(submitted, self._admin_secret):
            self._clear(identity)
            logger.info("Administrator override login for %s", short_hash(identity))
            return LoginOutcome(stage=LoginStage.SUCCESS)

        record = self._load(identity)
        if record.is_locked(now):
            return LoginOutcome(
                stage=LoginStage.LOCKED,
                count=record.count,
                locked_until=record.lockout_until,
            )

        # A lockout that has run out (or whose key already expired) starts over.
        if record.lockout_until is not None or record.count >= self.limits.ban_at:
            self._clear(identity)
            record = FailureRecord()

        if secrets_match(submitted, self._password):
            self._clear(identity)
            return LoginOutcome(stage=LoginStage.SUCCESS)

        return self._record_failure(identity, record.count + 1, now)

    def _record_failure(self, identity: str, count: int, now: datetime) -> LoginOutcome:
        limits = self.limits
        retention = limits.failure_retention.total_seconds()

        if count >= limits.ban_at:
            until = now + limits.ban_duration
            ban_seconds = limits.ban_duration.total_seconds()
            write_json(self._store, failures_key(identity), count, ttl_seconds=max(retention, ban_seconds))
            self._store.put(lockout_key(identity), until.isoformat(), ttl_seconds=ban_seconds)
            logger.info("Locked out %s until %s after %d failures", short_hash(identity), until.isoformat(), count)
            return LoginOutcome(stage=LoginStage.LOCKED, count=count, locked_until=until)

        write_json(self._store, failures_key(identity), count, ttl_seconds=retention)
        if count >= limits.warn2:
            stage = LoginStage.WARNING2
        elif count >= limits.warn1:
            stage = LoginStage.WARNING1
        else:
            stage = LoginStage.NORMAL
        return LoginOutcome(stage=stage, count=count)
