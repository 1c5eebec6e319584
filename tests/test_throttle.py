"""Tests for escapebook.throttle — login failure escalation and lockout."""

from datetime import timedelta

import pytest

from escapebook.config import ThrottleLimits
from escapebook.exceptions import ConfigError
from escapebook.models import LoginStage
from escapebook.store import MemoryKeyValueStore
from escapebook.throttle import LoginThrottle, failures_key, lockout_key

from conftest import ADMIN_SECRET, PASSWORD

IP = "192.0.2.10"


def _fail(throttle, times, ip=IP):
    outcomes = []
    for _ in range(times):
        outcomes.append(throttle.authenticate(ip, "wrong"))
    return outcomes


class TestEscalation:
    def test_stages_by_attempt(self, throttle):
        stages = [o.stage for o in _fail(throttle, 10)]
        assert stages[:4] == [LoginStage.NORMAL] * 4
        assert stages[4:7] == [LoginStage.WARNING1] * 3
        assert stages[7:9] == [LoginStage.WARNING2] * 2
        assert stages[9] == LoginStage.LOCKED

    def test_counts_reported(self, throttle):
        counts = [o.count for o in _fail(throttle, 6)]
        assert counts == [1, 2, 3, 4, 5, 6]

    def test_lockout_is_24_hours(self, throttle, clock):
        outcome = _fail(throttle, 10)[-1]
        assert outcome.locked_until == clock.current + timedelta(hours=24)
        assert outcome.retry_after_seconds(clock.current) == 86400

    def test_only_locked_carries_expiry(self, throttle):
        for outcome in _fail(throttle, 9):
            assert outcome.locked_until is None

    def test_identities_are_independent(self, throttle):
        _fail(throttle, 9)
        other = throttle.authenticate("192.0.2.99", "wrong")
        assert other.stage == LoginStage.NORMAL
        assert other.count == 1


class TestSuccess:
    def test_correct_password(self, throttle):
        outcome = throttle.authenticate(IP, PASSWORD)
        assert outcome.ok
        assert outcome.stage == LoginStage.SUCCESS

    def test_success_clears_failures(self, throttle, store, hasher):
        _fail(throttle, 7)
        assert throttle.authenticate(IP, PASSWORD).ok
        assert store.get(failures_key(hasher(IP))) is None
        assert throttle.authenticate(IP, "wrong").count == 1

    def test_empty_password_config_never_succeeds(self, store, hasher):
        throttle = LoginThrottle(store, hasher, password="", admin_secret="")
        assert throttle.authenticate(IP, "").stage == LoginStage.NORMAL


class TestLockout:
    def test_correct_password_rejected_while_locked(self, throttle):
        _fail(throttle, 10)
        outcome = throttle.authenticate(IP, PASSWORD)
        assert outcome.stage == LoginStage.LOCKED
        assert outcome.count == 10

    def test_attempts_while_locked_do_not_count(self, throttle):
        _fail(throttle, 10)
        _fail(throttle, 3)
        assert throttle.status(IP).count == 10

    def test_admin_override_during_lockout(self, throttle, store, hasher):
        _fail(throttle, 10)
        outcome = throttle.authenticate(IP, ADMIN_SECRET)
        assert outcome.stage == LoginStage.SUCCESS
        assert store.get(lockout_key(hasher(IP))) is None
        assert store.get(failures_key(hasher(IP))) is None
        assert throttle.status(IP).count == 0

    def test_still_locked_just_before_expiry(self, throttle, clock):
        _fail(throttle, 10)
        clock.advance(hours=23, minutes=59)
        assert throttle.authenticate(IP, PASSWORD).stage == LoginStage.LOCKED

    def test_expired_lockout_resets_count(self, throttle, clock):
        _fail(throttle, 10)
        clock.advance(hours=24, seconds=1)
        outcome = throttle.authenticate(IP, "wrong")
        assert outcome.stage == LoginStage.NORMAL
        assert outcome.count == 1

    def test_password_works_after_expiry(self, throttle, clock):
        _fail(throttle, 10)
        clock.advance(hours=25)
        assert throttle.authenticate(IP, PASSWORD).ok

    def test_count_at_ban_without_lockout_key_starts_over(self, throttle, store, hasher):
        # Lockout key expired from the store before the failure counter did.
        _fail(throttle, 10)
        store.delete(lockout_key(hasher(IP)))
        outcome = throttle.authenticate(IP, "wrong")
        assert outcome.stage == LoginStage.NORMAL
        assert outcome.count == 1


class TestRetention:
    def test_failures_expire_after_retention(self, hasher, clock):
        tick = [0.0]
        store = MemoryKeyValueStore(clock=lambda: tick[0])
        throttle = LoginThrottle(
            store, hasher, password=PASSWORD,
            limits=ThrottleLimits(failure_retention=timedelta(minutes=30)),
            now=clock,
        )
        _fail(throttle, 4)
        tick[0] += 30 * 60
        assert throttle.authenticate(IP, "wrong").count == 1

    def test_lockout_key_expires_with_ban(self, hasher, clock):
        tick = [0.0]
        store = MemoryKeyValueStore(clock=lambda: tick[0])
        throttle = LoginThrottle(store, hasher, password=PASSWORD, now=clock)
        _fail(throttle, 10)
        assert store.get(lockout_key(hasher(IP))) is not None
        tick[0] += 86400
        assert store.get(lockout_key(hasher(IP))) is None


class TestOperatorTools:
    def test_status(self, throttle, clock):
        _fail(throttle, 3)
        record = throttle.status(IP)
        assert record.count == 3
        assert not record.is_locked(clock.current)

    def test_status_locked(self, throttle, clock):
        _fail(throttle, 10)
        record = throttle.status(IP)
        assert record.is_locked(clock.current)

    def test_reset_unlocks(self, throttle):
        _fail(throttle, 10)
        throttle.reset(IP)
        assert throttle.authenticate(IP, PASSWORD).ok


class TestCustomLimits:
    def test_lower_thresholds(self, store, hasher, clock):
        limits = ThrottleLimits(warn1=1, warn2=2, ban_at=3, ban_duration=timedelta(minutes=5))
        throttle = LoginThrottle(store, hasher, password=PASSWORD, limits=limits, now=clock)
        stages = [o.stage for o in _fail(throttle, 3)]
        assert stages == [LoginStage.WARNING1, LoginStage.WARNING2, LoginStage.LOCKED]
        clock.advance(minutes=5)
        assert throttle.authenticate(IP, PASSWORD).ok

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ConfigError):
            ThrottleLimits(warn1=8, warn2=5, ban_at=10)
        with pytest.raises(ConfigError):
            ThrottleLimits(warn1=0)
