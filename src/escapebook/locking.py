"""Optional mutual exclusion around multi-key writes.

The key-value store has no transactions, so concurrent submissions from one
identity or concurrent deletions can interleave. Passing :class:`ProcessLocks`
to the ledger serializes them within one process; a deployment spanning
several processes needs its own :class:`LockProvider` backed by a lock service.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager, nullcontext
from typing import ContextManager, Iterator, Protocol

BOARD_LOCK = "board"


def identity_lock(identity: str) -> str:
    return f"identity:{identity}"


class LockProvider(Protocol):
    def hold(self, name: str) -> ContextManager[None]:
        """Context manager holding the named lock."""
        ...


class NullLocks:
    """No locking. Accepts the store's weak-consistency boundary."""

    def hold(self, name: str) -> ContextManager[None]:
        return nullcontext()


class ProcessLocks:
    """Named re-entrant locks shared by threads of one process."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            self._users[name] = self._users.get(name, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[name] -= 1
                if self._users[name] == 0:
                    del self._users[name]
                    del self._locks[name]
