"""Per-attempt re-entrant locks.

A transition, the scoring it triggers and the result it produces all run while
holding the attempt's lock, so two submits (or a submit racing a timeout) in
this process cannot score or build a result twice. Unique constraints on the
attempt and result tables cover multi-process deployments.

Registry entries are reference counted and dropped once the last holder or
waiter leaves, so the registry only ever holds attempts in active use.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


_registry_lock = threading.Lock()
_attempt_locks: Dict[int, _Entry] = {}


def _checkout(attempt_id: int) -> _Entry:
    with _registry_lock:
        entry = _attempt_locks.get(attempt_id)
        if entry is None:
            entry = _Entry()
            _attempt_locks[attempt_id] = entry
        entry.users += 1
        return entry


def _checkin(attempt_id: int, entry: _Entry) -> None:
    with _registry_lock:
        entry.users -= 1
        if entry.users == 0:
            del _attempt_locks[attempt_id]


def active_lock_count() -> int:
    with _registry_lock:
        return len(_attempt_locks)


@contextmanager
def attempt_lock(attempt_id: int) -> Iterator[None]:
    entry = _checkout(attempt_id)
    try:
        with entry.lock:
            yield
    finally:
        _checkin(attempt_id, entry)
