from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from app.services.policy import Period


class KeyedLockRegistry:
    """Process-wide mutexes keyed by resource name.

    Keys are always acquired in sorted order so two callers asking for
    overlapping key sets cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: dict[str, Lock] = {}
        self._guard = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        acquired: list[Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


def instructor_key(instructor_id: str, period: Period) -> str:
    return f"instructor:{instructor_id}:{period.key()}"


def slot_key(course_id: str, section: str, period: Period) -> str:
    return f"slot:{course_id}:{section}:{period.key()}"


_registry = KeyedLockRegistry()


def get_lock_registry() -> KeyedLockRegistry:
    return _registry
