"""Session store capability and per-key locking for upload sessions."""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

T = TypeVar("T")


class KeyedLock:
    """Reference-counted mutex per key.

    Holding the lock for one key never blocks other keys. Entries are
    dropped once no thread holds or waits on them, so the registry does not
    grow with the number of SIDs ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock, refs = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, refs + 1)

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                _, refs = self._locks[key]
                if refs <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, refs - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class SessionStore(ABC, Generic[T]):
    """Capability interface over the SID -> session map.

    Implementations must make individual operations atomic. Callers needing
    read-modify-write atomicity for one SID wrap the sequence in lock(sid).
    """

    @abstractmethod
    def get(self, sid: str) -> Optional[T]:
        """Return the session for sid, or None."""

    @abstractmethod
    def put(self, sid: str, session: T) -> None:
        """Insert or replace the session for sid."""

    @abstractmethod
    def delete(self, sid: str) -> Optional[T]:
        """Remove and return the session for sid (None if absent)."""

    @abstractmethod
    def list_with_age(self, now: float) -> List[Tuple[str, float]]:
        """List (sid, age_seconds) pairs for every stored session."""

    @abstractmethod
    def lock(self, sid: str):
        """Context manager granting exclusive access to one SID."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of live sessions."""


class InMemorySessionStore(SessionStore[T]):
    """Process-local session store.

    Sessions must expose a ``created_at`` attribute on the same clock as the
    ``now`` passed to list_with_age.
    """

    def __init__(self):
        self._sessions: Dict[str, T] = {}
        self._map_lock = threading.Lock()
        self._keyed = KeyedLock()

    def get(self, sid: str) -> Optional[T]:
        with self._map_lock:
            return self._sessions.get(sid)

    def put(self, sid: str, session: T) -> None:
        with self._map_lock:
            self._sessions[sid] = session

    def delete(self, sid: str) -> Optional[T]:
        with self._map_lock:
            return self._sessions.pop(sid, None)

    def list_with_age(self, now: float) -> List[Tuple[str, float]]:
        with self._map_lock:
            return [(sid, now - session.created_at) for sid, session in self._sessions.items()]

    def lock(self, sid: str):
        return self._keyed.hold(sid)

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._sessions)
