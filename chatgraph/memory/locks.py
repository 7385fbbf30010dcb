"""Per-session serialisation for chat turns.

``SessionLocks`` hands out one lock per session id, so two turns on the same
session run one after the other inside a process.  Distinct sessions never
wait on each other.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class SessionLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
            self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._waiters[session_id] -= 1
                # Drop idle entries so the registry does not grow with every session seen.
                if not self._waiters[session_id]:
                    del self._waiters[session_id]
                    del self._locks[session_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
