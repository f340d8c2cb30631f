"""Per-repository serialization for dispatches."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class RepositoryLocks:
    """A lazily created ``threading.Lock`` for each ``owner/repo`` key.

    Dispatches for the same repository share a mirror directory and must not
    overlap; different repositories proceed in parallel.

    Locks are never evicted. A key is only created once an event has matched a
    configured rule, so the map holds at most one lock per mirror directory
    under the workdir.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
