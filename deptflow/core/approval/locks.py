"""Per-(request, stage) exclusive locks."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple


class StageLockRegistry:
    """
    Hands out one lock per (request id, stage code).

    Locks are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with the number of requests.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[int, str], threading.Lock] = {}
        self._users: Dict[Tuple[int, str], int] = {}

    @contextmanager
    def hold(self, request_id: int, stage_code: str) -> Iterator[None]:
        key = (request_id, stage_code)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
