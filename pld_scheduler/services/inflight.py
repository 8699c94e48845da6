import threading
from contextlib import contextmanager
from typing import Hashable, Set

from pld_scheduler.core.exceptions import ActionInProgressError


class InFlightGuard:
    """
    Allows a single in-flight mutation per entity.
    One guard is created per application (or per test) and handed to the services;
    a second action on the same key fails fast instead of queueing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[Hashable] = set()

    @contextmanager
    def hold(self, key: Hashable):
        with self._lock:
            if key in self._active:
                raise ActionInProgressError(key)
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)

    def is_active(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._active
