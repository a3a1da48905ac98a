"""Per-resource leases so two plans never mutate the same resource at once."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from opspilot.errors import ResourceBusyError


class ResourceLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, resource_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, resource_id: str, timeout: float = 60.0) -> Iterator[None]:
        """Hold the lease for `resource_id`; raises ResourceBusyError after `timeout` seconds."""
        lock = self._lock_for(resource_id)
        if not lock.acquire(timeout=timeout):
            raise ResourceBusyError(f"Resource {resource_id} is busy with another remediation")
        try:
            yield
        finally:
            lock.release()

    def is_held(self, resource_id: str) -> bool:
        return self._lock_for(resource_id).locked()
