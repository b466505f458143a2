"""
Per-trip write serialization.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from tripcore.core.config import settings
from tripcore.core.exceptions import Conflict

logger = logging.getLogger(__name__)


class TripLockRegistry:
    """
    Hands out one re-entrant lock per trip.

    Writers to the same trip queue behind each other; a writer that waits
    longer than ``timeout`` gets a Conflict instead of blocking forever.
    Re-entrancy lets the gateway hold the lock while the store takes it again.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.TRIP_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._locks: Dict[int, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, trip_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(trip_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[trip_id] = lock
            return lock

    @contextmanager
    def hold(self, trip_id: int) -> Iterator[None]:
        lock = self._lock_for(trip_id)
        if not lock.acquire(timeout=self.timeout):
            logger.warning("Trip %s lock not acquired within %.1fs", trip_id, self.timeout)
            raise Conflict("Trip is being modified by another request, please retry",
                           {"trip_id": trip_id})
        try:
            yield
        finally:
            lock.release()

    def forget(self, trip_id: int) -> None:
        """Drop the lock of a deleted trip."""
        with self._guard:
            self._locks.pop(trip_id, None)


trip_locks = TripLockRegistry()
