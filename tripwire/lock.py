"""ConfigLock — advisory mutual exclusion over the configuration document.

The lock record is a single process id stored in the document itself
(``settings.locked``; 0 = unlocked).  It protects against exactly one other
local instance of the daemon working on the same document.  It is not a
distributed lock and gives no guarantee against external edits.

A recorded holder whose process is no longer alive is *stale* and may be
reclaimed; liveness is probed with a zero signal (``psutil.pid_exists``).
"""

from __future__ import annotations

from typing import Callable

import psutil

from tripwire.exceptions import LockError, PersistenceError
from tripwire.logging import get_logger
from tripwire.store import ConfigurationStore

log = get_logger(__name__)

UNLOCKED = 0


class ConfigLock:
    """Acquire and release the lock record of a ConfigurationStore.

    Usage::

        lock = ConfigLock(store)
        lock.acquire(os.getpid())   # raises LockError if a live process holds it
        ...
        lock.release()              # raises PersistenceError if the write fails
    """

    def __init__(
        self,
        store: ConfigurationStore,
        pid_alive: Callable[[int], bool] = psutil.pid_exists,
    ) -> None:
        self._store = store
        self._pid_alive = pid_alive

    @property
    def holder(self) -> int:
        return self._store.lock_holder

    def is_held_by(self, holder: int) -> bool:
        return self._store.lock_holder == holder

    def acquire(self, holder: int) -> None:
        """Record *holder* as the lock owner and persist the document."""
        if holder == UNLOCKED:
            raise ValueError("holder id must be non-zero")

        current = self._store.lock_holder
        if current not in (UNLOCKED, holder):
            log.debug("previous_lock_not_released", holder=current)
            if self._pid_alive(current):
                raise LockError(current, f"process {current} is still running")
            log.warning("stale_lock_reclaimed", previous_holder=current, holder=holder)

        self._write(holder, previous=current)
        log.debug("configuration_locked", holder=holder, path=self._store.location)

    def release(self) -> None:
        """Reset the lock record to 0 and persist the document."""
        current = self._store.lock_holder
        self._write(UNLOCKED, previous=current)
        log.debug("configuration_unlocked", previous_holder=current, path=self._store.location)

    def _write(self, value: int, previous: int) -> None:
        self._store.lock_holder = value
        try:
            self._store.save()
        except PersistenceError:
            self._store.lock_holder = previous
            log.error(
                "lock_record_write_failed",
                path=self._store.location,
                attempted=value,
                restored=previous,
            )
            raise
