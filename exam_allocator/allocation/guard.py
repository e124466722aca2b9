"""Process-wide mutual exclusion for question allocation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from time import monotonic

from exam_allocator.core.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


class ConcurrencyGuard:
    """Serialize allocation attempts so two packages never claim the same fresh questions.

    The guard goes ``Free -> Held -> Free``. It is not re-entrant: acquiring it
    again from the task that already holds it raises ``RuntimeError`` rather
    than deadlocking. With ``timeout_seconds=None`` waiters block until the
    holder releases; a positive timeout raises ``LockTimeoutError`` instead.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive or None")
        self._timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[object] | None = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @property
    def held_by_current_task(self) -> bool:
        return self._lock.locked() and self._owner is asyncio.current_task()

    @property
    def timeout_seconds(self) -> float | None:
        return self._timeout_seconds

    async def acquire(self) -> None:
        current = asyncio.current_task()
        if current is not None and self._owner is current:
            raise RuntimeError("Allocation lock is not re-entrant")

        started = monotonic()
        if self._timeout_seconds is None:
            await self._lock.acquire()
        else:
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=self._timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    "Timed out waiting for allocation lock",
                    extra={"timeout_seconds": self._timeout_seconds},
                )
                raise LockTimeoutError(self._timeout_seconds) from None

        self._owner = current
        logger.debug(
            "Allocation lock acquired",
            extra={"wait_ms": round((monotonic() - started) * 1000, 2)},
        )

    def release(self) -> None:
        if not self._lock.locked() or self._owner is not asyncio.current_task():
            raise RuntimeError("Allocation lock can only be released by the task holding it")
        self._owner = None
        self._lock.release()
        logger.debug("Allocation lock released")

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block, releasing on every exit path."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()


@lru_cache
def get_allocation_guard() -> ConcurrencyGuard:
    """Return the process-wide allocation guard."""
    from exam_allocator.config import settings

    return ConcurrencyGuard(timeout_seconds=settings.allocation_lock_timeout_seconds)
