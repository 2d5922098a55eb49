"""Admission control for external-process execution."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class ConcurrencyLimiter:
    """Bound the number of simultaneously running executions.

    Callers that find no free slot are suspended and resumed strictly in
    arrival order: a released slot goes to the longest-waiting acquirer
    before any newcomer. ``asyncio.Semaphore`` provides that hand-off on
    Python 3.11+.

    Every ``acquire()`` must be paired with exactly one ``release()``.
    Releasing more often than acquiring is a caller bug and is not checked.
    Prefer ``async with limiter:`` so the slot is returned on every exit path.

    All methods must be called from the event loop thread that owns the
    limiter.
    """

    def __init__(self, max_concurrency: int = 1):
        self.capacity = max(1, int(max_concurrency))
        self._semaphore = asyncio.Semaphore(self.capacity)
        self._active = 0
        self._waiting = 0
        self.peak_active = 0

    @property
    def active(self) -> int:
        """Number of slots currently held."""
        return self._active

    @property
    def waiting(self) -> int:
        """Number of callers suspended in ``acquire()``."""
        return self._waiting

    async def acquire(self) -> None:
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1
        self._active += 1
        if self._active > self.peak_active:
            self.peak_active = self._active
        logger.debug("Slot acquired active=%d/%d waiting=%d", self._active, self.capacity, self._waiting)

    def release(self) -> None:
        self._active -= 1
        self._semaphore.release()
        logger.debug("Slot released active=%d/%d waiting=%d", self._active, self.capacity, self._waiting)

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    def stats(self) -> dict:
        return {
            "capacity": self.capacity,
            "active": self._active,
            "waiting": self._waiting,
            "peak_active": self.peak_active,
        }
