"""Automatic sync scheduling for fastsync.

SyncManager owns the UI-facing sync status and decides when a full sync
actually runs:

- status goes idle -> syncing -> success|error, then back to idle after a
  short display delay
- automatic triggers closer together than min_interval are skipped
  (force=True bypasses this)
- a trigger while a sync is already running is skipped, not queued
- start() runs a periodic background sync every interval

The clock and sleep function are injectable so tests can drive time.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .sync import FullSyncResult, SyncOrchestrator
from .timestamp_utils import current_timestamp_ms

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60
DEFAULT_MIN_INTERVAL_SECONDS = 60
DEFAULT_STATUS_RESET_SECONDS = 3


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


StatusListener = Callable[[SyncStatus], None]


class SyncManager:
    """Throttled, single-flight driver around SyncOrchestrator."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        min_interval_seconds: float = DEFAULT_MIN_INTERVAL_SECONDS,
        status_reset_seconds: float = DEFAULT_STATUS_RESET_SECONDS,
        clock: Callable[[], int] = current_timestamp_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.min_interval_ms = int(min_interval_seconds * 1000)
        self.status_reset_seconds = status_reset_seconds
        self.clock = clock
        self.sleep = sleep

        self.status = SyncStatus.IDLE
        self.last_sync_time: Optional[int] = None
        self.last_error: Optional[str] = None
        self._last_attempt: Optional[int] = None
        self._in_flight = False
        self._listeners: List[StatusListener] = []
        self._periodic_task: Optional[asyncio.Task] = None
        self._reset_task: Optional[asyncio.Task] = None

    def add_listener(self, listener: StatusListener) -> None:
        """Call listener(status) on every status change."""
        self._listeners.append(listener)

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Sync status listener failed: {e}")

    async def load_last_sync_time(self) -> Optional[int]:
        self.last_sync_time = await self.orchestrator.get_last_sync_time()
        return self.last_sync_time

    async def sync_now(self, force: bool = False) -> Optional[FullSyncResult]:
        """Run a full sync unless throttled or already running.

        Args:
            force: Ignore the minimum interval between attempts

        Returns:
            The sync result, or None if the attempt was skipped
        """
        if self._in_flight:
            logger.debug("Sync already in progress, skipping trigger")
            return None

        now = self.clock()
        if (
            not force
            and self._last_attempt is not None
            and now - self._last_attempt < self.min_interval_ms
        ):
            logger.debug("Sync throttled")
            return None

        self._in_flight = True
        self._last_attempt = now
        self._cancel_reset()
        self._set_status(SyncStatus.SYNCING)
        try:
            result = await self.orchestrator.perform_full_sync()
        finally:
            self._in_flight = False

        if result.success:
            self.last_error = None
            self._set_status(SyncStatus.SUCCESS)
            await self.load_last_sync_time()
        else:
            self.last_error = result.error.message if result.error else "Sync failed"
            logger.info(f"Sync failed: {self.last_error}")
            self._set_status(SyncStatus.ERROR)

        self._reset_task = asyncio.create_task(self._reset_status_later())
        return result

    async def on_foreground(self) -> Optional[FullSyncResult]:
        """Trigger used when the app returns to the foreground."""
        return await self.sync_now()

    async def _reset_status_later(self) -> None:
        await self.sleep(self.status_reset_seconds)
        if not self._in_flight:
            self._set_status(SyncStatus.IDLE)

    def _cancel_reset(self) -> None:
        if self._reset_task is not None and not self._reset_task.done():
            self._reset_task.cancel()
        self._reset_task = None

    # ===== Periodic sync =====

    def start(self) -> None:
        """Start the periodic background sync (first run is immediate)."""
        if self._periodic_task is not None and not self._periodic_task.done():
            return
        self._periodic_task = asyncio.create_task(self._run_periodic())

    async def stop(self) -> None:
        """Stop the periodic sync and any pending status reset."""
        tasks = [task for task in (self._periodic_task, self._reset_task) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._periodic_task = None
        self._reset_task = None

    @property
    def is_running(self) -> bool:
        return self._periodic_task is not None and not self._periodic_task.done()

    async def _run_periodic(self) -> None:
        await self.load_last_sync_time()
        while True:
            await self.sync_now()
            await self.sleep(self.interval_seconds)
