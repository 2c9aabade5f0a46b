"""스케줄러 로직(Scheduler logic)."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from common_lib.db import ensure_connectivity, session_scope
from common_lib.errors import StorageUnavailableError
from common_lib.logger import get_logger
from common_lib.observability import correlation_id_ctx, new_correlation_id
from common_lib.timestamps import utc_now

from .collector import PageWalker, WorkSetCollector
from .context import SyncContext
from .models import CycleReport
from .processor import BatchProcessor
from .repository import VulnerabilityRepository
from .writer import UpsertWriter

logger = get_logger(__name__)


class SchedulerState(str, Enum):
    """스케줄러 상태(Scheduler state)."""

    IDLE = "idle"
    CONNECTIVITY_CHECK = "connectivity_check"
    RUNNING = "running"
    SLEEPING_LONG = "sleeping_long"
    SLEEPING_SHORT = "sleeping_short"


class SyncScheduler:
    """
    주기적 동기화 실행기(Periodic sync runner).

    IDLE -> CONNECTIVITY_CHECK -> RUNNING -> SLEEPING_LONG -> CONNECTIVITY_CHECK ...
    A failed connectivity check or any error escaping a cycle goes to
    SLEEPING_SHORT instead. Sleeps wait on a stop event, so ``stop()`` ends
    the loop without waiting out the interval.
    """

    def __init__(
        self,
        context: SyncContext,
        clock: Callable[[], datetime] = utc_now,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self._ctx = context
        self._clock = clock
        self._sleep = sleep or self._wait_or_stop
        self._stop_event = asyncio.Event()
        self._state = SchedulerState.IDLE
        self._is_running = False
        self.last_report: Optional[CycleReport] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _set_state(self, state: SchedulerState) -> None:
        if state is not self._state:
            logger.debug("Scheduler state %s -> %s", self._state.value, state.value)
        self._state = state

    async def start(self) -> None:
        """스케줄러 시작(Start scheduler loop); returns once stopped."""

        if self._is_running:
            return
        self._is_running = True
        self._stop_event.clear()
        try:
            while not self._stop_event.is_set():
                delay = await self._tick()
                if self._stop_event.is_set():
                    break
                await self._sleep(delay)
        finally:
            self._is_running = False
            self._set_state(SchedulerState.IDLE)

    async def stop(self) -> None:
        """스케줄러 중지(Stop scheduler loop, interrupting any sleep)."""

        self._stop_event.set()

    async def _tick(self) -> float:
        """Run one check + cycle and return the delay before the next one."""

        settings = self._ctx.settings
        try:
            await self.run_once()
        except StorageUnavailableError as exc:
            self.last_error = str(exc)
            self._set_state(SchedulerState.SLEEPING_SHORT)
            logger.warning("Retrying in %.0f seconds after connectivity failure", settings.sync_error_cooldown_seconds)
            return settings.sync_error_cooldown_seconds
        except Exception as exc:
            self.last_error = repr(exc)
            self._set_state(SchedulerState.SLEEPING_SHORT)
            logger.exception(
                "Error in sync loop; retrying in %.0f seconds",
                settings.sync_error_cooldown_seconds,
            )
            return settings.sync_error_cooldown_seconds

        self.last_error = None
        self._set_state(SchedulerState.SLEEPING_LONG)
        logger.info("Next sync in %.0f seconds", settings.sync_interval_seconds)
        return settings.sync_interval_seconds

    async def run_once(self) -> CycleReport:
        """연결 확인 후 한 사이클 실행(Connectivity check followed by one cycle).

        Raises StorageUnavailableError before any fetch when storage is down.
        """

        self._set_state(SchedulerState.CONNECTIVITY_CHECK)
        try:
            await ensure_connectivity(self._ctx.engine, timeout=self._ctx.settings.db_connect_timeout)
        except StorageUnavailableError:
            logger.error("Database check failed, aborting sync")
            raise
        self._set_state(SchedulerState.RUNNING)
        return await self.run_cycle()

    async def run_cycle(self) -> CycleReport:
        """단일 동기화 사이클(One discovery + processing cycle on one session)."""

        settings = self._ctx.settings
        cycle_id = new_correlation_id("cycle")
        token = correlation_id_ctx.set(cycle_id)
        started_at = self._clock()
        started = time.monotonic()
        logger.info("Starting NVD sync (window=%dh ending %s)", settings.sync_window_hours, started_at.isoformat())
        try:
            async with session_scope(self._ctx.session_factory) as session:
                collector = WorkSetCollector(
                    PageWalker(self._ctx.fetcher, settings.nvd_results_per_page),
                    window_hours=settings.sync_window_hours,
                )
                writer = UpsertWriter(self._ctx.fetcher, VulnerabilityRepository(session))
                processor = BatchProcessor(writer, batch_size=settings.sync_batch_size)

                work_set = await collector.collect_work_set(started_at)
                logger.info("Work set size: %d", len(work_set), extra={"work_set_size": len(work_set)})
                summary = await processor.process_all(work_set)

            duration = time.monotonic() - started
            report = CycleReport(
                cycle_id=cycle_id,
                started_at=started_at,
                duration_seconds=duration,
                work_set_size=len(work_set),
                summary=summary,
            )
            self.last_report = report
            logger.info(
                "Sync completed successfully in %.1f seconds (written=%d, skipped=%d, failed=%d)",
                duration,
                summary.written,
                summary.skipped,
                summary.failed,
                extra=summary.as_dict(),
            )
            return report
        finally:
            correlation_id_ctx.reset(token)

    def status(self) -> Dict[str, Any]:
        """상태 요약(Status summary for health endpoints)."""

        report = self.last_report
        return {
            "state": self._state.value,
            "running": self._is_running,
            "last_error": self.last_error,
            "last_cycle": None
            if report is None
            else {
                "cycle_id": report.cycle_id,
                "started_at": report.started_at.isoformat(),
                "duration_seconds": round(report.duration_seconds, 3),
                "work_set_size": report.work_set_size,
                **report.summary.as_dict(),
            },
        }

    async def _wait_or_stop(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
