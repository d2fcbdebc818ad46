"""Periodic background refresh of feed caches."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler

from .cache import FeedCache
from .errors import FetchError

logger = logging.getLogger(__name__)


class ScheduleState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


def build_scheduler(max_workers: int = 10) -> BackgroundScheduler:
    """Return a background scheduler shared by every feed schedule."""
    return BackgroundScheduler(
        executors={"default": {"type": "threadpool", "max_workers": max_workers}},
        timezone="UTC",
    )


class RefreshSchedule:
    """Refreshes one :class:`FeedCache` at a fixed interval.

    The first scheduled refresh happens one full interval after :meth:`start`;
    the initial pull is the caller's job. A tick that fires while the previous
    refresh is still running is skipped. Failures are logged and the schedule
    keeps its cadence.
    """

    def __init__(
        self,
        cache: FeedCache,
        interval_seconds: float,
        scheduler: BackgroundScheduler,
    ):
        if interval_seconds <= 0:
            raise ValueError("Refresh interval must be positive.")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler
        self.state = ScheduleState.STOPPED
        self._job = None
        self._lock = threading.Lock()

    @property
    def job_id(self) -> str:
        return f"refresh-{self.cache.name}"

    @property
    def running(self) -> bool:
        return self.state is ScheduleState.RUNNING

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._job = self.scheduler.add_job(
                self.run_refresh,
                "interval",
                seconds=self.interval_seconds,
                id=self.job_id,
                name=f"Refresh feed {self.cache.name}",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            self.state = ScheduleState.RUNNING
        logger.info(
            "Scheduled refresh of feed '%s' every %ss",
            self.cache.name,
            self.interval_seconds,
        )

    def stop(self) -> None:
        """Cancel future refreshes; a refresh already running may finish."""
        with self._lock:
            if not self.running:
                return
            self.state = ScheduleState.STOPPED
            job, self._job = self._job, None
        if job is not None:
            try:
                job.remove()
            except JobLookupError:
                logger.debug("Refresh job for '%s' was already gone", self.cache.name)
        logger.info("Stopped refresh of feed '%s'", self.cache.name)

    def next_run_time(self) -> Optional[datetime]:
        return self._job.next_run_time if self._job is not None else None

    def run_refresh(self) -> None:
        """Job body: refresh the cache, logging rather than raising failures."""
        if not self.running:
            return
        try:
            committed = self.cache.refresh(
                should_commit=lambda: self.running, commit_lock=self._lock
            )
        except FetchError as exc:
            logger.warning(
                "Refresh of feed '%s' failed, keeping %d cached items: %s",
                self.cache.name,
                len(self.cache.get_items()),
                exc,
            )
            return
        if not committed:
            logger.info(
                "Refresh of feed '%s' finished after stop; result discarded",
                self.cache.name,
            )
