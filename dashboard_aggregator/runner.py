"""Process-wide lifecycle of the dashboard feeds."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .cache import FeedCache
from .config import FeedsConfig
from .errors import FetchError
from .feeds import build_fetcher
from .models import FeedSource, ItemKind
from .scheduler import RefreshSchedule, build_scheduler

logger = logging.getLogger(__name__)

NEWS = "news"
EVENTS = "events"
VIDEOS = "videos"
INSTANT_LAUNCHES = "instant_launches"


class FeedRuntime:
    """Owns every feed cache and its refresh schedule for the process lifetime.

    The lifecycle has three explicit phases: construction (no I/O),
    :meth:`pull_all` (blocking initial pull) and :meth:`start` (periodic
    refresh). :meth:`shutdown` stops the schedules.
    """

    def __init__(
        self,
        caches: Dict[str, FeedCache],
        refresh_interval_seconds: float,
        scheduler: Optional[BackgroundScheduler] = None,
        active: Optional[List[str]] = None,
    ):
        self.caches = caches
        self.active = list(active) if active is not None else list(caches)
        self.scheduler = scheduler or build_scheduler(max_workers=max(len(caches), 1))
        self.schedules: Dict[str, RefreshSchedule] = {
            name: RefreshSchedule(caches[name], refresh_interval_seconds, self.scheduler)
            for name in self.active
        }

    @classmethod
    def from_config(
        cls, config: FeedsConfig, scheduler: Optional[BackgroundScheduler] = None
    ) -> "FeedRuntime":
        timeout = config.fetch_timeout_seconds
        sources = [
            FeedSource(NEWS, ItemKind.NEWS, config.news_url),
            FeedSource(EVENTS, ItemKind.EVENT, config.events_url),
            FeedSource(VIDEOS, ItemKind.VIDEO, config.videos_url),
            FeedSource(INSTANT_LAUNCHES, ItemKind.INSTANT_LAUNCH, config.app_exposer_url),
        ]
        caches = {
            source.name: FeedCache(
                source,
                build_fetcher(
                    source.kind,
                    timeout=timeout,
                    instant_launch_user=config.app_exposer_user,
                ),
            )
            for source in sources
        }

        active = [NEWS, EVENTS, VIDEOS]
        if config.instant_launches_enabled:
            active.append(INSTANT_LAUNCHES)
        else:
            logger.info("Instant launches feed is disabled; it will stay empty")

        return cls(
            caches,
            refresh_interval_seconds=config.refresh_interval_seconds,
            scheduler=scheduler,
            active=active,
        )

    def cache(self, name: str) -> FeedCache:
        return self.caches[name]

    def pull_all(self) -> Dict[str, bool]:
        """Populate every active cache once, concurrently, before serving."""

        def pull(name: str) -> bool:
            try:
                self.caches[name].refresh()
            except FetchError as exc:
                logger.warning("Initial pull of feed '%s' failed: %s", name, exc)
                return False
            return True

        results: Dict[str, bool] = {}
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=max(len(self.active), 1)
        ) as executor:
            future_to_name = {
                executor.submit(pull, name): name for name in self.active
            }
            for future in concurrent.futures.as_completed(future_to_name):
                results[future_to_name[future]] = future.result()

        logger.info(
            "Initial pull finished: %d of %d feeds populated",
            sum(results.values()),
            len(results),
        )
        return results

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        for schedule in self.schedules.values():
            schedule.start()

    def shutdown(self) -> None:
        """Stop every schedule and the scheduler; calling it again is a no-op."""
        for schedule in self.schedules.values():
            schedule.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Feed runtime shut down")
