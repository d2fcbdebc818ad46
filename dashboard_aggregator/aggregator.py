"""Request-time assembly of feed data into one response."""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .cache import FeedCache
from .errors import PartialAggregationError
from .runner import EVENTS, INSTANT_LAUNCHES, NEWS, VIDEOS, FeedRuntime

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def validate_limit(value: Any) -> Optional[int]:
    """Return a positive integer limit, or None when no limit was given."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"limit must be a positive integer, got {value!r}")
    if isinstance(value, int):
        limit = value
    elif isinstance(value, str) and value.strip().isdigit():
        limit = int(value.strip())
    else:
        raise ValueError(f"limit must be a positive integer, got {value!r}")
    if limit <= 0:
        raise ValueError(f"limit must be a positive integer, got {value!r}")
    return limit


@dataclass
class Aggregation:
    """Sections gathered for one response plus the ones that failed."""

    data: Dict[str, Any]
    errors: List[PartialAggregationError] = field(default_factory=list)

    @property
    def failed_sections(self) -> List[str]:
        return [error.section for error in self.errors]


def gather(tasks: Mapping[str, Callable[[], Any]], max_workers: int = 8) -> Aggregation:
    """Run section producers concurrently, isolating each one's failure.

    A section whose producer raises is logged, rendered as an empty list and
    recorded in :attr:`Aggregation.errors`; the other sections are unaffected.
    """
    data: Dict[str, Any] = {}
    errors: List[PartialAggregationError] = []
    if not tasks:
        return Aggregation(data, errors)

    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(max_workers, len(tasks))
    ) as executor:
        future_to_name = {
            executor.submit(task): name for name, task in tasks.items()
        }
        for future in concurrent.futures.as_completed(future_to_name):
            name = future_to_name[future]
            try:
                data[name] = future.result()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Failed to build section '%s'", name)
                errors.append(PartialAggregationError(name, exc))
                data[name] = []

    ordered = {name: data[name] for name in tasks}
    return Aggregation(ordered, errors)


class FeedAggregator:
    """Reads the feed caches and shapes them for the dashboard.

    Only :meth:`FeedCache.get_items` is used, so building a response never
    performs network I/O and never changes a cache.
    """

    def __init__(
        self,
        news: FeedCache,
        events: FeedCache,
        videos: FeedCache,
        instant_launches: FeedCache,
        default_limit: int = DEFAULT_LIMIT,
    ):
        self.feeds = {"news": news, "events": events, "videos": videos}
        self.instant_launches = instant_launches
        self.default_limit = default_limit

    @classmethod
    def from_runtime(
        cls, runtime: FeedRuntime, default_limit: int = DEFAULT_LIMIT
    ) -> "FeedAggregator":
        return cls(
            news=runtime.cache(NEWS),
            events=runtime.cache(EVENTS),
            videos=runtime.cache(VIDEOS),
            instant_launches=runtime.cache(INSTANT_LAUNCHES),
            default_limit=default_limit,
        )

    @staticmethod
    def _section(cache: FeedCache, limit: Optional[int]) -> Callable[[], list]:
        def read() -> list:
            items = cache.get_items()
            if limit is not None:
                items = items[:limit]
            return [item.to_dict() for item in items]

        return read

    def collect_feeds(self, limit: Optional[int] = None) -> Aggregation:
        limit = limit or self.default_limit
        return gather(
            {name: self._section(cache, limit) for name, cache in self.feeds.items()}
        )

    def create_feeds(self, limit: Optional[int] = None) -> Dict[str, list]:
        """Return news, events and videos, each truncated to ``limit`` items."""
        return self.collect_feeds(limit).data

    def instant_launch_items(self) -> list:
        """Return every cached instant launch; the limit does not apply."""
        return self._section(self.instant_launches, None)()

    def dashboard(
        self,
        limit: Optional[int] = None,
        sections: Optional[Mapping[str, Callable[[], Any]]] = None,
    ) -> Aggregation:
        """Assemble the feeds, instant launches and any extra data sources."""
        feeds = self.collect_feeds(limit)
        tasks: Dict[str, Callable[[], Any]] = {
            "instantLaunches": self.instant_launch_items,
        }
        if sections:
            tasks.update(sections)

        result = gather(tasks)
        result.data["feeds"] = feeds.data
        result.errors.extend(feeds.errors)
        if result.errors:
            logger.warning(
                "Dashboard assembled without sections: %s",
                ", ".join(result.failed_sections),
            )
        return result
