"""Shared data models for dashboard_aggregator."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class ItemKind(str, Enum):
    """Kind of feed an item belongs to."""

    NEWS = "news"
    EVENT = "event"
    VIDEO = "video"
    INSTANT_LAUNCH = "instant_launch"


@dataclass(frozen=True)
class FeedSource:
    """Where a single feed is fetched from."""

    name: str
    kind: ItemKind
    url: str


@dataclass(frozen=True)
class Item:
    """Normalized feed entry shared by every feed kind."""

    title: str
    link: str
    kind: ItemKind
    published: Optional[datetime] = None
    summary: str = ""

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "link": self.link,
            "publishedAt": self.published.isoformat() if self.published else None,
            "summary": self.summary,
            "kind": self.kind.value,
        }


def sort_items(items: Iterable[Item]) -> Tuple[Item, ...]:
    """Return items newest first; entries without a timestamp go last."""
    return tuple(
        sorted(items, key=lambda item: item.published or _OLDEST, reverse=True)
    )


def feed_url(base_url: str, path: str) -> str:
    """Join the website base URL and a feed path."""
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
