"""In-memory snapshot of one feed's items."""

from __future__ import annotations

import logging
import threading
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Callable, ContextManager, Optional, Tuple

from .errors import FetchError
from .feeds import Fetcher
from .models import FeedSource, Item, sort_items

logger = logging.getLogger(__name__)


class FeedCache:
    """Holds the last successfully fetched items for a single feed.

    Readers get the current snapshot, an immutable tuple, without locking and
    without I/O. :meth:`refresh` builds a complete new tuple before swapping it
    in with a single attribute assignment, so a reader sees either the old
    snapshot or the new one, never a mixture. Refreshes of the same cache are
    serialized; a failed refresh leaves the previous snapshot in place.
    """

    def __init__(self, source: FeedSource, fetcher: Fetcher):
        self.source = source
        self.fetcher = fetcher
        self._items: Tuple[Item, ...] = ()
        self._refresh_lock = threading.Lock()
        self.last_refreshed_at: Optional[datetime] = None
        self.last_error: Optional[FetchError] = None

    @property
    def name(self) -> str:
        return self.source.name

    def get_items(self) -> Tuple[Item, ...]:
        """Return the current snapshot; empty until the first successful refresh."""
        return self._items

    def refresh(
        self,
        should_commit: Optional[Callable[[], bool]] = None,
        commit_lock: Optional[ContextManager] = None,
    ) -> bool:
        """Fetch the feed and replace the snapshot.

        Raises :class:`FetchError` when the fetch fails; the cached items are
        untouched in that case. When ``should_commit`` is given and returns
        false after the fetch completes, the result is discarded and ``False``
        is returned. ``commit_lock``, when given, is held while ``should_commit``
        is checked and the snapshot swapped, so whoever flips the condition
        under the same lock never sees a commit land after it.
        """
        with self._refresh_lock:
            try:
                items = self.fetcher.fetch(self.source)
            except FetchError as exc:
                self.last_error = exc
                raise
            except Exception as exc:  # noqa: BLE001
                error = FetchError(self.source.name, exc)
                self.last_error = error
                raise error from exc

            with commit_lock or nullcontext():
                if should_commit is not None and not should_commit():
                    logger.debug(
                        "Discarding refresh result for feed '%s'", self.name
                    )
                    return False

                self._items = sort_items(items)
                self.last_refreshed_at = datetime.now(timezone.utc)
                self.last_error = None
            logger.debug(
                "Feed '%s' refreshed with %d items", self.name, len(self._items)
            )
            return True

    def status(self) -> dict:
        return {
            "name": self.name,
            "kind": self.source.kind.value,
            "items": len(self._items),
            "lastRefreshedAt": (
                self.last_refreshed_at.isoformat() if self.last_refreshed_at else None
            ),
            "lastError": str(self.last_error) if self.last_error else None,
        }
