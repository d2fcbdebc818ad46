"""Feed retrieval and parsing for every supported feed kind."""

from __future__ import annotations

import calendar
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests
from bs4 import BeautifulSoup

from .errors import FetchError
from .models import FeedSource, Item, ItemKind, sort_items

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={}"


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser timestamps (always UTC) to timezone-aware datetimes."""
    if value is None:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into a UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.isdigit():
        value = int(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    soup = BeautifulSoup(raw_value, "html.parser")
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def _entry_summary(entry: Any) -> str:
    summary = entry.get("summary")
    if not summary:
        summary_detail = entry.get("summary_detail")
        if summary_detail:
            summary = summary_detail.get("value")
    if not summary:
        content = entry.get("content")
        if content:
            try:
                summary = content[0].get("value")
            except (TypeError, KeyError, IndexError, AttributeError):
                summary = None
    return _strip_html(summary) if summary else ""


def _entry_published(entry: Any) -> Optional[datetime]:
    for attr in ("published_parsed", "updated_parsed", "created_parsed"):
        published = entry.get(attr)
        if published:
            return to_datetime(published)
    return None


class Fetcher:
    """Retrieves one feed document and turns it into items.

    Subclasses implement :meth:`parse`; :meth:`fetch` wraps the network call
    and guarantees that every failure surfaces as :class:`FetchError`.
    """

    kind: ItemKind

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def fetch(self, source: FeedSource) -> List[Item]:
        logger.info("Fetching feed '%s' (%s)", source.name, source.url)
        response = self.request(source)
        try:
            items = self.parse(source, response)
        except FetchError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise FetchError(source.name, exc) from exc
        logger.info("Collected %d items from feed '%s'", len(items), source.name)
        return list(sort_items(items))

    def request(self, source: FeedSource) -> requests.Response:
        return self._get(source, source.url)

    def parse(self, source: FeedSource, response: requests.Response) -> List[Item]:
        raise NotImplementedError

    def _get(self, source: FeedSource, url: str, params: Optional[dict] = None):
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(source.name, exc) from exc
        return response


class SyndicationFetcher(Fetcher):
    """RSS/Atom documents published on the website (news and events)."""

    def __init__(self, kind: ItemKind, timeout: float = DEFAULT_TIMEOUT):
        if kind not in (ItemKind.NEWS, ItemKind.EVENT):
            raise ValueError(f"Unsupported syndicated feed kind: {kind}")
        super().__init__(timeout)
        self.kind = kind

    def parse(self, source: FeedSource, response: requests.Response) -> List[Item]:
        parsed = _parse_document(source, response.content)
        items: List[Item] = []
        for entry in parsed.entries:
            link = entry.get("link")
            title = entry.get("title")
            if not link or not title:
                logger.debug(
                    "Skipping entry without link or title in feed '%s'", source.name
                )
                continue
            items.append(
                Item(
                    title=title,
                    link=link,
                    kind=self.kind,
                    published=_entry_published(entry),
                    summary=_entry_summary(entry),
                )
            )
        return items


class VideoFetcher(Fetcher):
    """Video channel listing (YouTube-style Atom feed)."""

    kind = ItemKind.VIDEO

    def parse(self, source: FeedSource, response: requests.Response) -> List[Item]:
        parsed = _parse_document(source, response.content)
        items: List[Item] = []
        for entry in parsed.entries:
            title = entry.get("title")
            link = entry.get("link")
            video_id = entry.get("yt_videoid")
            # Without an alternate link feedparser falls back to the entry id
            # ("yt:video:<id>"), which is not browsable.
            if video_id and not (link and link.startswith(("http://", "https://"))):
                link = YOUTUBE_WATCH_URL.format(video_id)
            if not link or not title:
                logger.debug("Skipping video without link or title in '%s'", source.name)
                continue

            items.append(
                Item(
                    title=title,
                    link=link,
                    kind=self.kind,
                    published=_entry_published(entry),
                    summary=_entry_summary(entry),
                )
            )
        return items


class InstantLaunchFetcher(Fetcher):
    """Instant launches promoted on the dashboard by the app-exposer service."""

    kind = ItemKind.INSTANT_LAUNCH

    def __init__(self, user: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(timeout)
        self.user = user

    def request(self, source: FeedSource) -> requests.Response:
        url = f"{source.url.rstrip('/')}/instantlaunches/metadata/full"
        params = {"attribute": "ui_location", "value": "dashboard"}
        if self.user:
            params["user"] = self.user
        return self._get(source, url, params=params)

    def parse(self, source: FeedSource, response: requests.Response) -> List[Item]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(source.name, f"response is not JSON: {exc}") from exc

        if isinstance(payload, dict):
            payload = payload.get("instant_launches")
        if not isinstance(payload, list):
            raise FetchError(source.name, "expected a list of instant launches")

        base_url = source.url.rstrip("/")
        items: List[Item] = []
        for record in payload:
            if not isinstance(record, dict):
                logger.debug("Skipping instant launch record that is not an object")
                continue
            launch_id = record.get("id")
            title = record.get("quick_launch_name") or record.get("name")
            if not launch_id or not title:
                logger.debug("Skipping instant launch without id or name: %s", record)
                continue
            items.append(
                Item(
                    title=title,
                    link=f"{base_url}/instantlaunches/{launch_id}",
                    kind=self.kind,
                    published=parse_timestamp(record.get("added_on")),
                    summary=record.get("quick_launch_description")
                    or record.get("description")
                    or "",
                )
            )
        return items


def _parse_document(source: FeedSource, content: bytes):
    # Relative links resolve against the URL the document was fetched from.
    parsed = feedparser.parse(
        content, response_headers={"content-location": source.url}
    )
    if not parsed.entries and (parsed.get("bozo") or not parsed.get("version")):
        cause = parsed.get("bozo_exception") or "document is not a recognised feed"
        raise FetchError(source.name, cause)
    if parsed.get("bozo"):
        logger.debug(
            "Feed '%s' is not well-formed, kept %d recovered entries: %s",
            source.name,
            len(parsed.entries),
            parsed.get("bozo_exception"),
        )
    return parsed


def build_fetcher(
    kind: ItemKind,
    timeout: float = DEFAULT_TIMEOUT,
    instant_launch_user: Optional[str] = None,
) -> Fetcher:
    """Return the fetcher implementation for a feed kind."""
    if kind in (ItemKind.NEWS, ItemKind.EVENT):
        return SyndicationFetcher(kind, timeout=timeout)
    if kind is ItemKind.VIDEO:
        return VideoFetcher(timeout=timeout)
    if kind is ItemKind.INSTANT_LAUNCH:
        return InstantLaunchFetcher(user=instant_launch_user, timeout=timeout)
    raise ValueError(f"Unknown feed kind: {kind}")
