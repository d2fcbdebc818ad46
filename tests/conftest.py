import threading
import types
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import requests

from dashboard_aggregator.errors import FetchError
from dashboard_aggregator.models import FeedSource, Item, ItemKind
from dashboard_aggregator.scheduler import build_scheduler

BASE_TIME = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def make_items(count: int, kind: ItemKind = ItemKind.NEWS, prefix: str = "item") -> List[Item]:
    """Items newest first, one hour apart."""
    return [
        Item(
            title=f"{prefix} {index}",
            link=f"https://example.com/{prefix}/{index}",
            kind=kind,
            published=BASE_TIME - timedelta(hours=index),
            summary=f"Summary {index}",
        )
        for index in range(count)
    ]


class StaticFetcher:
    """Fetcher double returning queued results (lists or exceptions)."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.lock = threading.Lock()

    def fetch(self, source: FeedSource) -> List[Item]:
        with self.lock:
            self.calls += 1
            result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return list(result)


class BlockingFetcher:
    """Fetcher that waits for ``release`` before returning its items."""

    def __init__(self, items):
        self.items = items
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def fetch(self, source: FeedSource) -> List[Item]:
        self.calls += 1
        self.started.set()
        self.release.wait(5)
        return list(self.items)


def fetch_error(name: str = "news") -> FetchError:
    return FetchError(name, requests.Timeout("read timed out"))


def fake_response(content: bytes = b"", json_data=None, status_error=None):
    def raise_for_status():
        if status_error is not None:
            raise status_error

    def json():
        if json_data is None:
            raise ValueError("No JSON object could be decoded")
        return json_data

    return types.SimpleNamespace(
        content=content, raise_for_status=raise_for_status, json=json
    )


@pytest.fixture
def news_source():
    return FeedSource("news", ItemKind.NEWS, "https://example.org/news/feed")


@pytest.fixture
def paused_scheduler():
    scheduler = build_scheduler()
    scheduler.start(paused=True)
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)


@pytest.fixture
def http_calls(monkeypatch):
    """Replace ``requests.get`` with a recorder returning queued responses."""
    calls = []
    responses = []

    def fake_get(url, params=None, timeout=None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(requests, "get", fake_get)
    return types.SimpleNamespace(calls=calls, responses=responses)
