import pytest

from dashboard_aggregator.config import FeedsConfig
from dashboard_aggregator.feeds import InstantLaunchFetcher, SyndicationFetcher, VideoFetcher
from dashboard_aggregator.models import ItemKind
from dashboard_aggregator.runner import (
    EVENTS,
    INSTANT_LAUNCHES,
    NEWS,
    VIDEOS,
    FeedRuntime,
)
from dashboard_aggregator.scheduler import ScheduleState

from conftest import StaticFetcher, fetch_error, make_items


@pytest.fixture
def feeds_config():
    return FeedsConfig(
        website_url="https://example.org/",
        news_path="/news/feed",
        events_path="events/feed",
        videos_url="https://videos.example.com/feed",
        app_exposer_url="http://app-exposer",
        app_exposer_user="dashboard",
        refresh_interval_seconds=120,
        fetch_timeout_seconds=4,
    )


def _stub_fetchers(runtime, **results):
    fetchers = {}
    for name, cache in runtime.caches.items():
        fetchers[name] = StaticFetcher(results.get(name, []))
        cache.fetcher = fetchers[name]
    return fetchers


def test_from_config_builds_one_cache_per_feed_without_io(feeds_config, paused_scheduler):
    runtime = FeedRuntime.from_config(feeds_config, scheduler=paused_scheduler)

    assert set(runtime.caches) == {NEWS, EVENTS, VIDEOS, INSTANT_LAUNCHES}
    assert runtime.cache(NEWS).source.url == "https://example.org/news/feed"
    assert runtime.cache(EVENTS).source.url == "https://example.org/events/feed"
    assert runtime.cache(EVENTS).source.kind is ItemKind.EVENT
    assert isinstance(runtime.cache(NEWS).fetcher, SyndicationFetcher)
    assert isinstance(runtime.cache(VIDEOS).fetcher, VideoFetcher)
    launches = runtime.cache(INSTANT_LAUNCHES).fetcher
    assert isinstance(launches, InstantLaunchFetcher)
    assert launches.user == "dashboard"
    assert runtime.cache(NEWS).fetcher.timeout == 4
    assert all(cache.get_items() == () for cache in runtime.caches.values())


def test_instant_launches_are_inert_by_default(feeds_config, paused_scheduler):
    runtime = FeedRuntime.from_config(feeds_config, scheduler=paused_scheduler)
    fetchers = _stub_fetchers(
        runtime, **{INSTANT_LAUNCHES: make_items(2, kind=ItemKind.INSTANT_LAUNCH)}
    )

    runtime.pull_all()
    runtime.start()

    assert INSTANT_LAUNCHES not in runtime.schedules
    assert fetchers[INSTANT_LAUNCHES].calls == 0
    assert runtime.cache(INSTANT_LAUNCHES).get_items() == ()
    assert paused_scheduler.get_job(f"refresh-{INSTANT_LAUNCHES}") is None


def test_instant_launches_take_part_when_enabled(feeds_config, paused_scheduler):
    feeds_config.instant_launches_enabled = True
    runtime = FeedRuntime.from_config(feeds_config, scheduler=paused_scheduler)
    launches = make_items(2, kind=ItemKind.INSTANT_LAUNCH)
    _stub_fetchers(runtime, **{INSTANT_LAUNCHES: launches})

    runtime.pull_all()
    runtime.start()

    assert runtime.cache(INSTANT_LAUNCHES).get_items() == tuple(launches)
    assert runtime.schedules[INSTANT_LAUNCHES].state is ScheduleState.RUNNING


def test_pull_all_populates_caches_and_tolerates_failures(feeds_config, paused_scheduler):
    runtime = FeedRuntime.from_config(feeds_config, scheduler=paused_scheduler)
    news = make_items(5)
    events = make_items(3, kind=ItemKind.EVENT)
    _stub_fetchers(runtime, **{NEWS: news, EVENTS: events, VIDEOS: fetch_error(VIDEOS)})

    results = runtime.pull_all()

    assert results == {NEWS: True, EVENTS: True, VIDEOS: False}
    assert runtime.cache(NEWS).get_items() == tuple(news)
    assert runtime.cache(EVENTS).get_items() == tuple(events)
    assert runtime.cache(VIDEOS).get_items() == ()


def test_start_schedules_each_feed_independently_and_shutdown_stops_them(
    feeds_config, paused_scheduler
):
    runtime = FeedRuntime.from_config(feeds_config, scheduler=paused_scheduler)
    _stub_fetchers(runtime)

    runtime.start()

    job_ids = {job.id for job in paused_scheduler.get_jobs()}
    assert job_ids == {f"refresh-{NEWS}", f"refresh-{EVENTS}", f"refresh-{VIDEOS}"}
    for schedule in runtime.schedules.values():
        assert schedule.interval_seconds == 120

    runtime.shutdown()

    assert all(s.state is ScheduleState.STOPPED for s in runtime.schedules.values())
    assert not paused_scheduler.running

    runtime.shutdown()
    assert not paused_scheduler.running
