"""HTTP surface of the dashboard aggregator (FastAPI)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .aggregator import FeedAggregator, validate_limit
from .runner import FeedRuntime

logger = logging.getLogger(__name__)


def _limit_or_error(value: Optional[str]):
    try:
        return validate_limit(value), None
    except ValueError as exc:
        return None, JSONResponse(status_code=400, content={"reason": str(exc)})


def create_app(
    runtime: FeedRuntime,
    session_factory=None,
    default_limit: int = 10,
) -> FastAPI:
    """Build the application around an already populated feed runtime."""
    aggregator = FeedAggregator.from_runtime(runtime, default_limit=default_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        runtime.shutdown()

    app = FastAPI(title="Dashboard Aggregator", lifespan=lifespan)
    app.state.runtime = runtime
    app.state.aggregator = aggregator

    @app.get("/healthz")
    def healthz():
        """Liveness and readiness check backed by the schema version table."""
        if session_factory is None:
            return PlainTextResponse("database is not configured", status_code=500)
        try:
            with session_factory() as session:
                version = db.get_schema_version(session)
        except SQLAlchemyError as exc:
            logger.error("Health check query failed: %s", exc)
            version = None
        if version is None:
            return PlainTextResponse("no rows returned from database", status_code=500)
        return PlainTextResponse(f"version {version}")

    @app.get("/feeds")
    def feeds(limit: Optional[str] = None):
        limit_value, error = _limit_or_error(limit)
        if error is not None:
            return error
        try:
            return {"feeds": aggregator.create_feeds(limit_value)}
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to build feeds response")
            return JSONResponse(
                status_code=500, content={"reason": f"error getting feeds: {exc}"}
            )

    @app.get("/feeds/status")
    def feeds_status():
        return {
            "feeds": [cache.status() for cache in runtime.caches.values()],
        }

    @app.get("/")
    def anonymous_dashboard(limit: Optional[str] = None):
        limit_value, error = _limit_or_error(limit)
        if error is not None:
            return error
        try:
            return {"feeds": aggregator.create_feeds(limit_value)}
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to build anonymous dashboard")
            return JSONResponse(
                status_code=500, content={"reason": f"error running query: {exc}"}
            )

    @app.get("/users/{username}")
    def user_dashboard(username: str, limit: Optional[str] = None):
        limit_value, error = _limit_or_error(limit)
        if error is not None:
            return error
        try:
            result = aggregator.dashboard(limit_value)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to build dashboard for %s", username)
            return JSONResponse(
                status_code=500, content={"reason": f"error running query: {exc}"}
            )
        return result.data

    return app
