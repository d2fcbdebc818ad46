"""Exception types raised by dashboard_aggregator."""

from __future__ import annotations

from typing import Optional


class ConfigError(ValueError):
    """A required configuration setting is missing or invalid."""


class FetchError(RuntimeError):
    """One retrieval of a feed failed (network, timeout or parse failure)."""

    def __init__(self, source: str, cause: object):
        super().__init__(f"failed to fetch feed '{source}': {cause}")
        self.source = source
        self.cause = cause


class PartialAggregationError(RuntimeError):
    """A single section of an aggregated response could not be produced."""

    def __init__(self, section: str, cause: Optional[BaseException]):
        super().__init__(f"section '{section}' unavailable: {cause}")
        self.section = section
        self.cause = cause
