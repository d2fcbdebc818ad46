"""Configuration loading for the dashboard aggregator."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
from xml.etree import ElementTree as ET

from sqlalchemy.engine import URL

from .errors import ConfigError
from .models import feed_url

logger = logging.getLogger(__name__)

DB_PASSWORD_ENV = "DASHBOARD_DB_PASSWORD"
DEFAULT_APP_EXPOSER_URL = "http://app-exposer"
DEFAULT_REFRESH_INTERVAL_SECONDS = 600
DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


@dataclass
class DatabaseConfig:
    user: Optional[str] = None
    password: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    connection_string: Optional[str] = None

    def url(self) -> str:
        """Return the SQLAlchemy connection URL."""
        if self.connection_string:
            return self.connection_string
        return URL.create(
            "postgresql",
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None
    label: str = "dashboard-aggregator"


@dataclass
class FeedsConfig:
    website_url: str
    news_path: str
    events_path: str
    videos_url: str
    app_exposer_url: str = DEFAULT_APP_EXPOSER_URL
    app_exposer_user: Optional[str] = None
    instant_launches_enabled: bool = False
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS

    @property
    def news_url(self) -> str:
        return feed_url(self.website_url, self.news_path)

    @property
    def events_url(self) -> str:
        return feed_url(self.website_url, self.events_path)


@dataclass
class AppConfig:
    listen_port: int
    database: DatabaseConfig
    feeds: FeedsConfig
    env_file: Optional[str] = None
    default_limit: int = 10
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _text(node: Optional[ET.Element], path: str) -> Optional[str]:
    if node is None:
        return None
    value = node.findtext(path)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _attr(node: Optional[ET.Element], name: str) -> Optional[str]:
    if node is None:
        return None
    value = (node.attrib.get(name) or "").strip()
    return value or None


def _require(value: Optional[str], name: str) -> str:
    if value is None:
        raise ConfigError(f"{name} must be set in the configuration")
    return value


def _number(value: Optional[str], name: str, kind=int):
    try:
        return kind(_require(value, name))
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    try:
        tree = ET.parse(path)
        root = tree.getroot()
        for var in root.findall("variable"):
            name = var.attrib.get("name")
            value = var.text
            if name and value:
                env_vars[name] = value.strip()
    except (ET.ParseError, OSError) as exc:
        raise ConfigError(f"failed to load environment config {path}: {exc}") from exc

    return env_vars


def _parse_database(root: ET.Element) -> DatabaseConfig:
    db_node = root.find("database")
    if db_node is None:
        raise ConfigError("database must be set in the configuration")

    connection_string = _text(db_node, "connection-string")
    if connection_string:
        return DatabaseConfig(connection_string=connection_string)

    password = _text(db_node, "password") or os.environ.get(DB_PASSWORD_ENV)
    return DatabaseConfig(
        user=_require(_text(db_node, "user"), "database.user"),
        password=_require(password, "database.password"),
        host=_require(_text(db_node, "host"), "database.host"),
        port=_number(_text(db_node, "port"), "database.port"),
        database=_require(_text(db_node, "name"), "database.name"),
    )


def _parse_feeds(root: ET.Element) -> FeedsConfig:
    website = root.find("website")
    videos = root.find("videos")
    exposer = root.find("app-exposer")
    instant_launches = root.find("instant-launches")

    interval_text = _text(root, "refresh-interval-seconds")
    interval = (
        _number(interval_text, "refresh-interval-seconds", float)
        if interval_text
        else DEFAULT_REFRESH_INTERVAL_SECONDS
    )
    if interval <= 0:
        raise ConfigError("refresh-interval-seconds must be positive")

    timeout_text = _text(root, "fetch-timeout-seconds")
    timeout = (
        _number(timeout_text, "fetch-timeout-seconds", float)
        if timeout_text
        else DEFAULT_FETCH_TIMEOUT_SECONDS
    )
    if timeout <= 0:
        raise ConfigError("fetch-timeout-seconds must be positive")

    return FeedsConfig(
        website_url=_require(_attr(website, "url"), "website.url"),
        news_path=_require(_text(website, "feeds/news"), "website.feeds.news"),
        events_path=_require(_text(website, "feeds/events"), "website.feeds.events"),
        videos_url=_require(_attr(videos, "url"), "videos.url"),
        app_exposer_url=_attr(exposer, "url") or DEFAULT_APP_EXPOSER_URL,
        app_exposer_user=_attr(exposer, "user"),
        instant_launches_enabled=(_attr(instant_launches, "enabled") or "false").lower()
        == "true",
        refresh_interval_seconds=interval,
        fetch_timeout_seconds=timeout,
    )


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML.

    Every required setting is checked up front; the first missing one raises
    :class:`ConfigError` and the service must not start.
    """
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    env_text = _text(root, "env")
    env_file = _resolve_path(config_path, env_text) if env_text else None
    if env_file:
        # Secrets such as the database password may live in the env file.
        os.environ.update(parse_env_config(env_file))

    listen_port = _number(_text(root, "listen-port"), "listen-port")
    database = _parse_database(root)
    feeds = _parse_feeds(root)

    limit_text = _text(root, "default-limit")
    default_limit = _number(limit_text, "default-limit") if limit_text else 10
    if default_limit <= 0:
        raise ConfigError("default-limit must be positive")

    log_node = root.find("logging")
    logging_config = LoggingConfig()
    if log_node is not None:
        logging_config.level = _text(log_node, "level") or "INFO"
        logging_config.label = _text(log_node, "label") or logging_config.label
        log_file = _text(log_node, "file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(
        listen_port=listen_port,
        database=database,
        feeds=feeds,
        env_file=env_file,
        default_limit=default_limit,
        logging=logging_config,
    )
