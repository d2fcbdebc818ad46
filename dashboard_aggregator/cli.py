"""Command-line entry point for the dashboard aggregator."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

import uvicorn

from . import db
from .aggregator import FeedAggregator
from .config import parse_app_config
from .runner import FeedRuntime
from .server import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Serve dashboard data assembled from cached feeds."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to listen on.",
    )
    parser.add_argument(
        "--dump-feeds",
        action="store_true",
        help="Pull every feed once, print the feeds as JSON and exit.",
    )
    return parser


def configure_logging(
    level_name: str, log_file: Optional[str] = None, label: Optional[str] = None
) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    prefix = f"[{label}] " if label else ""
    formatter = logging.Formatter(
        f"%(asctime)s %(levelname)s {prefix}%(name)s: %(message)s"
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file, app_config.logging.label)

        runtime = FeedRuntime.from_config(app_config.feeds)
        runtime.pull_all()

        if args.dump_feeds:
            aggregator = FeedAggregator.from_runtime(
                runtime, default_limit=app_config.default_limit
            )
            result = aggregator.dashboard()
            runtime.shutdown()
            print(json.dumps(result.data, indent=2, ensure_ascii=False))
            return 0

        runtime.start()
        try:
            session_factory = None
            engine = db.init_engine(app_config.database.url())
            if engine is not None:
                session_factory = db.get_session_factory(engine)

            app = create_app(
                runtime,
                session_factory=session_factory,
                default_limit=app_config.default_limit,
            )
            logger.info("Ready on http://%s:%d", args.host, app_config.listen_port)
            uvicorn.run(
                app, host=args.host, port=app_config.listen_port, log_config=None
            )
        finally:
            runtime.shutdown()
    except ValueError as exc:
        parser.error(str(exc))
    except (RuntimeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    return 0
