"""Database access used by the service health check."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

SCHEMA_VERSION_QUERY = text(
    "select version from version order by applied desc limit 1"
)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Creating database engine")
    return create_engine(connection_string, pool_pre_ping=True)


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


def get_schema_version(session: Session) -> Optional[str]:
    """Return the most recently applied schema version, if any."""
    row = session.execute(SCHEMA_VERSION_QUERY).first()
    if row is None:
        return None
    return str(row[0])
