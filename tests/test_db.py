"""Tests for the database health-check helpers."""

import pytest
from sqlalchemy import text

from dashboard_aggregator import db


@pytest.fixture
def session_factory(tmp_path):
    engine = db.init_engine(f"sqlite:///{tmp_path / 'dashboard.db'}")
    with engine.begin() as connection:
        connection.execute(text("create table version (version text, applied timestamp)"))
    yield db.get_session_factory(engine)
    engine.dispose()


def _add_version(session_factory, version, applied):
    with session_factory() as session:
        session.execute(
            text("insert into version (version, applied) values (:v, :a)"),
            {"v": version, "a": applied},
        )
        session.commit()


def test_init_engine_without_connection_string():
    assert db.init_engine(None) is None
    assert db.init_engine("") is None


def test_get_schema_version_returns_latest(session_factory):
    _add_version(session_factory, "2.1.0", "2024-01-01 00:00:00")
    _add_version(session_factory, "2.2.0", "2024-02-01 00:00:00")

    with session_factory() as session:
        assert db.get_schema_version(session) == "2.2.0"


def test_get_schema_version_without_rows(session_factory):
    with session_factory() as session:
        assert db.get_schema_version(session) is None
