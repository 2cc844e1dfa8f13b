"""
Unit tests for database helpers
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect

from picstash.core.database import (
    as_utc,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
    utc_now,
)
from picstash.models.label import Label


class TestTimestamps:

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None
        assert utc_now().utcoffset() == timedelta(0)

    def test_as_utc_naive_treated_as_utc(self):
        naive = datetime(2024, 1, 1, 12, 0, 0)
        assert as_utc(naive) == datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def test_as_utc_converts_offset(self):
        plus_two = timezone(timedelta(hours=2))
        value = datetime(2024, 1, 1, 14, 0, 0, tzinfo=plus_two)
        converted = as_utc(value)
        assert converted.tzinfo == timezone.utc
        assert converted.hour == 12

    def test_as_utc_none(self):
        assert as_utc(None) is None


class TestEngine:

    def test_in_memory_engine_creates_tables(self):
        engine = create_db_engine("sqlite:///:memory:")
        try:
            init_db(engine)
            tables = set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

        assert {"images", "labels", "image_attributes", "view_history", "jobs", "image_vectors"} <= tables

    def test_file_engine_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "app.db"
        engine = create_db_engine(f"sqlite:///{db_path}")
        try:
            init_db(engine)
        finally:
            engine.dispose()

        assert db_path.exists()


class TestSessionScope:

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as db:
                db.add(Label(name="pending"))
                db.flush()
                raise RuntimeError("boom")

        with session_scope(session_factory) as db:
            assert db.query(Label).count() == 0

    def test_commit_persists(self, session_factory):
        with session_scope(session_factory) as db:
            db.add(Label(name="kept"))
            db.commit()

        with session_scope(session_factory) as db:
            assert db.query(Label).filter(Label.name == "kept").count() == 1
