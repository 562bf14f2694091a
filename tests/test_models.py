"""Tests for ORM models and database helpers.

These tests verify the flash history model and basic CRUD operations
using an in-memory SQLite database.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from devflash.db import Base, create_all_tables, get_engine, get_session
from devflash.flash.models import FlashRun
from devflash.types import FlashStatus


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a session for testing."""
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()


def _run(**kwargs):
    values = {
        "device_id": "e00fce68",
        "platform_id": 13,
        "step_names": ["bootloader.bin", "system-part1.bin"],
        "step_count": 2,
        "total_bytes": 4096,
    }
    values.update(kwargs)
    return FlashRun(**values)


class TestDatabaseSetup:
    """Test database setup and helpers."""

    def test_create_all_tables(self, tmp_path):
        """create_all_tables should create the flash history table."""
        engine = get_engine(f"sqlite:///{tmp_path}/nested/dir/test.db")
        create_all_tables(engine)

        assert "flash_runs" in Base.metadata.tables
        assert (tmp_path / "nested" / "dir" / "test.db").exists()

    def test_get_session_commits(self, tmp_path):
        """get_session should commit on success."""
        engine = get_engine(f"sqlite:///{tmp_path}/test.db")
        create_all_tables(engine)
        factory = sessionmaker(bind=engine)

        with get_session(factory) as session:
            session.add(_run())

        with get_session(factory) as session:
            assert session.query(FlashRun).count() == 1

    def test_get_session_rolls_back(self, tmp_path):
        """get_session should roll back on error."""
        engine = get_engine(f"sqlite:///{tmp_path}/test.db")
        create_all_tables(engine)
        factory = sessionmaker(bind=engine)

        with pytest.raises(RuntimeError):
            with get_session(factory) as session:
                session.add(_run())
                session.flush()
                raise RuntimeError("boom")

        with get_session(factory) as session:
            assert session.query(FlashRun).count() == 0


class TestFlashRun:
    """Tests for the FlashRun model."""

    def test_defaults(self, session):
        """New runs are pending with a request timestamp."""
        run = _run()
        session.add(run)
        session.flush()
        session.refresh(run)

        assert run.id is not None
        assert run.status == FlashStatus.PENDING.value
        assert run.requested_at is not None
        assert run.started_at is None
        assert run.step_names == ["bootloader.bin", "system-part1.bin"]

    def test_lifecycle_success(self, session):
        """mark_running then mark_succeeded sets timestamps."""
        run = _run()
        session.add(run)

        run.mark_running()
        assert run.status == FlashStatus.RUNNING.value
        assert run.started_at is not None

        run.mark_succeeded()
        assert run.is_succeeded()
        assert run.finished_at is not None

    def test_lifecycle_failure(self, session):
        """mark_failed records the error."""
        run = _run()
        session.add(run)

        run.mark_running()
        run.mark_failed(error_type="FLASH_STEP_FAILED", message="USB stall")

        assert run.status == FlashStatus.FAILED.value
        assert run.error_type == "FLASH_STEP_FAILED"
        assert run.error_message == "USB stall"
        assert not run.is_succeeded()

    def test_repr(self):
        """repr names the device and status."""
        run = _run(status=FlashStatus.FAILED.value)

        assert "e00fce68" in repr(run)
        assert "failed" in repr(run)

    def test_query_by_device_and_status(self, session):
        """Runs can be queried by device and status."""
        session.add_all(
            [
                _run(status=FlashStatus.SUCCEEDED.value),
                _run(status=FlashStatus.FAILED.value),
                _run(device_id="other", status=FlashStatus.FAILED.value),
            ]
        )
        session.flush()

        results = (
            session.query(FlashRun)
            .filter_by(device_id="e00fce68", status=FlashStatus.FAILED.value)
            .all()
        )

        assert len(results) == 1
