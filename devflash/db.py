"""Flash history storage.

Every `flash usb` run is recorded in a small SQLite database (or any
SQLAlchemy URL set via DEVFLASH_DB_URL) so `flash list` can show what was
written to which device and whether it worked.
"""

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from devflash.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for flash history tables."""


def _prepare_sqlite_file(database: str | None) -> None:
    # In-memory databases have no file
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def get_engine(db_url: str | None = None) -> Engine:
    """Create an engine for the history database.

    SQLite databases are created on first use, including their parent
    directory, and may be shared between threads.

    Args:
        db_url: Database URL; defaults to settings.db_url.

    Returns:
        SQLAlchemy Engine.
    """
    url = make_url(db_url or get_settings().db_url)

    connect_args: dict[str, bool] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        _prepare_sqlite_file(url.database)

    return create_engine(url, connect_args=connect_args)


def get_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """Session factory bound to the history database.

    Objects stay usable after commit so results can be printed once the
    session is closed.
    """
    return sessionmaker(
        bind=engine or get_engine(), autoflush=False, expire_on_commit=False
    )


@contextmanager
def get_session(
    session_factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    factory = session_factory or get_session_factory()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def create_all_tables(engine: Engine | None = None) -> None:
    """Create the history tables if they do not exist yet."""
    # Register models with the mapper before creating tables
    from devflash.flash import models as flash_models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


__all__ = [
    "Base",
    "create_all_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
]
