"""Database connection and session management"""
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import declarative_base, sessionmaker, Session


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine configured for the given URL.

    SQLite connections get check_same_thread=False (the job worker and request
    handlers share the engine) plus WAL journaling and a busy timeout so a
    lease transaction waits briefly instead of failing with "database is locked".
    """
    engine_kwargs = {"echo": echo}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 5}
        if ":memory:" in database_url:
            # In-memory databases live on a single shared connection
            engine_kwargs["poolclass"] = StaticPool

    db_engine = create_engine(database_url, **engine_kwargs)

    if is_sqlite and ":memory:" not in database_url:
        if db_engine.url.database:
            Path(db_engine.url.database).parent.mkdir(parents=True, exist_ok=True)

        @event.listens_for(db_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return db_engine


# Base class for ORM models
Base = declarative_base()


def create_session_factory(db_engine: Engine) -> sessionmaker:
    """Session factory bound to an engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


def init_db(db_engine: Engine) -> None:
    """Create every table that does not exist yet."""
    import picstash.models  # noqa: F401  registers the models on Base

    Base.metadata.create_all(bind=db_engine)


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Generator[Session, None, None]:
    """
    Context manager for database sessions in non-request contexts.

    Use this for scripts and background code where FastAPI dependency
    injection is not available.

    Usage:
        with session_scope(container.session_factory) as db:
            result = db.query(Model).all()
            db.commit()  # If modifications made

    Rolls back on exception and always closes the session.
    """
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the database to aware UTC.

    SQLite does not store tzinfo, so values come back naive; they were written
    as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
