"""Database configuration (SQLAlchemy).

Why this module exists:
- Centralizes DB connection configuration.
- Provides a shared SQLAlchemy `engine` + `SessionLocal` factory.
- Exposes `init_db()` to create tables on application startup.
- Exposes `session_scope()`, the one place repository calls open, commit
  and roll back a DB session.

The URL comes from `PARKING_DATABASE_URL` (SQLite file by default).
"""

import datetime as dt
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from core.config import get_settings

from .store_errors import StoreUnavailableError

Base = declarative_base()


def create_db_engine(url: str, timeout: Optional[float] = None) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if timeout is not None:
            # Seconds SQLite waits on a locked database before failing.
            connect_args["timeout"] = timeout
    return create_engine(url, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


_settings = get_settings()
engine = create_db_engine(_settings.database_url, _settings.store_lock_timeout_seconds)
SessionLocal = create_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create DB tables (if they don't exist yet)."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """One short-lived DB session per repository call.

    Rolls back on any error and reports connectivity / locking failures as
    StoreUnavailableError.
    """
    db = session_factory()
    try:
        yield db
    except OperationalError as exc:
        db.rollback()
        raise StoreUnavailableError(str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        db.rollback()
        if exc.connection_invalidated:
            raise StoreUnavailableError(str(exc.orig or exc)) from exc
        raise
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def as_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=dt.timezone.utc)
