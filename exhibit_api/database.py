"""
database.py — SQLAlchemy engine and session helpers
===================================================
One engine per process. Request handlers open short-lived sessions with
``db_session()``; the context manager commits on success and rolls back
on any exception before re-raising it.
"""
from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from .config import settings

_is_sqlite = settings.database_url.startswith("sqlite")


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    echo=settings.log_sql,
    future=True,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
        # SQLite ignores ON DELETE clauses unless this is set per connection
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def db_session():
    """Context-manager style session with automatic commit/rollback."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create all tables registered on ``Base`` (idempotent)."""
    from . import models  # noqa: F401 - registers ORM mappings with Base.metadata

    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
