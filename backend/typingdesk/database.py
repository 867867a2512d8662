"""
Database connection, session and transaction management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development fallback).
Provides the session factory, the FastAPI session dependency and the
scoped transaction used by every membership operation.
"""

import os
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from typingdesk.errors import ConflictError, TransientError
from typingdesk.logging_config import get_logger, log_with_context

logger = get_logger("db")

# Read database URL from environment
# Fallback to SQLite for local development when PostgreSQL is not available
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite:///./typingdesk.db"
)

# Upper bound for connecting and for a single statement, in seconds
DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "5"))

# Configure engine kwargs based on database type
# SQLite does not support pool_size, max_overflow, or pool_pre_ping
engine_kwargs = {"echo": False}

if DATABASE_URL.startswith("postgresql"):
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_timeout": DB_TIMEOUT_SECONDS,
        "connect_args": {
            "connect_timeout": DB_TIMEOUT_SECONDS,
            "options": "-c statement_timeout={}".format(DB_TIMEOUT_SECONDS * 1000),
        },
    })
elif DATABASE_URL.startswith("sqlite"):
    # SQLite needs check_same_thread=False for FastAPI (multi-threaded)
    # timeout bounds how long a writer waits for the database lock
    engine_kwargs["connect_args"] = {
        "check_same_thread": False,
        "timeout": DB_TIMEOUT_SECONDS,
    }

# Create SQLAlchemy engine
engine = create_engine(DATABASE_URL, **engine_kwargs)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable WAL mode and foreign keys on every new SQLite connection."""
    # hand transaction control to the "begin" hook below; pysqlite would
    # otherwise defer BEGIN until the first write and run SELECTs outside it
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def begin_sqlite_transaction(conn):
    """Open the SQLite transaction before the first statement, reads included."""
    conn.exec_driver_sql("BEGIN")


def configure_sqlite(sqlite_engine):
    """
    Install the SQLite connection hooks on an engine.

    Every read of a unit of work then shares one snapshot with its writes.
    SQLite ignores FOR UPDATE, so a transaction whose snapshot went stale
    because another writer committed first fails its write with
    "database is locked", which transaction() reports as TransientError.
    """
    event.listen(sqlite_engine, "connect", set_sqlite_pragma)
    event.listen(sqlite_engine, "begin", begin_sqlite_transaction)


if DATABASE_URL.startswith("sqlite"):
    configure_sqlite(engine)

# Session factory - creates new database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    Yields a session and ensures proper cleanup after request completion.
    This pattern guarantees connections are returned to the pool even if
    an exception occurs during request processing.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Run a unit of work atomically on an open session.

    Commits when the block exits normally. On any exception the whole
    transaction is rolled back, so no partial membership change is ever
    visible. Storage-layer failures are translated into typed errors:
    - OperationalError (timeouts, lost connections) -> TransientError
    - IntegrityError (unique constraint violations) -> ConflictError
    """
    try:
        yield db
        db.commit()
    except OperationalError as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Storage operation failed, transaction aborted",
                         extra_data={"error": str(e.orig) if e.orig else str(e)})
        raise TransientError("Storage is temporarily unavailable, retry the operation") from e
    except IntegrityError as e:
        db.rollback()
        log_with_context(logger, "WARNING", "Integrity violation, transaction aborted",
                         extra_data={"error": str(e.orig) if e.orig else str(e)})
        raise ConflictError("The change conflicts with an existing record") from e
    except Exception:
        db.rollback()
        raise


def create_tables():
    """
    Create all database tables directly (used for SQLite local dev).
    For PostgreSQL, use Alembic migrations instead.
    """
    Base.metadata.create_all(bind=engine)
