"""
Database connection and session management for DoseSentinel
"""

import logging
import math
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from config import settings


logger = logging.getLogger(__name__)


def statement_timeout_seconds() -> float:
    """Longest a single statement may run or wait on a lock."""
    if settings.DATABASE_STATEMENT_TIMEOUT_SECONDS:
        return settings.DATABASE_STATEMENT_TIMEOUT_SECONDS
    return min(settings.RECORDER_TIMEOUT_SECONDS, settings.SWEEP_MEDICATION_BUDGET_SECONDS)


def server_timeout_args(url: str, seconds: float) -> dict:
    """
    Driver connect args that make the server cancel long statements.

    The recorder deadline and the sweep budget are only checked between
    statements, so a statement blocked on a row lock must be cancelled by
    the server itself. SQLite bounds its lock wait through `timeout`.
    """
    millis = max(1, int(seconds * 1000))
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={millis} -c lock_timeout={millis}"}
    if url.startswith("mysql"):
        return {
            "init_command": (
                f"SET SESSION max_execution_time={millis}, "
                f"innodb_lock_wait_timeout={max(1, math.ceil(seconds))}"
            )
        }
    return {}


def build_engine(url: str, echo: bool = False):
    """
    Create an engine for the given URL.

    SQLite gets a shared connection for in-memory databases, a bounded
    lock wait, and foreign keys switched on.
    """
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.DATABASE_LOCK_TIMEOUT_SECONDS,
        }
        if ":memory:" in url:
            new_engine = create_engine(
                url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            new_engine = create_engine(url, connect_args=connect_args, echo=echo)

        # Enable foreign keys for SQLite
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    # PostgreSQL or other databases
    return create_engine(
        url,
        connect_args=server_timeout_args(url, statement_timeout_seconds()),
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_timeout=settings.DATABASE_LOCK_TIMEOUT_SECONDS
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)

# Base class for ORM models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get database session.
    Automatically closes session after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context(session_factory: Optional[Callable[[], Session]] = None) -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Use this for background tasks or non-FastAPI contexts.

    Usage:
        with get_db_context() as db:
            db.query(Item).all()
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None) -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database initialized at: %s", settings.DATABASE_URL)


class DatabaseHealthCheck:
    """Database health check utilities"""

    @staticmethod
    def is_connected() -> bool:
        """Check if database is connected"""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed")
            return False


# Export commonly used items
__all__ = [
    "engine",
    "build_engine",
    "server_timeout_args",
    "statement_timeout_seconds",
    "SessionLocal",
    "Base",
    "get_db",
    "get_db_context",
    "init_db",
    "DatabaseHealthCheck"
]
