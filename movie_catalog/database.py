"""
Database configuration and connection management.

Builds the SQLAlchemy engine and session factory for a given URL. Nothing is
created at import time; the composition root decides which database to use.
"""

import logging
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

# Query Performance Settings
QUERY_LOGGING_THRESHOLD_MS = 100


def _safe_url(db_url: str) -> str:
    """Strip credentials for logging."""
    if "@" in db_url:
        return db_url.split("://")[0] + "://...@" + db_url.split("@", 1)[1]
    return db_url


def get_connect_args(db_url: str) -> dict:
    """
    Get database-specific connection arguments.

    Args:
        db_url: Database connection URL

    Returns:
        Connection arguments dict
    """
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores FOREIGN KEY clauses unless told otherwise per connection."""
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Track query start time."""
    conn.info.setdefault("query_start_time", []).append(time.time())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    total_time_ms = (time.time() - conn.info["query_start_time"].pop()) * 1000

    if total_time_ms > QUERY_LOGGING_THRESHOLD_MS:
        logger.warning(
            f"Slow query detected: {total_time_ms:.2f}ms",
            extra={
                "query_time_ms": total_time_ms,
                "statement": statement[:200],
            },
        )


def create_db_engine(db_url: str) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite gets a StaticPool so every session sees the same database.
    """
    logger.info(f"Using database: {_safe_url(db_url)}")
    kwargs = {"connect_args": get_connect_args(db_url), "echo": False}
    if db_url.startswith("sqlite") and ":memory:" in db_url:
        kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(db_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.

    Uses checkfirst=True to safely handle existing tables.
    """
    try:
        logger.info("Initializing database tables...")
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database initialized successfully")
    except Exception as e:
        error_msg = str(e).lower()
        if "already exists" in error_msg or "duplicate" in error_msg:
            logger.warning("Database objects already exist (expected)")
        else:
            logger.error(f"Failed to initialize database: {e}")
            raise
