"""
Database session management (SQLAlchemy)
"""
import logging

import psycopg
from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from ledger.config import get_settings

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes that mean "retry the whole transaction"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


# Singleton engine and session factory
_engine = None
_SessionLocal = None


def get_engine():
    """Get or create SQLAlchemy engine (singleton)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.get_sqlalchemy_url()
        _engine = create_engine(url, pool_pre_ping=True)
    return _engine


def get_session_factory():
    """Get or create session factory (singleton)"""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Session:
    """
    FastAPI dependency: opens a session and always closes it

    Usage:
        @app.get("/budgets")
        def list_budgets(db: Session = Depends(get_db)):
            ...
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def begin_snapshot(db: Session) -> None:
    """
    Start the session's transaction under BATCH_ISOLATION_LEVEL.

    Used by batch jobs that recompute aggregates from the whole transaction
    log. A read-only transaction already open on the session is ended first;
    one with pending changes is left alone. No-op on SQLite, which
    serializes writers on its own.
    """
    if db.get_bind().dialect.name == "sqlite":
        return
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            return
        db.rollback()
    level = get_settings().BATCH_ISOLATION_LEVEL
    db.connection(execution_options={"isolation_level": level})
    logger.debug("Batch transaction started with isolation level %s", level)


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True if the driver reported a serialization failure or deadlock"""
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return sqlstate in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED)


def check_db_connection() -> None:
    """
    Health check: is PostgreSQL reachable (raw psycopg)

    Raises:
        psycopg.OperationalError: if the database is unavailable
    """
    settings = get_settings()
    with psycopg.connect(settings.DATABASE_URL, connect_timeout=3) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()
