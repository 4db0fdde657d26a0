"""
Database Persistence Layer - Core Engine.

============================================================
PURPOSE
============================================================
Engine and session management for the Trade Risk Guardian.

- SQLAlchemy 2.0 engine built from DATABASE_URL
- Explicit transaction management
- Hard failures on persistence errors

SQLite is the development default. Any SQLAlchemy URL works
in production (PostgreSQL recommended).

============================================================
"""

import os
import logging
from typing import Dict, Generator, Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy.pool import QueuePool, StaticPool

from dotenv import load_dotenv

from trade_risk_guardian.models import Base

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite:///./trade_risk_guardian.db"

REQUIRED_TABLES = [
    "trading_accounts",
    "challenge_setups",
    "broker_symbol_specs",
    "symbol_mappings",
    "trade_orders",
    "trades",
    "violation_logs",
    "guardian_decision_log",
]


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================


class DatabasePersistenceError(Exception):
    """Raised when database persistence fails."""
    pass


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when database connection fails."""
    pass


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when database initialization fails."""
    pass


# =============================================================
# DATABASE ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """Get database URL from environment."""
    url = os.getenv("DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")
    return url


def _safe_url(url: str) -> str:
    return url.split("@")[-1]


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create a SQLAlchemy engine.

    Server databases get a QueuePool. In-memory SQLite gets a
    StaticPool so every session shares one connection.

    Args:
        database_url: Explicit URL (DATABASE_URL if None)
        pool_size: Number of connections to keep in pool
        max_overflow: Max connections beyond pool_size
        pool_timeout: Seconds to wait for available connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {_safe_url(url)}")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            echo=echo,
        )

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def get_engine() -> Engine:
    """Get the process-wide engine, creating it if necessary."""
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """Get session factory, creating if necessary."""
    global _SessionFactory

    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )

    return _SessionFactory


def configure_engine(engine: Engine) -> None:
    """
    Replace the process-wide engine (tests, embedding).
    """
    global _engine, _SessionFactory
    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


# =============================================================
# SESSION MANAGEMENT
# =============================================================


def get_session() -> Session:
    """
    Get a new database session.

    IMPORTANT: Caller is responsible for committing/closing.
    Prefer using get_db_session() context manager instead.
    """
    return get_session_factory()()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Usage:
        with get_db_session() as session:
            session.add(record)
            session.commit()

    On exception the session is rolled back and the exception
    re-raised.
    """
    session = get_session()
    try:
        yield session
    except SQLAlchemyError as e:
        logger.error(f"Database error, rolling back: {e}")
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction_scope() -> Generator[Session, None, None]:
    """
    Context manager for explicit transaction boundaries.

    Commits only if no exception occurs.

    Raises:
        DatabasePersistenceError: If the database rejects the transaction
    """
    session = get_session()
    try:
        yield session
        session.commit()
        logger.debug("Database transaction committed successfully")
    except SQLAlchemyError as e:
        logger.error(f"Database transaction failed, rolling back: {e}")
        session.rollback()
        raise DatabasePersistenceError(f"Transaction failed: {e}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# DATABASE INITIALIZATION
# =============================================================


def verify_database_connection(engine: Optional[Engine] = None) -> bool:
    """
    Verify database connection is working.

    Raises:
        DatabaseConnectionError: If connection fails
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.info("Database connection verified successfully")
        return True
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all Guardian tables.

    Raises:
        DatabaseInitializationError: If table creation fails
    """
    engine = engine or get_engine()
    try:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e


def verify_required_tables(engine: Optional[Engine] = None) -> Dict[str, bool]:
    """Check that every Guardian table exists."""
    engine = engine or get_engine()
    existing = set(inspect(engine).get_table_names())
    status = {}
    for table in REQUIRED_TABLES:
        status[table] = table in existing
        if status[table]:
            logger.info(f"  [OK] Table verified: {table}")
        else:
            logger.warning(f"  [!!] Table missing: {table}")
    return status


def initialize_database(engine: Optional[Engine] = None) -> None:
    """
    Full database initialization sequence.

    1. Verify connection
    2. Create tables if not exist
    3. Verify tables
    """
    logger.info("=" * 60)
    logger.info("INITIALIZING DATABASE PERSISTENCE LAYER")
    logger.info("=" * 60)

    try:
        verify_database_connection(engine)
        create_all_tables(engine)
        verify_required_tables(engine)
    except DatabasePersistenceError as e:
        logger.critical(f"DATABASE INITIALIZATION FAILED: {e}")
        raise

    logger.info("DATABASE INITIALIZATION COMPLETE")


def get_table_row_counts(engine: Optional[Engine] = None) -> Dict[str, int]:
    """
    Row counts for every Guardian table. -1 marks a missing table.
    """
    engine = engine or get_engine()
    existing = set(inspect(engine).get_table_names())
    counts = {}
    with engine.connect() as conn:
        for table in REQUIRED_TABLES:
            if table not in existing:
                counts[table] = -1
                continue
            counts[table] = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()
    return counts
