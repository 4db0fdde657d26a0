"""
Database Package Initialization.

============================================================
PURPOSE
============================================================
Engine, session and initialization helpers for the Trade
Risk Guardian. ORM models live in trade_risk_guardian.models.

Every failure raises. Transactions are explicit.

============================================================
"""

from .engine import (
    # Engine creation
    create_database_engine,
    configure_engine,
    get_database_url,
    get_engine,
    reset_engine,

    # Session management
    get_session,
    get_session_factory,
    get_db_session,
    transaction_scope,

    # Database initialization
    create_all_tables,
    initialize_database,
    verify_database_connection,
    verify_required_tables,
    get_table_row_counts,

    # Constants
    DEFAULT_DATABASE_URL,
    REQUIRED_TABLES,

    # Exceptions
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)


__all__ = [
    "create_database_engine",
    "configure_engine",
    "get_database_url",
    "get_engine",
    "reset_engine",
    "get_session",
    "get_session_factory",
    "get_db_session",
    "transaction_scope",
    "create_all_tables",
    "initialize_database",
    "verify_database_connection",
    "verify_required_tables",
    "get_table_row_counts",
    "DEFAULT_DATABASE_URL",
    "REQUIRED_TABLES",
    "DatabasePersistenceError",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
]
