"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for accounts, subscriptions, credit reservations,
  transformation history and usage statistics
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Float, Text, Index, ForeignKey, text, true
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from humanizer.core.config import settings

logger = logging.getLogger("humanizer")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour
SQLITE_BUSY_TIMEOUT = 30

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {
            "poolclass": QueuePool,
            "pool_size": POOL_SIZE,
            "max_overflow": MAX_OVERFLOW,
            "pool_timeout": POOL_TIMEOUT,
            "pool_recycle": POOL_RECYCLE,
        }
    connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}
    if ":memory:" in url or url.rstrip("/") in {"sqlite:", "sqlite+pysqlite:"}:
        # A single shared connection keeps the in-memory database alive
        return {"poolclass": StaticPool, "connect_args": connect_args}
    return {
        "poolclass": QueuePool,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "connect_args": connect_args,
    }


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine(
        url,
        echo=False,  # Set to True for SQL query logging
        **_engine_options(url),
    )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    logger.info("database.engine_ready", extra={"dialect": _engine.dialect.name})

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Close pooled connections and forget the engine (tests, shutdown)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on success and rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


# Accounts
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('status', String(50), nullable=False, server_default='active'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# Subscriptions: one active row per account, older rows kept deactivated.
# credits_total = -1 means unlimited.
subscriptions = Table(
    'subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('plan_type', String(50), nullable=False, server_default='free'),
    Column('credits_total', Integer, nullable=False, server_default='100'),
    Column('credits_used', Integer, nullable=False, server_default='0'),
    Column('credits_reserved', Integer, nullable=False, server_default='0'),
    Column('start_date', DateTime(timezone=True), nullable=False),
    Column('end_date', DateTime(timezone=True), nullable=False),
    Column('active', Boolean, nullable=False, server_default=true()),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    # At most one active subscription per account
    Index(
        'uq_subscriptions_active_user',
        'user_id',
        unique=True,
        postgresql_where=text('active'),
        sqlite_where=text('active = 1'),
    ),
    Index('idx_subscriptions_user_active', 'user_id', 'active'),
)

# Credit reservations: pending holds against a subscription
credit_reservations = Table(
    'credit_reservations',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('subscription_id', Integer, ForeignKey('subscriptions.id'), nullable=False, index=True),
    Column('amount', Integer, nullable=False),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending | committed | released
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('finalized_at', DateTime(timezone=True), nullable=True),
    Index('idx_credit_reservations_user_status', 'user_id', 'status'),
)

# Transformation history (append-only)
transformation_records = Table(
    'transformation_records',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False, index=True),
    Column('reservation_id', String(36), ForeignKey('credit_reservations.id'), nullable=False, unique=True),
    Column('original_text', Text, nullable=False),
    Column('transformed_text', Text, nullable=False),
    Column('character_count', Integer, nullable=False),
    Column('credits_used', Integer, nullable=False),
    Column('level', String(20), nullable=False),
    Column('strategy', String(50), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    # Composite index for paginated history: (user_id, created_at)
    Index('idx_transformation_records_user_created', 'user_id', 'created_at'),
)

# Usage statistics: one row per account
usage_statistics = Table(
    'usage_statistics',
    metadata,
    Column('user_id', String(100), ForeignKey('app_users.user_id'), primary_key=True),
    Column('total_transformations', Integer, nullable=False, server_default='0'),
    Column('total_characters_processed', Integer, nullable=False, server_default='0'),
    Column('total_credits_spent', Integer, nullable=False, server_default='0'),
    Column('average_text_length', Float, nullable=False, server_default='0'),
    Column('most_recent_level', String(20), nullable=False, server_default='moderate'),
    Column('slight_count', Integer, nullable=False, server_default='0'),
    Column('moderate_count', Integer, nullable=False, server_default='0'),
    Column('substantial_count', Integer, nullable=False, server_default='0'),
    Column('last_activity_date', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)
