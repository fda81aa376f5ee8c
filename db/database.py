"""
Database connection and session management for Meural Manager.

Provides:
- Engine creation from the DATABASE_URL environment variable
- Session factory with context manager support
- Database initialization and verification
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.models import Base

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///exif-database.sqlite"

# ────────────────────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────────────────────

def get_database_url() -> str:
    """
    Get the SQLAlchemy connection URL.

    Returns:
        DATABASE_URL from the environment, or a SQLite file in the
        working directory.
    """
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def get_engine_settings(database_url: str) -> dict:
    """
    Get engine settings appropriate for the database backend.

    Args:
        database_url: SQLAlchemy connection URL.

    Returns:
        Dictionary of keyword arguments for create_engine().
    """
    if database_url.startswith("sqlite"):
        # Flask serves requests from several threads
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


# ────────────────────────────────────────────────────────────────────────────────
# Engine and Session Management
# ────────────────────────────────────────────────────────────────────────────────

# Global engine instance (lazy initialization)
_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """
    Get or create the SQLAlchemy engine.

    Returns:
        Configured SQLAlchemy Engine instance.
    """
    global _engine

    if _engine is None:
        database_url = get_database_url()
        logger.info(f"Creating database engine for {database_url.split(':', 1)[0]}")
        _engine = create_engine(
            database_url,
            echo=False,  # Set to True for SQL debugging
            **get_engine_settings(database_url)
        )

    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _session_factory


def get_session() -> Session:
    """
    Create a new database session.

    Note:
        Caller is responsible for closing the session.
        Prefer using session_scope() context manager instead.
    """
    factory = get_session_factory()
    return factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic commit/rollback.

    Yields:
        SQLAlchemy Session instance.

    Example:
        with session_scope() as session:
            photo = session.query(Photo).first()
            photo.location_name = "Paris, Ile-de-France, France"
        # Automatically commits on success, rolls back on exception
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Session rollback due to: {e}")
        raise
    finally:
        session.close()


# ────────────────────────────────────────────────────────────────────────────────
# Database Initialization
# ────────────────────────────────────────────────────────────────────────────────

def init_db() -> bool:
    """
    Initialize database by creating all tables.

    Returns:
        True if successful, False otherwise.
    """
    try:
        engine = get_engine()
        logger.info("Creating database tables...")
        Base.metadata.create_all(engine)
        logger.info("Database tables created successfully!")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


def verify_connection() -> bool:
    """
    Verify database connection is working.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            result = conn.execute(text("SELECT 1"))
            result.fetchone()
        logger.info("Database connection verified successfully!")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


def get_db_info() -> dict:
    """
    Get database connection information (for debugging).

    Returns:
        Dictionary with connection details (password masked).
    """
    url = get_engine().url
    return {
        "backend": url.get_backend_name(),
        "url": url.render_as_string(hide_password=True),
    }


# ────────────────────────────────────────────────────────────────────────────────
# Cleanup
# ────────────────────────────────────────────────────────────────────────────────

def dispose_engine() -> None:
    """
    Dispose of the engine and close all connections.

    Call this when shutting down the application.
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Disposing database engine...")
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed.")
