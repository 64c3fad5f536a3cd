"""
Database connection and session management for AutoLoop.

Provides:
- get_engine(): SQLAlchemy engine, created on first use from DATABASE_URL
- SessionLocal: Factory for creating database sessions
- get_db(): Context manager for DB sessions
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from contextlib import contextmanager
from typing import Generator, Optional

from dotenv import load_dotenv
load_dotenv()

# Bound lazily so importing models/workers does not require a database
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def get_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError(
            "DATABASE_URL environment variable not set. "
            "Please configure it in .env file."
        )
    # Hosted PostgreSQL URLs use the legacy scheme
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def get_engine() -> Engine:
    """
    Create the engine on first call and bind the session factory to it.

    pool_pre_ping=True ensures connections are valid before using them.
    """
    global _engine
    if _engine is None:
        _engine = create_engine(
            get_database_url(),
            pool_pre_ping=True,
            echo=False  # Set to True for SQL query logging
        )
        SessionLocal.configure(bind=_engine)
    return _engine


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            workflow = db.query(Workflow).filter(Workflow.id == workflow_id).first()
            db.add(log)
            db.commit()

    The session is automatically closed when exiting the context,
    and rolled back if an exception occurs.
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_session() -> Session:
    """
    Get a new database session (without context manager).

    Note: You must manually close the session after use.
    Prefer using get_db() context manager when possible.
    """
    get_engine()
    return SessionLocal()
