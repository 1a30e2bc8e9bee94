"""
Database connection and session management for CareWatch
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Callable, Generator, Optional
import logging

from config import settings


logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False):
    """
    Create an engine for the given URL.
    In-memory SQLite shares one connection; file SQLite and other
    backends get a regular pool so worker threads hold their own connections.
    """
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
        if ":memory:" in database_url:
            new_engine = create_engine(
                database_url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=echo
            )
        else:
            new_engine = create_engine(
                database_url,
                connect_args=connect_args,
                echo=echo
            )

        # Enable foreign keys for SQLite
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    # PostgreSQL or other databases
    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )


# Create SQLAlchemy engine
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

    Usage:
        @app.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context(
    session_factory: Optional[Callable[[], Session]] = None
) -> Generator[Session, None, None]:
    """
    Context manager for database session.
    Use this for background tasks or non-FastAPI contexts.
    Commits on success, rolls back and re-raises on error.

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
    logger.info(f"Database initialized at: {settings.DATABASE_URL}")


def drop_db(bind=None) -> None:
    """
    Drop all database tables.
    WARNING: This will delete all data!
    """
    Base.metadata.drop_all(bind=bind or engine)
    logger.warning("All database tables dropped")


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
            return False


# Export commonly used items
__all__ = [
    "engine",
    "build_engine",
    "SessionLocal",
    "Base",
    "get_db",
    "get_db_context",
    "init_db",
    "drop_db",
    "DatabaseHealthCheck"
]
