"""Database configuration using SQLAlchemy."""

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# Base class for models
Base = declarative_base()

SessionFactory = Callable[[], Session]


def create_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    SQLite (used by tests and local runs) gets a single shared connection so
    an in-memory database survives across sessions.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Build the session factory handed to every component."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    # Import all models to register them with Base
    from talentsync import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory: SessionFactory) -> Generator[Session, None, None]:
    """Get database session as context manager."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def check_db_connection(db: Session) -> bool:
    """Check if database connection is working."""
    db.execute(text("SELECT 1")).fetchone()
    return True
