"""
Durable Tier - Database Engine.

============================================================
PURPOSE
============================================================
Owns the SQLAlchemy engine and session factory for the durable
cache tier, with explicit transaction boundaries.

- Any SQLAlchemy URL (PostgreSQL, SQLite file, in-memory SQLite)
- Rolls back on ANY exception
- Wraps database errors in CacheError

============================================================
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.exceptions import CacheError

from .models import Base


logger = logging.getLogger(__name__)


def _redact(database_url: str) -> str:
    return database_url.split("@")[-1]


def create_cache_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine.

    SQLite connections are shared across threads because store calls
    run in worker threads. In-memory SQLite uses a single static
    connection so every session sees the same database.
    """
    logger.info(f"Creating cache engine for: {_redact(database_url)}")

    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=echo,
    )


class CacheDatabase:
    """
    Engine, session factory and schema for the durable tier.

    Usage:
        database = CacheDatabase("sqlite:///idea_signals.db")
        database.create_all_tables()

        with database.transaction_scope() as session:
            session.add(row)
            # Commits automatically at end
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = database_url
        self.engine = create_cache_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    @contextmanager
    def transaction_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for explicit transaction boundaries.

        Commits only if no exception occurs. Rolls back on ANY exception.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Cache transaction failed, rolling back: {e}")
            session.rollback()
            raise CacheError(f"Transaction failed: {e}", cause=e) from e
        except Exception as e:
            logger.error(f"Cache transaction failed with unexpected error: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def create_all_tables(self) -> None:
        """Create the cache tables if they do not exist."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create cache tables: {e}")
            raise CacheError(f"Table creation failed: {e}", cause=e) from e
        logger.info("Cache tables ready")

    def dispose(self) -> None:
        self.engine.dispose()
