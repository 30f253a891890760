from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
    """Create an engine for ``url`` with pool settings suited to its backend."""
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "future": True, "echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=3600, pool_timeout=30)
    return create_engine(url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@contextmanager
def db_transaction(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Context manager for database transactions with automatic commit/rollback.

    Usage:
        with db_transaction(session_factory) as session:
            session.add(record)
            # Automatically commits here if no exception
    """
    session = factory()
    try:
        yield session
        session.commit()
        logger.debug("Database transaction committed successfully")
    except Exception as e:
        logger.warning("Database transaction failed, rolling back: %s", e)
        session.rollback()
        raise
    finally:
        try:
            session.close()
        except Exception as e:
            logger.error("Failed to close database session: %s", e)
