"""
Database setup for the resource caches.
Provides SQLAlchemy engine/session utilities for SQLite.
"""
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from domain.errors import CacheError
from settings import settings


T = TypeVar("T")
logger = logging.getLogger(__name__)

DB_PATH = Path(settings.RESOURCE_DB_PATH)
DATABASE_URL = f"sqlite:///{DB_PATH}"

# check_same_thread=False allows usage across FastAPI threads
engine = create_engine(
    DATABASE_URL, connect_args={"check_same_thread": False}
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
    """Create tables if they don't exist."""
    from repositories import models  # noqa: F401  Ensures models are registered

    if bind is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        bind = engine
    Base.metadata.create_all(bind=bind)


@contextmanager
def session_scope(session_factory: Callable[[], Session]) -> Iterator[Session]:
    """Commit on success, roll back and raise CacheError on any database failure."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise CacheError(f"resource cache operation failed: {exc}") from exc
    finally:
        session.close()


def run_with_conflict_retry(operation: Callable[[], T], attempts: int = 2) -> T:
    """Re-run a write when a concurrent writer inserted the same primary key first."""
    attempt = 1
    while True:
        try:
            return operation()
        except CacheError as exc:
            if attempt >= attempts or not isinstance(exc.__cause__, IntegrityError):
                raise
            logger.info("Concurrent insert on the same key, retrying write")
            attempt += 1


def now_ms() -> int:
    return int(time.time() * 1000)
