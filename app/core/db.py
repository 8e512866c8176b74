from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from loguru import logger

from app.core.config import DATABASE_URL
from app.core.errors import StoreUnavailable

# --- Base (single source of truth) ---
Base = declarative_base()

# --- Engine ---
engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False}
    if DATABASE_URL.startswith("sqlite")
    else {},
)

# --- Session factory ---
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)

SessionFactory = Callable[[], Session]

# --- SQL query logging ---
@event.listens_for(engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    logger.debug(f"SQL: {statement} | params={parameters}")

# --- Store sessions ---
@contextmanager
def session_scope(session_factory: SessionFactory, operation: str) -> Iterator[Session]:
    """
    Yield a session for one store operation.

    Any SQLAlchemy failure rolls back and surfaces as StoreUnavailable,
    so callers never see driver-specific errors or partial results.
    """
    db = session_factory()
    try:
        yield db
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store operation {operation} failed: {e}")
        raise StoreUnavailable(f"{operation} failed") from e
    finally:
        db.close()
