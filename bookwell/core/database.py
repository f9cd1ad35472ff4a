"""
Database configuration and session management
"""

from typing import Generator

from sqlmodel import Session, create_engine
import structlog

from bookwell.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()


def build_engine(url: str, echo: bool = False):
    """Create an engine for the given URL

    SQLite connections get a busy timeout so writers queue on the
    database lock instead of failing immediately.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT,
        }
    logger.debug(f"Creating engine for {url.split(':', 1)[0]}")
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def get_session() -> Generator[Session, None, None]:
    """Dependency to get database session"""
    with Session(engine, expire_on_commit=False) as session:
        yield session
