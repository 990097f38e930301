# ipam_controller/database/session.py
"""
Database Session Management
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Optional
import logging

from ipam_controller.config import settings
from .models import Base, StoreRevision

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create an engine based on database URL

    In-memory SQLite shares one connection (StaticPool) so every
    session sees the same database; use it from a single thread only.
    File-backed SQLite serializes writers through its busy timeout.
    """
    url = database_url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        kwargs = {
            "connect_args": {"check_same_thread": False, "timeout": 30},
            "echo": settings.DEBUG,
        }
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
    else:
        # PostgreSQL or other databases
        engine = create_engine(
            url,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=settings.DEBUG,
        )

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine
    )


def init_db(engine: Engine) -> None:
    """
    Initialize database tables and the revision counter row
    Call this before the store is used
    """
    logger.info("Initializing database...")
    Base.metadata.create_all(bind=engine)

    session = build_session_factory(engine)()
    try:
        if session.get(StoreRevision, 1) is None:
            session.add(StoreRevision(id=1, value=0))
            session.commit()
    finally:
        session.close()
    logger.info("Database initialized successfully")
