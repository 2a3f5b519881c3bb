"""
Database engine and session management.

Builds the SQLAlchemy engine from ``DATABASE_URL`` (in-memory SQLite when it
is not set) and exposes the FastAPI session dependency. The mapped models
belong to the host application; ``init_schema`` creates their tables.
"""
import logging
import os

from sqlalchemy import MetaData, create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

_MEMORY_URL = "sqlite+pysqlite:///:memory:"


def _get_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url and url.strip():
        return url.strip()
    return _MEMORY_URL


def _engine_kwargs(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    kwargs = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url:
        # In-memory SQLite with StaticPool so the schema persists across connections
        kwargs["poolclass"] = StaticPool
    return kwargs


DATABASE_URL = _get_database_url()

engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_schema(metadata: MetaData, bind=None) -> None:
    """Create missing tables for the host application's models."""
    target = bind or engine
    metadata.create_all(bind=target)
    logger.info("schema_initialized: tables=%d url=%s", len(metadata.tables), target.url.render_as_string(hide_password=True))


def get_db():
    """Dependency to get a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
