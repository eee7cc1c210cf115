"""Database connection management for SQLModel ORM."""

from pathlib import Path
from typing import Generator

from sqlmodel import Session, create_engine, SQLModel

from curation.core.config import get_settings

# Default database URL (resolved lazily)
_DATABASE_URL: str | None = None
_engine = None


def get_database_url() -> str:
    """Get the database URL, defaulting to a SQLite file under data/."""
    global _DATABASE_URL
    if _DATABASE_URL is None:
        configured = get_settings().database_url
        if configured:
            _DATABASE_URL = configured
        else:
            project_root = Path(__file__).parent.parent.parent
            data_dir = project_root / "data"
            data_dir.mkdir(exist_ok=True)
            _DATABASE_URL = f"sqlite:///{data_dir / 'curation.db'}"
    return _DATABASE_URL


def set_database_url(url: str) -> None:
    """Set a custom database URL (useful for testing)."""
    global _DATABASE_URL, _engine
    _DATABASE_URL = url
    _engine = None  # Reset engine when URL changes


def get_engine():
    """Get SQLAlchemy engine for SQLModel operations."""
    global _engine
    if _engine is None:
        url = get_database_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, echo=False, connect_args=connect_args)
    return _engine


def get_session() -> Generator[Session, None, None]:
    """Yield a SQLModel session for dependency injection."""
    with Session(get_engine()) as session:
        yield session


def init_tables() -> None:
    """Create all SQLModel tables. Safe to call multiple times."""
    # Table classes must be imported before create_all sees them
    import curation.store.models  # noqa: F401

    SQLModel.metadata.create_all(get_engine())
