"""Core package - Shared configuration, database, logging and errors."""

from .config import Settings, get_settings
from .database import get_engine, get_session, init_tables, set_database_url
from .errors import (
    CurationError,
    RuleConfigError,
    StoreError,
    CollectionNotFoundError,
    RecipeNotFoundError,
    DuplicateSlugError,
    InvalidOverrideError,
)
from .logging import configure_logging

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_engine",
    "get_session",
    "init_tables",
    "set_database_url",
    # Errors
    "CurationError",
    "RuleConfigError",
    "StoreError",
    "CollectionNotFoundError",
    "RecipeNotFoundError",
    "DuplicateSlugError",
    "InvalidOverrideError",
    # Logging
    "configure_logging",
]
