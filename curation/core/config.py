"""Application configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # API
    app_name: str = "Collection Curation Workbench"
    debug: bool = False
    log_level: str = "info"

    # Storage
    database_url: str | None = None

    # Snapshot cache
    cache_ttl_seconds: int = 3600

    # Read paths
    detail_recipe_limit: int = 100
    sample_limit_max: int = 50
    near_threshold: float = 80.0

    # Collection definitions (YAML)
    collections_dir: str = str(Path(__file__).resolve().parent.parent / "collections" / "data")
    sync_definitions_on_startup: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
