"""YAML collection definition loader.

Collection definitions (name, slug, rule configuration, thresholds) can be
kept in version-controlled YAML files and synced into the database by slug.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field
from sqlmodel import Session

from curation.core.config import get_settings
from curation.core.errors import RuleConfigError
from curation.rules.validator import validate_rule_config
from .schemas import CollectionCreate, CollectionUpdate
from .service import CollectionService, default_path

logger = logging.getLogger(__name__)


class CollectionDefinition(BaseModel):
    """A collection as written in a YAML definition file."""

    slug: str
    name: str
    type: str = "theme"
    status: Literal["draft", "published", "archived"] = "draft"
    path: str | None = None
    description: str | None = None
    rules: dict[str, Any] = Field(
        default_factory=lambda: {"mode": "custom", "groups": [], "exclude": []}
    )
    cuisine_id: str | None = None
    location_id: str | None = None
    tag_id: str | None = None
    pinned_recipe_ids: list[str] = Field(default_factory=list)
    excluded_recipe_ids: list[str] = Field(default_factory=list)
    min_required: int = Field(default=10, ge=0)
    target_count: int = Field(default=20, ge=0)
    sort_order: int = 0


class CollectionLoader:
    """Loads and validates YAML collection definitions from files or directories."""

    def __init__(self, collections_dir: str | Path | None = None):
        self.collections_dir = Path(collections_dir) if collections_dir else None
        self._definitions: dict[str, CollectionDefinition] = {}

    def load_file(self, path: str | Path) -> list[CollectionDefinition]:
        """Load definitions from a single YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            RuleConfigError: If a definition's rule configuration is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Collection file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)

        if content is None:
            return []

        # Handle single definition or list of definitions
        items = content if isinstance(content, list) else [content]
        definitions = []
        for item in items:
            definition = self._parse_definition(item)
            definitions.append(definition)
            self._definitions[definition.slug] = definition

        return definitions

    def load_directory(self, path: str | Path | None = None) -> list[CollectionDefinition]:
        """Load all YAML definitions from a directory; bad files are skipped."""
        path = Path(path) if path else self.collections_dir
        if not path:
            raise ValueError("No collections directory specified")
        if not path.exists():
            raise FileNotFoundError(f"Collections directory not found: {path}")

        definitions = []
        for yaml_file in sorted(path.glob("*.yaml")):
            try:
                definitions.extend(self.load_file(yaml_file))
            except (RuleConfigError, ValueError, yaml.YAMLError) as e:
                logger.warning("Failed to load %s: %s", yaml_file, e)

        return definitions

    def get_definition(self, slug: str) -> CollectionDefinition | None:
        """Get a loaded definition by slug."""
        return self._definitions.get(slug)

    def get_all_definitions(self) -> list[CollectionDefinition]:
        """Get all loaded definitions."""
        return list(self._definitions.values())

    def _parse_definition(self, data: dict) -> CollectionDefinition:
        """Parse and validate a definition from dictionary data."""
        definition = CollectionDefinition(**data)
        result = validate_rule_config(definition.rules)
        if not result.valid:
            raise RuleConfigError(result.errors)
        return definition


@dataclass
class SyncResult:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


def sync_definitions(
    session: Session,
    definitions: list[CollectionDefinition] | None = None,
) -> SyncResult:
    """Upsert collection definitions by slug.

    Args:
        session: Database session
        definitions: Definitions to sync; defaults to everything under
            the configured ``collections_dir``

    Returns:
        SyncResult with the slugs created and updated
    """
    if definitions is None:
        directory = Path(get_settings().collections_dir)
        if not directory.exists():
            logger.info("No collection definitions directory at %s", directory)
            return SyncResult()
        definitions = CollectionLoader(directory).load_directory()

    service = CollectionService(session)
    result = SyncResult()
    for definition in definitions:
        data = definition.model_dump()
        data["path"] = data["path"] or default_path(definition.type, definition.slug)
        existing = service.get_by_slug(definition.slug)
        if existing is None:
            service.create_collection(CollectionCreate(**data))
            result.created.append(definition.slug)
        else:
            service.update_collection(existing.id, CollectionUpdate(**data))
            result.updated.append(definition.slug)

    logger.info(
        "Synced collection definitions: %d created, %d updated",
        len(result.created),
        len(result.updated),
    )
    return result
