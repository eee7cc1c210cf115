"""
Record store interface and its SQLModel implementation.

The rule engine only talks to recipes through ``RecordStore``; the SQL
implementation translates predicates with ``to_sql_clause`` and wraps
every SQLAlchemy failure in ``StoreError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from curation.core.errors import StoreError
from .models import ACTIVE_STATUSES, Cuisine, Location, Recipe, Tag
from .query import to_sql_clause

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Entity kinds accepted by existing_ids()
ENTITY_MODELS = {
    "recipe": Recipe,
    "cuisine": Cuisine,
    "location": Location,
    "tag": Tag,
}


def _status_values(statuses: Iterable[Any]) -> list[str]:
    return [s.value if hasattr(s, "value") else s for s in statuses]


@dataclass(frozen=True)
class MatchedRecord:
    """Minimal projection of a matched recipe."""

    id: str
    status: str
    created_at: datetime


class RecordStore(Protocol):
    """Read-only access to recipes for the rule engine."""

    def count(self, predicate: Any, status: str | None = None) -> int: ...

    def count_by_status(self, predicate: Any) -> dict[str, int]: ...

    def list(
        self,
        predicate: Any,
        status: str | Iterable[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
        order: str = "created",
    ) -> list[Recipe]: ...

    def list_matches(
        self, predicate: Any, statuses: Iterable[str] | None = None
    ) -> list[MatchedRecord]: ...

    def get_many(self, ids: Iterable[str]) -> list[Recipe]: ...

    def status_of(self, ids: Iterable[str]) -> dict[str, str]: ...

    def existing_ids(self, kind: str, ids: Iterable[str]) -> set[str]: ...


class SQLRecordStore:
    """RecordStore backed by a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def _run(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except SQLAlchemyError as exc:
            logger.error("Record store %s failed: %s", operation, exc)
            self.session.rollback()
            raise StoreError(f"Record store {operation} failed: {exc}", operation=operation) from exc

    def count(self, predicate: Any, status: str | None = None) -> int:
        """Count recipes matching a predicate, optionally in one status."""
        statement = select(func.count()).select_from(Recipe).where(to_sql_clause(predicate))
        if status is not None:
            statement = statement.where(Recipe.status == status)
        return self._run("count", lambda: int(self.session.exec(statement).one()))

    def count_by_status(self, predicate: Any) -> dict[str, int]:
        """Count matching recipes per status in one grouped query."""
        statement = (
            select(Recipe.status, func.count())
            .where(to_sql_clause(predicate))
            .group_by(Recipe.status)
        )
        rows = self._run("count_by_status", lambda: self.session.exec(statement).all())
        return {status: int(n) for status, n in rows}

    def list(
        self,
        predicate: Any,
        status: str | Iterable[str] | None = None,
        offset: int = 0,
        limit: int | None = None,
        order: str = "created",
    ) -> list[Recipe]:
        """List matching recipes.

        Args:
            predicate: Compiled predicate
            status: Restrict to one status or a collection of statuses
            offset: Rows to skip
            limit: Maximum rows (None for all)
            order: ``created`` (newest first) or ``recent`` (last updated first)
        """
        statement = select(Recipe).where(to_sql_clause(predicate))
        if isinstance(status, str):
            statement = statement.where(Recipe.status == status)
        elif status is not None:
            statement = statement.where(Recipe.status.in_(_status_values(status)))
        if order == "recent":
            statement = statement.order_by(Recipe.updated_at.desc(), Recipe.created_at.desc(), Recipe.id)
        else:
            statement = statement.order_by(Recipe.created_at.desc(), Recipe.id)
        statement = statement.offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        return self._run("list", lambda: list(self.session.exec(statement).all()))

    def list_matches(
        self, predicate: Any, statuses: Iterable[str] | None = None
    ) -> list[MatchedRecord]:
        """Project matching recipes to (id, status, created_at)."""
        wanted = _status_values(statuses or ACTIVE_STATUSES)
        statement = (
            select(Recipe.id, Recipe.status, Recipe.created_at)
            .where(to_sql_clause(predicate))
            .where(Recipe.status.in_(wanted))
        )
        rows = self._run("list_matches", lambda: self.session.exec(statement).all())
        return [MatchedRecord(id=r[0], status=r[1], created_at=r[2]) for r in rows]

    def get_many(self, ids: Iterable[str]) -> list[Recipe]:
        """Fetch recipes by id, in the order given; unknown ids are skipped."""
        ids = list(ids)
        if not ids:
            return []
        statement = select(Recipe).where(Recipe.id.in_(ids))
        rows = self._run("get_many", lambda: self.session.exec(statement).all())
        by_id = {r.id: r for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def status_of(self, ids: Iterable[str]) -> dict[str, str]:
        """Map recipe id to status for the ids that exist."""
        ids = list(ids)
        if not ids:
            return {}
        statement = select(Recipe.id, Recipe.status).where(Recipe.id.in_(ids))
        rows = self._run("status_of", lambda: self.session.exec(statement).all())
        return {rid: status for rid, status in rows}

    def existing_ids(self, kind: str, ids: Iterable[str]) -> set[str]:
        """Return the subset of ids that exist for an entity kind.

        Raises:
            ValueError: If ``kind`` is not one of recipe, cuisine, location, tag
        """
        model = ENTITY_MODELS.get(kind)
        if model is None:
            raise ValueError(f"Unknown entity kind: {kind}")
        ids = list(ids)
        if not ids:
            return set()
        statement = select(model.id).where(model.id.in_(ids))
        return self._run("existing_ids", lambda: set(self.session.exec(statement).all()))
