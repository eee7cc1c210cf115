"""
Intermediate Representation (IR) for compiled collection rules.

A compiled rule is a ``Predicate``: an abstract boolean expression over
recipe attributes, independent of any storage engine. Record stores
translate predicates into their own query language (see
``curation.store.query``).

Node kinds:
- ``all`` / ``none``: constant true / false
- ``relation``: cuisine/location equality and membership
- ``tag``: has-some / has-none of a set of tag ids, optionally scoped by type
- ``numeric``: ordered comparison on an integer attribute
- ``ids``: recipe id membership (used for pinned/excluded overrides)
- ``and`` / ``or`` / ``not``: composition
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class MatchAll(BaseModel):
    """Matches every recipe."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["all"] = "all"


class MatchNone(BaseModel):
    """Matches no recipe (the empty predicate)."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["none"] = "none"


class RelationCheck(BaseModel):
    """Equality / membership test on a direct relation column."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["relation"] = "relation"

    field: Literal["cuisine_id", "location_id"]
    op: Literal["eq", "neq", "in", "nin"]
    values: tuple[str, ...]
    """Single value for eq/neq, the value set for in/nin."""


class TagCheck(BaseModel):
    """Membership through the recipe-tag many-to-many relation."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["tag"] = "tag"

    quantifier: Literal["some", "none"]
    """``some``: recipe has at least one of the tags; ``none``: has none of them."""

    tag_ids: tuple[str, ...]

    tag_type: str | None = None
    """Only tags of this type count when set."""


class NumericCheck(BaseModel):
    """Ordered comparison on a numeric recipe attribute."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["numeric"] = "numeric"

    field: Literal["cook_time", "prep_time", "difficulty", "servings"]
    op: Literal["eq", "neq", "lt", "lte", "gt", "gte"]
    value: int | float


class IdCheck(BaseModel):
    """Recipe id is one of ``ids``."""

    model_config = ConfigDict(frozen=True)
    kind: Literal["ids"] = "ids"

    ids: tuple[str, ...]


class AndPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["and"] = "and"
    children: tuple["Predicate", ...]


class OrPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["or"] = "or"
    children: tuple["Predicate", ...]


class NotPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["not"] = "not"
    child: "Predicate"


Predicate = Annotated[
    Union[
        MatchAll,
        MatchNone,
        RelationCheck,
        TagCheck,
        NumericCheck,
        IdCheck,
        AndPredicate,
        OrPredicate,
        NotPredicate,
    ],
    Field(discriminator="kind"),
]

AndPredicate.model_rebuild()
OrPredicate.model_rebuild()
NotPredicate.model_rebuild()


# =============================================================================
# Constructors
# =============================================================================

def and_(*children: Any) -> AndPredicate:
    return AndPredicate(children=tuple(children))


def or_(*children: Any) -> OrPredicate:
    return OrPredicate(children=tuple(children))


def not_(child: Any) -> NotPredicate:
    return NotPredicate(child=child)


def ids_in(ids: Any) -> IdCheck:
    return IdCheck(ids=tuple(ids))


# =============================================================================
# Compile output
# =============================================================================

class WarningCode(str, Enum):
    """Kinds of non-fatal compile problems."""
    UNRESOLVED_REFERENCE = "unresolved_reference"
    UNSUPPORTED_CONDITION = "unsupported_condition"


class CompileWarning(BaseModel):
    """A non-fatal problem found while compiling or resolving a rule."""

    code: WarningCode
    message: str
    location: dict[str, int | None] | None = None


class CompiledRule(BaseModel):
    """Complete compiled form of a rule configuration."""

    mode: Literal["auto", "custom"]
    """Mode of the source rule configuration."""

    predicate: Predicate
    """The boolean expression over recipe attributes."""

    warnings: list[CompileWarning] = Field(default_factory=list)
    """Degradations applied while compiling."""

    source_hash: str | None = None
    """Hash of the rule configuration and context for change detection."""

    compiled_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    """ISO timestamp of when the rule was compiled."""

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, json_str: str) -> "CompiledRule":
        """Deserialize from JSON string."""
        return cls.model_validate_json(json_str)


# =============================================================================
# Inspection
# =============================================================================

def referenced_ids(predicate: Any) -> dict[str, set[str]]:
    """Collect cuisine, location and tag ids a predicate refers to.

    Returns:
        Dict with keys ``cuisine``, ``location`` and ``tag``
    """
    refs: dict[str, set[str]] = {"cuisine": set(), "location": set(), "tag": set()}

    def visit(node: Any) -> None:
        if isinstance(node, RelationCheck):
            key = "cuisine" if node.field == "cuisine_id" else "location"
            refs[key].update(node.values)
        elif isinstance(node, TagCheck):
            refs["tag"].update(node.tag_ids)
        elif isinstance(node, (AndPredicate, OrPredicate)):
            for child in node.children:
                visit(child)
        elif isinstance(node, NotPredicate):
            visit(node.child)

    visit(predicate)
    return refs
