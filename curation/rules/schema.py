"""Pydantic models for the collection rule configuration.

A rule configuration is a tagged union on ``mode``:

- ``auto``: match recipes by the relation the collection itself is linked to
  (cuisine, location or tag).
- ``custom``: explicit boolean groups of conditions plus an exclude list.

Condition ``field``/``operator`` values are carried as plain strings so the
validator can report every bad value at once; the validator and the compiler
convert them to the closed ``RuleField``/``RuleOperator`` enums.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from curation.core.errors import RuleConfigError


# =============================================================================
# Closed vocabularies
# =============================================================================

class RuleField(str, Enum):
    """Recipe attributes a condition can test."""
    CUISINE_ID = "cuisineId"
    LOCATION_ID = "locationId"
    TAG_ID = "tagId"
    TAG = "tag"  # requires tagType
    COOK_TIME = "cookTime"
    PREP_TIME = "prepTime"
    DIFFICULTY = "difficulty"
    SERVINGS = "servings"


class RuleOperator(str, Enum):
    """Comparison operators for conditions."""
    EQ = "eq"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"


class GroupLogic(str, Enum):
    """How conditions inside one group combine."""
    AND = "AND"
    OR = "OR"


class FieldKind(str, Enum):
    """Families of fields that share an operator set and a compile strategy."""
    RELATION = "relation"
    TAG = "tag"
    NUMERIC = "numeric"


FIELD_KINDS: dict[RuleField, FieldKind] = {
    RuleField.CUISINE_ID: FieldKind.RELATION,
    RuleField.LOCATION_ID: FieldKind.RELATION,
    RuleField.TAG_ID: FieldKind.TAG,
    RuleField.TAG: FieldKind.TAG,
    RuleField.COOK_TIME: FieldKind.NUMERIC,
    RuleField.PREP_TIME: FieldKind.NUMERIC,
    RuleField.DIFFICULTY: FieldKind.NUMERIC,
    RuleField.SERVINGS: FieldKind.NUMERIC,
}

MEMBERSHIP_OPERATORS = frozenset(
    {RuleOperator.EQ, RuleOperator.NEQ, RuleOperator.IN, RuleOperator.NIN}
)

LEGAL_OPERATORS: dict[FieldKind, frozenset[RuleOperator]] = {
    FieldKind.RELATION: MEMBERSHIP_OPERATORS,
    FieldKind.TAG: MEMBERSHIP_OPERATORS,
    FieldKind.NUMERIC: frozenset(
        {
            RuleOperator.EQ,
            RuleOperator.NEQ,
            RuleOperator.LT,
            RuleOperator.LTE,
            RuleOperator.GT,
            RuleOperator.GTE,
        }
    ),
}

# Fields an auto rule may bind to
AUTO_FIELDS = (RuleField.CUISINE_ID, RuleField.LOCATION_ID, RuleField.TAG_ID)


def field_kind(field: RuleField) -> FieldKind:
    """Return the kind of a rule field."""
    return FIELD_KINDS[field]


def coerce_field(value: Any) -> RuleField | None:
    """Convert a wire value to a RuleField, or None if unknown."""
    try:
        return RuleField(value)
    except ValueError:
        return None


def coerce_operator(value: Any) -> RuleOperator | None:
    """Convert a wire value to a RuleOperator, or None if unknown."""
    try:
        return RuleOperator(value)
    except ValueError:
        return None


def coerce_number(value: Any) -> int | float | None:
    """Convert a numeric condition value to a number, or None if not numeric.

    Numbers are kept as given; strings are parsed as int, then as float.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


# =============================================================================
# Rule configuration models
# =============================================================================

class RuleCondition(BaseModel):
    """A single condition: ``field operator value``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: str | None = Field(None, description="Recipe field to test")
    operator: str | None = Field(None, description="Comparison operator")
    value: Any = Field(None, description="Scalar or list of values")
    tag_type: str | None = Field(
        None, alias="tagType", description="Tag type (required when field is 'tag')"
    )


class RuleGroup(BaseModel):
    """Conditions combined with a single logic."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    logic: str | None = Field(None, description="AND or OR")
    conditions: list[RuleCondition] = Field(default_factory=list)


class AutoRuleConfig(BaseModel):
    """Match recipes by the relation the collection is linked to."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mode: Literal["auto"] = "auto"
    field: str | None = Field(None, description="cuisineId, locationId or tagId")
    value: str | None = Field(None, description="Id of the linked entity")
    tag_type: str | None = Field(None, alias="tagType")


class CustomRuleConfig(BaseModel):
    """Explicit condition groups (AND between groups) plus exclusions."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mode: Literal["custom"] = "custom"
    groups: list[RuleGroup] = Field(default_factory=list)
    exclude: list[RuleCondition] = Field(default_factory=list)


RuleConfig = Annotated[Union[AutoRuleConfig, CustomRuleConfig], Field(discriminator="mode")]

_RULE_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(RuleConfig)


# =============================================================================
# Validation error records
# =============================================================================

@dataclass(frozen=True)
class RuleLocation:
    """Where in a rule configuration a problem was found (0-based indices)."""

    group_index: int | None = None
    condition_index: int | None = None
    exclude_index: int | None = None

    def describe(self) -> str:
        """Human-readable location, 1-based like the rule editor."""
        if self.exclude_index is not None:
            return f"Exclude condition {self.exclude_index + 1}"
        if self.group_index is not None:
            text = f"Group {self.group_index + 1}"
            if self.condition_index is not None:
                text += f" condition {self.condition_index + 1}"
            return text
        return "Rule"

    def to_dict(self) -> dict[str, int | None]:
        return {
            "groupIndex": self.group_index,
            "conditionIndex": self.condition_index,
            "excludeIndex": self.exclude_index,
        }


@dataclass(frozen=True)
class RuleValidationError:
    """A structural problem in a rule configuration."""

    location: RuleLocation
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.location.describe()}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location.to_dict(),
            "field": self.field,
            "message": str(self),
        }


def _location_from_loc(loc: tuple) -> tuple[RuleLocation, str]:
    """Map a pydantic error location to a RuleLocation and field name."""
    group_index = condition_index = exclude_index = None
    field = ""
    items = list(loc)
    for i, part in enumerate(items):
        nxt = items[i + 1] if i + 1 < len(items) else None
        if part == "groups" and isinstance(nxt, int):
            group_index = nxt
        elif part == "conditions" and isinstance(nxt, int):
            condition_index = nxt
        elif part == "exclude" and isinstance(nxt, int):
            exclude_index = nxt
        elif isinstance(part, str) and part not in ("auto", "custom"):
            field = part
    return RuleLocation(group_index, condition_index, exclude_index), field


# =============================================================================
# Parsing
# =============================================================================

def parse_rule_config(data: Any) -> AutoRuleConfig | CustomRuleConfig:
    """Parse the wire/persisted JSON form into a RuleConfig.

    Args:
        data: A mapping (or an already-parsed config)

    Returns:
        AutoRuleConfig or CustomRuleConfig

    Raises:
        RuleConfigError: If the shape cannot be parsed (unknown mode,
            non-list groups, ...). All problems are reported together.
    """
    if isinstance(data, (AutoRuleConfig, CustomRuleConfig)):
        return data
    try:
        return _RULE_CONFIG_ADAPTER.validate_python(data)
    except ValidationError as exc:
        errors = []
        for err in exc.errors():
            location, field = _location_from_loc(err.get("loc", ()))
            errors.append(RuleValidationError(location, field or "mode", err["msg"]))
        raise RuleConfigError(errors) from exc


def rule_config_to_dict(config: AutoRuleConfig | CustomRuleConfig) -> dict[str, Any]:
    """Serialize a RuleConfig to its wire JSON form."""
    return config.model_dump(mode="json", by_alias=True, exclude_none=True)
