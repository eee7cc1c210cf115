"""
Structural validation of rule configurations.

Walks every group, condition and exclude entry and accumulates all
violations with their location, so the rule editor can show every problem
at once. Validation never raises for a bad configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from curation.core.errors import RuleConfigError
from .schema import (
    AUTO_FIELDS,
    AutoRuleConfig,
    CustomRuleConfig,
    FieldKind,
    GroupLogic,
    LEGAL_OPERATORS,
    RuleCondition,
    RuleField,
    RuleLocation,
    RuleValidationError,
    coerce_field,
    coerce_number,
    coerce_operator,
    field_kind,
    parse_rule_config,
)


@dataclass
class ValidationResult:
    """Outcome of validating a rule configuration."""

    errors: list[RuleValidationError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def messages(self) -> list[str]:
        return [str(e) for e in self.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
        }


def validate_rule_config(
    config: AutoRuleConfig | CustomRuleConfig | Mapping[str, Any],
) -> ValidationResult:
    """Validate a rule configuration.

    Args:
        config: A parsed RuleConfig or its raw JSON mapping

    Returns:
        ValidationResult; ``valid`` is True only when no violation was found
    """
    try:
        parsed = parse_rule_config(config)
    except RuleConfigError as exc:
        return ValidationResult(errors=list(exc.errors))

    if isinstance(parsed, AutoRuleConfig):
        return ValidationResult(errors=_validate_auto(parsed))
    return ValidationResult(errors=_validate_custom(parsed))


def _validate_auto(config: AutoRuleConfig) -> list[RuleValidationError]:
    errors: list[RuleValidationError] = []
    loc = RuleLocation()

    if not config.field:
        errors.append(RuleValidationError(loc, "field", "auto rule requires a field"))
    elif coerce_field(config.field) not in AUTO_FIELDS:
        errors.append(
            RuleValidationError(
                loc,
                "field",
                f"invalid field '{config.field}' (expected one of "
                f"{', '.join(f.value for f in AUTO_FIELDS)})",
            )
        )

    if not config.value:
        errors.append(RuleValidationError(loc, "value", "auto rule requires a value"))

    return errors


def _validate_custom(config: CustomRuleConfig) -> list[RuleValidationError]:
    errors: list[RuleValidationError] = []

    for i, group in enumerate(config.groups):
        if group.logic not in (GroupLogic.AND.value, GroupLogic.OR.value):
            errors.append(
                RuleValidationError(
                    RuleLocation(group_index=i),
                    "logic",
                    "logic must be AND or OR",
                )
            )
        for j, condition in enumerate(group.conditions):
            errors.extend(
                validate_condition(condition, RuleLocation(group_index=i, condition_index=j))
            )

    for i, condition in enumerate(config.exclude):
        errors.extend(validate_condition(condition, RuleLocation(exclude_index=i)))

    return errors


def validate_condition(
    condition: RuleCondition, location: RuleLocation
) -> list[RuleValidationError]:
    """Validate a single condition.

    Args:
        condition: The condition to check
        location: Where the condition sits in the rule

    Returns:
        List of violations (empty if the condition is valid)
    """
    errors: list[RuleValidationError] = []

    rule_field = coerce_field(condition.field)
    operator = coerce_operator(condition.operator)

    if not condition.field:
        errors.append(RuleValidationError(location, "field", "field is required"))
    elif rule_field is None:
        errors.append(
            RuleValidationError(location, "field", f"unknown field '{condition.field}'")
        )

    if not condition.operator:
        errors.append(RuleValidationError(location, "operator", "operator is required"))
    elif operator is None:
        errors.append(
            RuleValidationError(
                location, "operator", f"unknown operator '{condition.operator}'"
            )
        )

    if condition.value is None:
        errors.append(RuleValidationError(location, "value", "value is required"))

    if rule_field is None:
        return errors

    kind = field_kind(rule_field)

    if operator is not None and operator not in LEGAL_OPERATORS[kind]:
        errors.append(
            RuleValidationError(
                location,
                "operator",
                f"{kind.value} field '{rule_field.value}' does not support "
                f"operator '{operator.value}'",
            )
        )

    if rule_field is RuleField.TAG and not condition.tag_type:
        errors.append(
            RuleValidationError(location, "tagType", "tag conditions require a tagType")
        )

    if kind is FieldKind.NUMERIC and condition.value is not None:
        if coerce_number(condition.value) is None:
            errors.append(
                RuleValidationError(
                    location,
                    "value",
                    f"numeric field '{rule_field.value}' requires a number",
                )
            )

    return errors

