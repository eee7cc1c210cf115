"""
Rule compiler for transforming rule configurations to predicates.

Compiles a validated RuleConfig plus its CollectionContext into a
storage-independent Predicate. Composition order:

1. Conditions inside a group combine under the group's logic
2. Groups combine with AND
3. Exclude conditions are OR'd, negated, and AND'd onto the result
4. Empty groups and conditions that compile to nothing are dropped

Compilation is pure and deterministic. Problems degrade to warnings
instead of failing a batch operation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any

from curation.rules.schema import (
    AutoRuleConfig,
    CustomRuleConfig,
    FieldKind,
    LEGAL_OPERATORS,
    RuleCondition,
    RuleField,
    RuleGroup,
    RuleLocation,
    RuleOperator,
    coerce_field,
    coerce_number,
    coerce_operator,
    field_kind,
    parse_rule_config,
    rule_config_to_dict,
)
from .context import CollectionContext
from .ir import (
    CompiledRule,
    CompileWarning,
    MatchAll,
    MatchNone,
    NumericCheck,
    RelationCheck,
    TagCheck,
    WarningCode,
    and_,
    not_,
    or_,
)
from .optimizer import PredicateOptimizer

logger = logging.getLogger(__name__)


# Rule field -> recipe column for direct comparisons
RELATION_COLUMNS = {
    RuleField.CUISINE_ID: "cuisine_id",
    RuleField.LOCATION_ID: "location_id",
}

NUMERIC_COLUMNS = {
    RuleField.COOK_TIME: "cook_time",
    RuleField.PREP_TIME: "prep_time",
    RuleField.DIFFICULTY: "difficulty",
    RuleField.SERVINGS: "servings",
}

# Operators that select recipes having the value(s); the others select
# recipes not having them
POSITIVE_MEMBERSHIP = (RuleOperator.EQ, RuleOperator.IN)


class RuleCompiler:
    """Compiles rule configurations to predicates."""

    def __init__(self, optimizer: PredicateOptimizer | None = None):
        self._optimizer = optimizer or PredicateOptimizer()

    def compile(
        self,
        config: AutoRuleConfig | CustomRuleConfig | dict,
        context: CollectionContext | None = None,
    ) -> CompiledRule:
        """Compile a rule configuration to a predicate.

        Callers must validate the configuration first; invalid parts that
        slip through are dropped and reported as warnings.

        Args:
            config: The RuleConfig (or its JSON mapping)
            context: Linked cuisine/location/tag ids for auto rules

        Returns:
            CompiledRule with the simplified predicate and any warnings
        """
        config = parse_rule_config(config)
        context = context or CollectionContext()
        warnings: list[CompileWarning] = []

        if isinstance(config, AutoRuleConfig):
            predicate = self._compile_auto(config, context, warnings)
        else:
            predicate = self._compile_custom(config, warnings)

        for warning in warnings:
            logger.warning(
                "Rule compile warning for collection %s: %s",
                context.collection_id,
                warning.message,
            )

        return CompiledRule(
            mode=config.mode,
            predicate=self._optimizer.optimize(predicate),
            warnings=warnings,
            source_hash=_source_hash(config, context),
            compiled_at=datetime.now(timezone.utc).isoformat(),
        )

    # =========================================================================
    # Auto rules
    # =========================================================================

    def _compile_auto(
        self,
        config: AutoRuleConfig,
        context: CollectionContext,
        warnings: list[CompileWarning],
    ) -> Any:
        """Bind an auto rule to the collection's linked entity."""
        rule_field = coerce_field(config.field)

        if rule_field is RuleField.CUISINE_ID:
            bound = context.cuisine_id
        elif rule_field is RuleField.LOCATION_ID:
            bound = context.location_id
        elif rule_field is RuleField.TAG_ID:
            bound = context.tag_id
        else:
            warnings.append(
                CompileWarning(
                    code=WarningCode.UNSUPPORTED_CONDITION,
                    message=f"auto rule field '{config.field}' is not supported",
                )
            )
            return MatchNone()

        if not bound:
            # An auto rule with no linked entity is unsatisfiable
            warnings.append(
                CompileWarning(
                    code=WarningCode.UNRESOLVED_REFERENCE,
                    message=f"auto rule on '{rule_field.value}' has no linked entity",
                )
            )
            return MatchNone()

        if rule_field is RuleField.TAG_ID:
            return TagCheck(quantifier="some", tag_ids=(bound,))
        return RelationCheck(field=RELATION_COLUMNS[rule_field], op="eq", values=(bound,))

    # =========================================================================
    # Custom rules
    # =========================================================================

    def _compile_custom(
        self, config: CustomRuleConfig, warnings: list[CompileWarning]
    ) -> Any:
        """Compose groups with AND and apply the exclude list."""
        group_predicates = []
        for i, group in enumerate(config.groups):
            predicate = self._compile_group(group, i, warnings)
            if predicate is not None:
                group_predicates.append(predicate)

        body = and_(*group_predicates) if group_predicates else MatchAll()

        exclude_predicates = []
        for i, condition in enumerate(config.exclude):
            predicate = self.compile_condition(
                condition, RuleLocation(exclude_index=i), warnings
            )
            if predicate is not None:
                exclude_predicates.append(predicate)

        if not exclude_predicates:
            return body
        return and_(body, not_(or_(*exclude_predicates)))

    def _compile_group(
        self, group: RuleGroup, index: int, warnings: list[CompileWarning]
    ) -> Any | None:
        """Compile one group; None when nothing in it survives."""
        predicates = []
        for j, condition in enumerate(group.conditions):
            predicate = self.compile_condition(
                condition, RuleLocation(group_index=index, condition_index=j), warnings
            )
            if predicate is not None:
                predicates.append(predicate)

        if not predicates:
            return None
        if group.logic == "OR":
            return or_(*predicates)
        return and_(*predicates)

    def compile_condition(
        self,
        condition: RuleCondition,
        location: RuleLocation,
        warnings: list[CompileWarning],
    ) -> Any | None:
        """Compile a single condition.

        Args:
            condition: The condition to compile
            location: Position of the condition (for warnings)
            warnings: Accumulator for compile warnings

        Returns:
            Predicate, or None when the condition is unsupported
        """
        rule_field = coerce_field(condition.field)
        operator = coerce_operator(condition.operator)

        if rule_field is None or operator is None:
            return self._unsupported(condition, location, warnings)

        kind = field_kind(rule_field)
        if operator not in LEGAL_OPERATORS[kind] or condition.value is None:
            return self._unsupported(condition, location, warnings)

        if kind is FieldKind.RELATION:
            return RelationCheck(
                field=RELATION_COLUMNS[rule_field],
                op=operator.value,
                values=_as_values(condition.value),
            )

        if kind is FieldKind.TAG:
            return TagCheck(
                quantifier="some" if operator in POSITIVE_MEMBERSHIP else "none",
                tag_ids=_as_values(condition.value),
                tag_type=condition.tag_type or None,
            )

        number = coerce_number(condition.value)
        if number is None:
            return self._unsupported(condition, location, warnings)
        return NumericCheck(field=NUMERIC_COLUMNS[rule_field], op=operator.value, value=number)

    def _unsupported(
        self,
        condition: RuleCondition,
        location: RuleLocation,
        warnings: list[CompileWarning],
    ) -> None:
        warnings.append(
            CompileWarning(
                code=WarningCode.UNSUPPORTED_CONDITION,
                message=(
                    f"{location.describe()}: unsupported condition "
                    f"{condition.field!r} {condition.operator!r} {condition.value!r}; ignored"
                ),
                location=location.to_dict(),
            )
        )
        return None


def _as_values(value: Any) -> tuple[str, ...]:
    """Normalize a scalar or list condition value to a tuple of ids."""
    if isinstance(value, (list, tuple, set)):
        return tuple(str(v) for v in value)
    return (str(value),)


def _source_hash(config: AutoRuleConfig | CustomRuleConfig, context: CollectionContext) -> str:
    payload = {
        "rule": rule_config_to_dict(config),
        "links": [context.cuisine_id, context.location_id, context.tag_id],
    }
    encoded = json.dumps(payload, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()[:16]


def compile_rule(
    config: AutoRuleConfig | CustomRuleConfig | dict,
    context: CollectionContext | None = None,
) -> CompiledRule:
    """Convenience function to compile a single rule.

    Args:
        config: The rule configuration
        context: The collection context

    Returns:
        CompiledRule
    """
    compiler = RuleCompiler()
    return compiler.compile(config, context)
