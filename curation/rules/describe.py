"""Human-readable summaries of rule configurations."""

from __future__ import annotations

from .schema import AutoRuleConfig, CustomRuleConfig, RuleCondition

FIELD_LABELS = {
    "cuisineId": "cuisine",
    "locationId": "location",
    "tagId": "tag",
    "tag": "tag",
    "cookTime": "cook time",
    "prepTime": "prep time",
    "difficulty": "difficulty",
    "servings": "servings",
}

OPERATOR_LABELS = {
    "eq": "=",
    "neq": "!=",
    "in": "in",
    "nin": "not in",
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


def describe_condition(condition: RuleCondition) -> str:
    """Describe one condition, e.g. ``tag[taste] = spicy``."""
    label = FIELD_LABELS.get(condition.field or "", condition.field or "?")
    if condition.tag_type:
        label = f"{label}[{condition.tag_type}]"
    operator = OPERATOR_LABELS.get(condition.operator or "", condition.operator or "?")
    if isinstance(condition.value, (list, tuple)):
        value = "[" + ", ".join(str(v) for v in condition.value) + "]"
    else:
        value = str(condition.value)
    return f"{label} {operator} {value}"


def describe_rule(config: AutoRuleConfig | CustomRuleConfig) -> str:
    """Describe a rule configuration for operators.

    Groups are joined with AND; conditions inside a group with the group's
    logic; exclusions are listed after ``EXCLUDE:``.
    """
    if isinstance(config, AutoRuleConfig):
        label = FIELD_LABELS.get(config.field or "", config.field or "?")
        return f"Auto match {label}"

    groups = [g for g in config.groups if g.conditions]
    if not groups and not config.exclude:
        return "No rules (matches all)"

    parts = []
    for group in groups:
        joiner = " OR " if group.logic == "OR" else " AND "
        parts.append("(" + joiner.join(describe_condition(c) for c in group.conditions) + ")")

    text = " AND ".join(parts) if parts else "All recipes"
    if config.exclude:
        text += " EXCLUDE: " + ", ".join(describe_condition(c) for c in config.exclude)
    return text
