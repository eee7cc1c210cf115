"""Rules domain - rule configuration model, validation and description."""

from .schema import (
    # Vocabularies
    RuleField,
    RuleOperator,
    GroupLogic,
    FieldKind,
    FIELD_KINDS,
    LEGAL_OPERATORS,
    AUTO_FIELDS,
    field_kind,
    # Models
    RuleCondition,
    RuleGroup,
    AutoRuleConfig,
    CustomRuleConfig,
    RuleConfig,
    # Errors
    RuleLocation,
    RuleValidationError,
    # Parsing
    parse_rule_config,
    rule_config_to_dict,
)
from .validator import ValidationResult, validate_rule_config, validate_condition
from .describe import describe_rule, describe_condition

__all__ = [
    # Vocabularies
    "RuleField",
    "RuleOperator",
    "GroupLogic",
    "FieldKind",
    "FIELD_KINDS",
    "LEGAL_OPERATORS",
    "AUTO_FIELDS",
    "field_kind",
    # Models
    "RuleCondition",
    "RuleGroup",
    "AutoRuleConfig",
    "CustomRuleConfig",
    "RuleConfig",
    # Errors
    "RuleLocation",
    "RuleValidationError",
    # Parsing
    "parse_rule_config",
    "rule_config_to_dict",
    # Validation
    "ValidationResult",
    "validate_rule_config",
    "validate_condition",
    # Description
    "describe_rule",
    "describe_condition",
]
