"""Tests for rule configuration parsing."""

import pytest

from curation.core.errors import RuleConfigError
from curation.rules.schema import (
    AutoRuleConfig,
    CustomRuleConfig,
    FieldKind,
    RuleField,
    RuleLocation,
    RuleOperator,
    coerce_field,
    coerce_number,
    coerce_operator,
    field_kind,
    parse_rule_config,
    rule_config_to_dict,
)


class TestParseRuleConfig:
    def test_parse_auto(self):
        """Test parsing an auto rule."""
        config = parse_rule_config({"mode": "auto", "field": "cuisineId", "value": "sichuan"})
        assert isinstance(config, AutoRuleConfig)
        assert config.field == "cuisineId"
        assert config.value == "sichuan"

    def test_parse_custom(self):
        """Test parsing a custom rule with wire names."""
        config = parse_rule_config({
            "mode": "custom",
            "groups": [
                {
                    "logic": "OR",
                    "conditions": [{"field": "tag", "operator": "in", "value": ["a", "b"], "tagType": "taste"}],
                }
            ],
            "exclude": [],
        })
        assert isinstance(config, CustomRuleConfig)
        assert config.groups[0].logic == "OR"
        assert config.groups[0].conditions[0].tag_type == "taste"
        assert config.groups[0].conditions[0].value == ["a", "b"]

    def test_custom_defaults(self):
        """Test a custom rule defaults to no groups and no exclusions."""
        config = parse_rule_config({"mode": "custom"})
        assert config.groups == []
        assert config.exclude == []

    def test_parsed_config_passes_through(self):
        """Test an already parsed config is returned unchanged."""
        config = AutoRuleConfig(field="tagId", value="spicy")
        assert parse_rule_config(config) is config

    def test_unknown_mode_raises(self):
        """Test an unknown mode raises RuleConfigError."""
        with pytest.raises(RuleConfigError) as exc_info:
            parse_rule_config({"mode": "smart"})
        assert exc_info.value.errors

    def test_missing_mode_raises(self):
        """Test a config without a mode raises."""
        with pytest.raises(RuleConfigError):
            parse_rule_config({"field": "cuisineId", "value": "x"})

    def test_non_list_groups_raises_with_location(self):
        """Test malformed groups report the offending field."""
        with pytest.raises(RuleConfigError) as exc_info:
            parse_rule_config({"mode": "custom", "groups": "everything"})
        fields = [e.field for e in exc_info.value.errors]
        assert "groups" in fields

    def test_to_dict_uses_wire_names(self):
        """Test serialization uses camelCase wire names."""
        config = parse_rule_config({
            "mode": "custom",
            "groups": [{"logic": "AND", "conditions": [{"field": "tag", "operator": "eq", "value": "x", "tagType": "scene"}]}],
        })
        data = rule_config_to_dict(config)
        condition = data["groups"][0]["conditions"][0]
        assert condition["tagType"] == "scene"
        assert "tag_type" not in condition
        assert data["exclude"] == []


class TestVocabulary:
    def test_coerce_field(self):
        """Test converting wire values to RuleField."""
        assert coerce_field("cookTime") is RuleField.COOK_TIME
        assert coerce_field("calories") is None
        assert coerce_field(None) is None

    def test_coerce_operator(self):
        """Test converting wire values to RuleOperator."""
        assert coerce_operator("nin") is RuleOperator.NIN
        assert coerce_operator("like") is None

    def test_field_kinds(self):
        """Test each field maps to its kind."""
        assert field_kind(RuleField.CUISINE_ID) is FieldKind.RELATION
        assert field_kind(RuleField.TAG) is FieldKind.TAG
        assert field_kind(RuleField.TAG_ID) is FieldKind.TAG
        assert field_kind(RuleField.SERVINGS) is FieldKind.NUMERIC

    @pytest.mark.parametrize(
        "value,expected",
        [
            (30, 30),
            (20.5, 20.5),
            (" 15 ", 15),
            ("2.5", 2.5),
            ("abc", None),
            (float("nan"), None),
            (True, None),
            (None, None),
            ([1], None),
        ],
    )
    def test_coerce_number(self, value, expected):
        """Test numbers are kept as given and strings are parsed."""
        assert coerce_number(value) == expected

    def test_coerce_number_keeps_fractions(self):
        """Test a fractional value is not truncated."""
        assert isinstance(coerce_number(20.5), float)
        assert isinstance(coerce_number("7"), int)


class TestRuleLocation:
    def test_describe(self):
        """Test human-readable locations."""
        assert RuleLocation().describe() == "Rule"
        assert RuleLocation(group_index=0).describe() == "Group 1"
        assert RuleLocation(group_index=1, condition_index=2).describe() == "Group 2 condition 3"
        assert RuleLocation(exclude_index=0).describe() == "Exclude condition 1"

    def test_to_dict(self):
        """Test RuleLocation serialization."""
        assert RuleLocation(group_index=0, condition_index=1).to_dict() == {
            "groupIndex": 0,
            "conditionIndex": 1,
            "excludeIndex": None,
        }
