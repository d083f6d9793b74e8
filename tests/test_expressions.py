"""
Tests for the surveyflow expression system.

These tests verify:
    - AST nodes are immutable and comparable by value
    - Structured rules load from / dump to their dict form
    - rule_to_expression() produces the canonical condition strings
"""

import dataclasses

import pytest

from surveyflow.expressions import (
    Comparison,
    ComparisonOperator,
    ConditionOperator,
    ConditionRule,
    FieldRef,
    Literal,
    OPERATOR_LABELS,
    Predicate,
    rule_to_expression,
)


class TestNodes:

    def test_nodes_are_immutable(self):
        ref = FieldRef("age")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ref.name = "other"

    def test_equality_by_value(self):
        a = Comparison(ComparisonOperator.LESS_THAN, FieldRef("age"), Literal(18))
        b = Comparison(ComparisonOperator.LESS_THAN, FieldRef("age"), Literal(18))
        assert a == b
        assert hash(a) == hash(b)

    def test_every_operator_has_a_label(self):
        assert set(OPERATOR_LABELS) == set(ConditionOperator)


class TestConditionOperator:

    def test_parse_symbol_and_name(self):
        assert ConditionOperator.parse(">=") is ConditionOperator.GREATER_EQUAL
        assert ConditionOperator.parse("containsAny") is ConditionOperator.CONTAINS_ANY

    def test_parse_passthrough(self):
        assert ConditionOperator.parse(ConditionOperator.IN) is ConditionOperator.IN

    def test_unknown(self):
        with pytest.raises(ValueError):
            ConditionOperator.parse("approximately")


class TestConditionRule:

    def test_from_dict(self):
        rule = ConditionRule.from_dict({"field": "age", "operator": "between", "value": [18, 65], "type": "number"})
        assert rule == ConditionRule("age", ConditionOperator.BETWEEN, [18, 65], "number")

    def test_to_dict_omits_missing_type(self):
        rule = ConditionRule("email", ConditionOperator.IS_EMPTY)
        assert rule.to_dict() == {"field": "email", "operator": "isEmpty", "value": None}

    def test_unknown_value_type(self):
        with pytest.raises(ValueError):
            ConditionRule.from_dict({"field": "x", "operator": "==", "value": 1, "type": "complex"})

    def test_to_predicate_makes_lists_hashable(self):
        predicate = ConditionRule("color", ConditionOperator.IN, ["red", "blue"]).to_predicate()
        assert predicate == Predicate(ConditionOperator.IN, "color", ("red", "blue"))
        hash(predicate)


@pytest.mark.parametrize("rule, expected", [
    (ConditionRule("name", ConditionOperator.EQUALS, "x"), 'name == "x"'),
    (ConditionRule("n", ConditionOperator.GREATER_THAN, 5), "n > 5"),
    (ConditionRule("age", ConditionOperator.BETWEEN, [18, 65]), "age >= 18 && age <= 65"),
    (ConditionRule("age", ConditionOperator.NOT_BETWEEN, [18, 65]), "age < 18 || age > 65"),
    (ConditionRule("color", ConditionOperator.IN, ["red", "blue"]), '["red", "blue"].includes(color)'),
    (ConditionRule("color", ConditionOperator.NOT_IN, ["red"]), '!["red"].includes(color)'),
    (ConditionRule("email", ConditionOperator.IS_EMPTY), '!email || email === ""'),
    (ConditionRule("email", ConditionOperator.NOT_EMPTY), 'email && email !== ""'),
    (ConditionRule("name", ConditionOperator.STARTS_WITH, "ab"), 'name.startsWith("ab")'),
    (ConditionRule("zip", ConditionOperator.MATCHES, "^9"), 'new RegExp("^9").test(zip)'),
    (ConditionRule("dob", ConditionOperator.AGE_GREATER_THAN, 17), "ageGreaterThan(dob, 17)"),
    (ConditionRule("d", ConditionOperator.IS_TODAY), "isToday(d)"),
    (ConditionRule("visit", ConditionOperator.DATE_BETWEEN, ["a", "b"]), 'dateBetween(visit, "a", "b")'),
])
def test_rule_to_expression(rule, expected):
    assert rule_to_expression(rule) == expected
