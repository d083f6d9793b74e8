"""
Tests for the condition string parser.

The parser must turn every condition form the editor produces into an AST
without executing anything, and reject everything else with
ExpressionSyntaxError.
"""

import pytest

from surveyflow.expressions import (
    Comparison,
    ComparisonOperator,
    ConditionOperator,
    ConditionRule,
    FieldRef,
    Literal,
    LogicalExpression,
    LogicalOperator,
    NotExpression,
    Predicate,
    rule_to_expression,
)
from surveyflow.parser import (
    ExpressionSyntaxError,
    match_idiom,
    parse_expression,
    sanitize_expression,
)


class TestSanitize:
    """Host-runtime tokens never reach the grammar."""

    def test_strips_return_and_semicolon(self):
        assert sanitize_expression("return age > 18;") == "age > 18"

    def test_collapses_whitespace(self):
        assert sanitize_expression("  a   ==\n 1 ") == "a == 1"

    def test_removes_globals(self):
        cleaned = sanitize_expression("window.x == 1")
        assert "window" not in cleaned

    def test_removes_require_and_eval(self):
        cleaned = sanitize_expression('require("fs") || eval("1")')
        assert "require" not in cleaned
        assert "eval" not in cleaned

    def test_removes_dunder_names(self):
        assert "__class__" not in sanitize_expression("a.__class__ == 1")


class TestGrammar:
    """Recursive-descent grammar."""

    def test_simple_comparison(self):
        expr = parse_expression("age < 18")
        assert expr == Comparison(ComparisonOperator.LESS_THAN, FieldRef("age"), Literal(18))

    def test_string_literal_single_and_double_quotes(self):
        assert parse_expression("a == 'x'") == parse_expression('a == "x"')

    def test_strict_equality(self):
        expr = parse_expression('status === "done"')
        assert expr.operator is ComparisonOperator.STRICT_EQUALS

    def test_negative_number(self):
        expr = parse_expression("delta > -5")
        assert expr.right == Literal(-5)

    def test_float_literal(self):
        assert parse_expression("score >= 2.5").right == Literal(2.5)

    def test_and_binds_tighter_than_or(self):
        expr = parse_expression("a == 1 || b == 2 && c == 3")
        assert isinstance(expr, LogicalExpression)
        assert expr.operator is LogicalOperator.OR
        assert expr.right.operator is LogicalOperator.AND

    def test_word_operators(self):
        expr = parse_expression("a == 1 and not b == 2")
        assert expr.operator is LogicalOperator.AND
        assert isinstance(expr.right, NotExpression)

    def test_parentheses_group(self):
        expr = parse_expression("(a == 1 || b == 2) && c == 3")
        assert expr.operator is LogicalOperator.AND
        assert expr.left.operator is LogicalOperator.OR

    def test_bang_binds_tighter_than_comparison(self):
        """``!a == 1`` reads ``(!a) == 1``, as in JavaScript."""
        expr = parse_expression("!a == 1")
        assert expr == Comparison(ComparisonOperator.EQUALS, NotExpression(FieldRef("a")), Literal(1))

    def test_not_word_wraps_comparison(self):
        expr = parse_expression("not a == 1")
        assert isinstance(expr, NotExpression)
        assert isinstance(expr.operand, Comparison)

    def test_nesting_limit(self):
        with pytest.raises(ExpressionSyntaxError, match="nested deeper"):
            parse_expression("(" * 150 + "a == 1" + ")" * 150)
        with pytest.raises(ExpressionSyntaxError, match="nested deeper"):
            parse_expression("!" * 150 + "a")

    def test_moderate_nesting_allowed(self):
        expr = parse_expression("(" * 50 + "a == 1" + ")" * 50)
        assert expr == Comparison(ComparisonOperator.EQUALS, FieldRef("a"), Literal(1))

    def test_keyword_literals(self):
        assert parse_expression("true") == Literal(True)
        assert parse_expression("x == null").right == Literal(None)
        assert parse_expression("x == undefined").right == Literal(None)

    def test_bare_field_is_truthiness_check(self):
        assert parse_expression("consent") == FieldRef("consent")

    def test_dotted_field(self):
        assert parse_expression("address.city == 'Oslo'").left == FieldRef("address.city")

    def test_array_includes_field_is_in(self):
        expr = parse_expression('["red", "blue"].includes(color)')
        assert expr == Predicate(ConditionOperator.IN, "color", ("red", "blue"))

    def test_field_includes_literal_is_contains(self):
        expr = parse_expression('notes.includes("urgent")')
        assert expr == Predicate(ConditionOperator.CONTAINS, "notes", "urgent")

    def test_starts_and_ends_with(self):
        assert parse_expression('code.startsWith("AB")').operator is ConditionOperator.STARTS_WITH
        assert parse_expression('code.endsWith("Z")').operator is ConditionOperator.ENDS_WITH

    def test_regexp_test(self):
        expr = parse_expression('new RegExp("^\\\\d+$").test(zip)')
        assert expr.operator is ConditionOperator.MATCHES
        assert expr.field == "zip"
        assert expr.value == "^\\d+$"

    def test_operator_call_unary(self):
        assert parse_expression("isWeekend(visit)") == Predicate(ConditionOperator.IS_WEEKEND, "visit")

    def test_operator_call_range(self):
        expr = parse_expression('dateBetween(visit, "2024-01-01", "2024-12-31")')
        assert expr.value == ("2024-01-01", "2024-12-31")

    def test_operator_call_single_value(self):
        expr = parse_expression("ageGreaterThan(dob, 17)")
        assert expr == Predicate(ConditionOperator.AGE_GREATER_THAN, "dob", 17)


class TestIdioms:
    """Whole-string idioms map onto a single predicate."""

    def test_is_empty(self):
        assert match_idiom('!email || email === ""') == Predicate(ConditionOperator.IS_EMPTY, "email")

    def test_is_not_empty(self):
        assert match_idiom("email && email !== ''") == Predicate(ConditionOperator.IS_NOT_EMPTY, "email")

    def test_between(self):
        expr = parse_expression("age >= 18 && age <= 65")
        assert expr == Predicate(ConditionOperator.BETWEEN, "age", (18, 65))

    def test_not_between(self):
        expr = parse_expression("age < 18 || age > 65")
        assert expr == Predicate(ConditionOperator.NOT_BETWEEN, "age", (18, 65))

    def test_contains_any(self):
        expr = parse_expression('pets.some(v => ["cat", "dog"].includes(v))')
        assert expr == Predicate(ConditionOperator.CONTAINS_ANY, "pets", ("cat", "dog"))

    def test_contains_all(self):
        expr = parse_expression('["cat", "dog"].every(v => pets.includes(v))')
        assert expr.operator is ConditionOperator.CONTAINS_ALL

    def test_contains_none(self):
        expr = parse_expression('!pets.some(v => ["cat"].includes(v))')
        assert expr.operator is ConditionOperator.CONTAINS_NONE

    def test_is_today(self):
        expr = parse_expression("new Date(visit).toDateString() === new Date().toDateString()")
        assert expr == Predicate(ConditionOperator.IS_TODAY, "visit")

    def test_weekday_iife(self):
        text = "(() => { const d = new Date(visit); const day = d.getDay(); return day >= 1 && day <= 5; })()"
        assert parse_expression(text) == Predicate(ConditionOperator.IS_WEEKDAY, "visit")

    def test_month_equals(self):
        expr = parse_expression("(new Date(visit).getMonth() + 1) === 12")
        assert expr == Predicate(ConditionOperator.MONTH_EQUALS, "visit", 12)

    def test_date_comparison(self):
        expr = parse_expression('new Date(visit) >= new Date("2024-01-01")')
        assert expr == Predicate(ConditionOperator.DATE_GREATER_EQUAL, "visit", "2024-01-01")

    def test_age_idiom(self):
        text = (
            "Math.floor((new Date().getTime() - new Date(dob).getTime()) "
            "/ (365.25 * 24 * 60 * 60 * 1000)) > 17"
        )
        assert parse_expression(text) == Predicate(ConditionOperator.AGE_GREATER_THAN, "dob", 17)


class TestRuleRoundTrip:
    """Every string rule_to_expression() emits parses back to the same predicate."""

    @pytest.mark.parametrize("rule", [
        ConditionRule("age", ConditionOperator.BETWEEN, [18, 65]),
        ConditionRule("color", ConditionOperator.IN, ["red", "blue"]),
        ConditionRule("dob", ConditionOperator.AGE_GREATER_THAN, 17),
        ConditionRule("email", ConditionOperator.IS_EMPTY),
        ConditionRule("zip", ConditionOperator.MATCHES, "^9"),
        ConditionRule("pets", ConditionOperator.CONTAINS_ALL, ["cat", "dog"]),
        ConditionRule("visit", ConditionOperator.DATE_BETWEEN, ["2024-01-01", "2024-02-01"]),
    ])
    def test_round_trip(self, rule):
        assert parse_expression(rule_to_expression(rule)) == rule.to_predicate()

    def test_not_in_is_negated_in(self):
        rule = ConditionRule("color", ConditionOperator.NOT_IN, ["red"])
        expr = parse_expression(rule_to_expression(rule))
        assert expr == NotExpression(Predicate(ConditionOperator.IN, "color", ("red",)))


class TestRejected:
    """Anything outside the grammar raises."""

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "age <",
        "a == 1 )",
        "foo.bar()",
        "x = 5",
        "a == 1 == 2",
        "[a].includes(b)",
        "new Function('x')",
        "a; b",
    ])
    def test_syntax_error(self, text):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression(text)

    def test_result_is_cached(self):
        assert parse_expression("q1 == 'yes'") is parse_expression("q1 == 'yes'")
