"""
Condition evaluation against an answer context.

evaluate() is the single entry point used by navigation and visibility.
It accepts every condition form a survey may carry:

    - a free-form string          "age >= 18 && country == 'NZ'"
    - a structured rule           ConditionRule / {"field", "operator", "value", "type"}
    - a list of structured rules  (all must hold)
    - an already parsed Expression AST

Failure semantics:
    evaluate() never raises. Malformed expressions, bad regular expressions,
    undecodable JSON arrays and invalid dates all make the condition false
    and are logged. The answer context is never modified.
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, List, Optional, Sequence

from surveyflow.expressions import (
    Comparison,
    ComparisonOperator,
    ConditionOperator,
    ConditionRule,
    Expression,
    FieldRef,
    Literal,
    LogicalExpression,
    LogicalOperator,
    NotExpression,
    Predicate,
    VALUE_TYPES,
)
from surveyflow.parser import ExpressionSyntaxError, parse_expression


logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25
_SECONDS_PER_YEAR = DAYS_PER_YEAR * 24 * 60 * 60


# =============================================================================
# VALUE COERCION
# =============================================================================

def to_string(value: Any) -> str:
    """String form of an answer value, matching what a form field would hold."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else to_string(v) for v in value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def to_number(value: Any) -> float:
    """Numeric form of a value; NaN when it has none."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("false", "0", ""):
            return False
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(value)


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date-like answer into a naive datetime.

    Accepts datetime/date objects, ISO 8601 strings (with or without time,
    ``Z`` suffix allowed), a few common slash formats, and epoch milliseconds.
    Returns None for anything else.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, bool) or value is None:
        return None
    elif isinstance(value, (int, float)):
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            dt = None
            for fmt in ("%Y/%m/%d", "%m/%d/%Y"):
                try:
                    dt = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if dt is None:
                return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric(value: Any) -> Optional[float]:
    """Number for relational comparison, or None when the value is not numeric."""
    if value is None or isinstance(value, (list, tuple, Mapping)):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    number = to_number(value)
    if math.isnan(number):
        return None
    return number


def _coerce(value: Any, value_type: Optional[str]) -> Any:
    if value_type is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_coerce(v, value_type) for v in value]
    if value_type == "string":
        return to_string(value)
    if value_type == "number":
        return to_number(value)
    if value_type == "boolean":
        return to_bool(value)
    if value_type == "date":
        return parse_date(value)
    raise ValueError(f"Unknown value type: {value_type}")


def loose_equals(a: Any, b: Any) -> bool:
    """
    Loose equality used by ``==`` when no type hint is given.

    ``"5" == 5`` and ``"0" == False`` hold; None only equals None.
    """
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, datetime) or isinstance(b, datetime):
        return parse_date(a) is not None and parse_date(a) == parse_date(b)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return list(a) == list(b)
    if isinstance(a, (list, tuple)):
        a = to_string(a)
    if isinstance(b, (list, tuple)):
        b = to_string(b)
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, (bool, int, float)) and isinstance(b, (bool, int, float)):
        return to_number(a) == to_number(b)
    if isinstance(a, str) or isinstance(b, str):
        return to_number(a) == to_number(b)
    return a == b


def strict_equals(a: Any, b: Any) -> bool:
    """Equality used by ``===``: same kind of value and equal."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    if type(a) is not type(b):
        return False
    return a == b


def _compare(a: Any, b: Any, value_type: Optional[str] = None) -> Optional[int]:
    """
    Three-way comparison; None when the operands are not comparable.

    Without a string hint, values that both read as numbers compare
    numerically; otherwise their string forms compare lexicographically.
    """
    if a is None or b is None:
        return None
    if isinstance(a, datetime) or isinstance(b, datetime):
        if not (isinstance(a, datetime) and isinstance(b, datetime)):
            return None
        return (a > b) - (a < b)
    if value_type != "string":
        na, nb = _numeric(a), _numeric(b)
        if na is not None and nb is not None:
            return (na > nb) - (na < nb)
        if value_type == "number":
            return None
    sa, sb = to_string(a), to_string(b)
    return (sa > sb) - (sa < sb)


def _equals(a: Any, b: Any, value_type: Optional[str]) -> bool:
    if value_type is None:
        return loose_equals(a, b)
    if value_type == "number":
        return not (math.isnan(a) or math.isnan(b)) and a == b
    if value_type == "date":
        return a is not None and b is not None and a == b
    return a == b


def _as_sequence(value: Any) -> Optional[List[Any]]:
    """A list operand, decoding JSON array strings. None when not a list."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and value.strip().startswith("["):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            logger.debug("Malformed JSON array operand: %r", value)
            return None
        if isinstance(decoded, list):
            return decoded
    return None


def _as_pair(value: Any) -> Optional[Sequence[Any]]:
    seq = _as_sequence(value)
    if seq is None or len(seq) != 2:
        return None
    return seq


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) == 0
    return False


def _age_in_years(born: datetime, now: datetime) -> int:
    return math.floor((now - born).total_seconds() / _SECONDS_PER_YEAR)


def _js_weekday(d: datetime) -> int:
    """Day of week with 0 = Sunday."""
    return (d.weekday() + 1) % 7


# =============================================================================
# SIMPLE CONDITIONS
# =============================================================================

_RELATIONAL = {
    ConditionOperator.GREATER_THAN: lambda c: c > 0,
    ConditionOperator.GREATER_EQUAL: lambda c: c >= 0,
    ConditionOperator.LESS_THAN: lambda c: c < 0,
    ConditionOperator.LESS_EQUAL: lambda c: c <= 0,
}

_DATE_RELATIONAL = {
    ConditionOperator.DATE_GREATER_THAN: lambda c: c > 0,
    ConditionOperator.DATE_GREATER_EQUAL: lambda c: c >= 0,
    ConditionOperator.DATE_LESS_THAN: lambda c: c < 0,
    ConditionOperator.DATE_LESS_EQUAL: lambda c: c <= 0,
}


def _in_range(value: Any, pair: Optional[Sequence[Any]], value_type: Optional[str]) -> Optional[bool]:
    """Inclusive [min, max] check; None when the inputs are not comparable."""
    if pair is None:
        return None
    low = _compare(value, pair[0], value_type)
    high = _compare(value, pair[1], value_type)
    if low is None or high is None:
        return None
    return low >= 0 and high <= 0


def evaluate_simple_condition(
    field_value: Any,
    operator,
    comparison: Any = None,
    value_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Apply one condition operator to one answer value.

    Args:
        field_value: The answer (None when the field has no answer)
        operator: ConditionOperator or its string spelling
        comparison: Comparison value; [min, max] for range operators
        value_type: Optional coercion hint (string, number, boolean, date)
        now: Reference time for relative date operators (defaults to now)

    Returns:
        bool. Unknown operators and invalid inputs give False.
    """
    try:
        op = ConditionOperator.parse(operator)
    except ValueError:
        logger.warning("Unknown condition operator: %r", operator)
        return False
    if value_type is not None and value_type not in VALUE_TYPES:
        logger.warning("Unknown value type: %r", value_type)
        return False

    if field_value is None:
        if op in (ConditionOperator.IS_EMPTY, ConditionOperator.EMPTY):
            return True
        if op is ConditionOperator.EQUALS:
            return comparison is None
        if op is ConditionOperator.NOT_EQUALS:
            return comparison is not None
        return False

    if op in (ConditionOperator.IS_EMPTY, ConditionOperator.EMPTY):
        return _is_empty(field_value)
    if op in (ConditionOperator.IS_NOT_EMPTY, ConditionOperator.NOT_EMPTY):
        return not _is_empty(field_value)

    if op.value.startswith(("date", "is", "dayOf", "month", "year", "age")):
        return _evaluate_date_condition(field_value, op, comparison, now)

    value = _coerce(field_value, value_type)
    target = _coerce(comparison, value_type)

    if op is ConditionOperator.EQUALS:
        return _equals(value, target, value_type)
    if op is ConditionOperator.NOT_EQUALS:
        return not _equals(value, target, value_type)
    if op in _RELATIONAL:
        result = _compare(value, target, value_type)
        return result is not None and _RELATIONAL[op](result)

    if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if isinstance(value, (list, tuple)):
            found = any(loose_equals(item, target) for item in value)
        else:
            found = to_string(target) in to_string(value)
        return found if op is ConditionOperator.CONTAINS else not found
    if op is ConditionOperator.STARTS_WITH:
        return to_string(value).startswith(to_string(target))
    if op is ConditionOperator.ENDS_WITH:
        return to_string(value).endswith(to_string(target))
    if op is ConditionOperator.MATCHES:
        try:
            return re.search(to_string(target), to_string(value)) is not None
        except re.error as e:
            logger.debug("Invalid pattern %r: %s", target, e)
            return False

    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        options = _as_sequence(target)
        if options is None:
            return False
        found = any(loose_equals(value, option) for option in options)
        return found if op is ConditionOperator.IN else not found

    if op in (ConditionOperator.CONTAINS_ANY, ConditionOperator.CONTAINS_ALL, ConditionOperator.CONTAINS_NONE):
        options = _as_sequence(target)
        if options is None:
            return False
        selected = value if isinstance(value, (list, tuple)) else [value]
        hits = [any(loose_equals(item, option) for item in selected) for option in options]
        if op is ConditionOperator.CONTAINS_ANY:
            return any(hits)
        if op is ConditionOperator.CONTAINS_ALL:
            return all(hits)
        return not any(hits)

    if op in (ConditionOperator.BETWEEN, ConditionOperator.NOT_BETWEEN):
        result = _in_range(value, _as_pair(target), value_type)
        if result is None:
            return False
        return result if op is ConditionOperator.BETWEEN else not result

    logger.warning("Unhandled condition operator: %s", op.value)
    return False


def _evaluate_date_condition(
    field_value: Any,
    op: ConditionOperator,
    comparison: Any,
    now: Optional[datetime],
) -> bool:
    d = parse_date(field_value)
    if d is None:
        logger.debug("Invalid date value: %r", field_value)
        return False
    now = now or datetime.now()

    if op is ConditionOperator.IS_TODAY:
        return d.date() == now.date()
    if op is ConditionOperator.IS_PAST_DATE:
        return d < now
    if op is ConditionOperator.IS_FUTURE_DATE:
        return d > now
    if op is ConditionOperator.IS_WEEKDAY:
        return d.weekday() < 5
    if op is ConditionOperator.IS_WEEKEND:
        return d.weekday() >= 5

    if op in (ConditionOperator.DAY_OF_WEEK_EQUALS, ConditionOperator.MONTH_EQUALS, ConditionOperator.YEAR_EQUALS):
        number = to_number(comparison)
        if math.isnan(number):
            return False
        if op is ConditionOperator.DAY_OF_WEEK_EQUALS:
            return _js_weekday(d) == number
        if op is ConditionOperator.MONTH_EQUALS:
            return d.month == number
        return d.year == number

    if op in (ConditionOperator.AGE_GREATER_THAN, ConditionOperator.AGE_LESS_THAN):
        limit = to_number(comparison)
        if math.isnan(limit):
            return False
        age = _age_in_years(d, now)
        return age > limit if op is ConditionOperator.AGE_GREATER_THAN else age < limit
    if op is ConditionOperator.AGE_BETWEEN:
        pair = _as_pair(comparison)
        if pair is None:
            return False
        low, high = to_number(pair[0]), to_number(pair[1])
        if math.isnan(low) or math.isnan(high):
            return False
        return low <= _age_in_years(d, now) <= high

    if op in (ConditionOperator.DATE_BETWEEN, ConditionOperator.DATE_NOT_BETWEEN):
        pair = _as_pair(comparison)
        if pair is None:
            return False
        bounds = [parse_date(v) for v in pair]
        if None in bounds:
            return False
        inside = bounds[0] <= d <= bounds[1]
        return inside if op is ConditionOperator.DATE_BETWEEN else not inside

    other = parse_date(comparison)
    if other is None:
        logger.debug("Invalid date comparison value: %r", comparison)
        return False
    if op is ConditionOperator.DATE_EQUALS:
        return d.date() == other.date()
    if op is ConditionOperator.DATE_NOT_EQUALS:
        return d.date() != other.date()
    if op in _DATE_RELATIONAL:
        return _DATE_RELATIONAL[op]((d > other) - (d < other))

    logger.warning("Unhandled date operator: %s", op.value)
    return False


# =============================================================================
# EXPRESSION INTERPRETER
# =============================================================================

def lookup(context: Mapping, name: str) -> Any:
    """
    Answer for ``name``; None when absent.

    A dotted name is tried as a literal key first, then as a path through
    nested mappings.
    """
    if name in context:
        return context[name]
    if "." not in name:
        return None
    current: Any = context
    for part in name.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, (list, tuple, Mapping, str)):
        return len(value) > 0
    return bool(value)


def _evaluate_node(node: Expression, context: Mapping, now: Optional[datetime]) -> Any:
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, FieldRef):
        return lookup(context, node.name)
    if isinstance(node, Predicate):
        comparison = list(node.value) if isinstance(node.value, tuple) else node.value
        return evaluate_simple_condition(
            lookup(context, node.field), node.operator, comparison, node.value_type, now
        )
    if isinstance(node, LogicalExpression):
        left = truthy(_evaluate_node(node.left, context, now))
        if node.operator is LogicalOperator.AND:
            return left and truthy(_evaluate_node(node.right, context, now))
        return left or truthy(_evaluate_node(node.right, context, now))
    if isinstance(node, NotExpression):
        return not truthy(_evaluate_node(node.operand, context, now))
    if isinstance(node, Comparison):
        left = _evaluate_node(node.left, context, now)
        right = _evaluate_node(node.right, context, now)
        if isinstance(left, tuple):
            left = list(left)
        if isinstance(right, tuple):
            right = list(right)
        return _apply_comparison(node.operator, left, right)
    raise TypeError(f"Unsupported Expression type: {type(node)}")


def _apply_comparison(op: ComparisonOperator, left: Any, right: Any) -> bool:
    if op is ComparisonOperator.EQUALS:
        return loose_equals(left, right)
    if op is ComparisonOperator.NOT_EQUALS:
        return not loose_equals(left, right)
    if op is ComparisonOperator.STRICT_EQUALS:
        return strict_equals(left, right)
    if op is ComparisonOperator.STRICT_NOT_EQUALS:
        return not strict_equals(left, right)

    result = _compare(left, right)
    if result is None:
        return False
    if op is ComparisonOperator.GREATER_THAN:
        return result > 0
    if op is ComparisonOperator.GREATER_EQUAL:
        return result >= 0
    if op is ComparisonOperator.LESS_THAN:
        return result < 0
    return result <= 0


def evaluate(condition: Any, context: Mapping, now: Optional[datetime] = None) -> bool:
    """
    Evaluate any condition form against an answer context.

    Args:
        condition: String, ConditionRule, rule dict, list of rules, bool or Expression
        context: Answers by field name (read only)
        now: Reference time for relative date operators

    Returns:
        True only when the condition holds. Empty conditions, malformed
        conditions and evaluation errors give False.
    """
    try:
        if condition is None:
            return False
        if isinstance(condition, bool):
            return condition
        if isinstance(condition, str):
            if not condition.strip():
                return False
            return truthy(_evaluate_node(parse_expression(condition), context, now))
        if isinstance(condition, Expression):
            return truthy(_evaluate_node(condition, context, now))
        if isinstance(condition, ConditionRule):
            return _evaluate_node(condition.to_predicate(), context, now)
        if isinstance(condition, Mapping):
            return _evaluate_node(ConditionRule.from_dict(condition).to_predicate(), context, now)
        if isinstance(condition, (list, tuple)):
            if not condition:
                return False
            return all(evaluate(item, context, now) for item in condition)
    except ExpressionSyntaxError as e:
        logger.warning("Malformed condition %r: %s", condition, e)
        return False
    except (KeyError, ValueError, TypeError, OverflowError, RecursionError) as e:
        logger.warning("Failed to evaluate condition %r: %s", condition, e)
        return False

    logger.warning("Unsupported condition type: %s", type(condition).__name__)
    return False


__all__ = [
    "DAYS_PER_YEAR",
    "to_string",
    "to_number",
    "to_bool",
    "parse_date",
    "loose_equals",
    "strict_equals",
    "evaluate_simple_condition",
    "lookup",
    "truthy",
    "evaluate",
]
