"""
Human-readable rendering of navigation conditions.

    describe_condition('bmi < "25"')                    -> 'bmi Less than 25'
    describe_condition('["hd"].includes(conditions)',
                       blocks)                          -> 'conditions In array "Heart disease"'

Option values are replaced by their option labels when the block that owns
the field is given. Conditions that cannot be parsed are returned as-is.
"""

from typing import Any, Dict, Iterable, Optional

from surveyflow.expressions import (
    Comparison,
    ComparisonOperator,
    ConditionOperator,
    Expression,
    FieldRef,
    Literal,
    LogicalExpression,
    LogicalOperator,
    NotExpression,
    OPERATOR_LABELS,
    Predicate,
    RANGE_OPERATORS,
    UNARY_OPERATORS,
)
from surveyflow.model import Block
from surveyflow.parser import ExpressionSyntaxError, parse_expression


_COMPARISON_AS_CONDITION = {
    ComparisonOperator.EQUALS: ConditionOperator.EQUALS,
    ComparisonOperator.STRICT_EQUALS: ConditionOperator.EQUALS,
    ComparisonOperator.NOT_EQUALS: ConditionOperator.NOT_EQUALS,
    ComparisonOperator.STRICT_NOT_EQUALS: ConditionOperator.NOT_EQUALS,
    ComparisonOperator.GREATER_THAN: ConditionOperator.GREATER_THAN,
    ComparisonOperator.GREATER_EQUAL: ConditionOperator.GREATER_EQUAL,
    ComparisonOperator.LESS_THAN: ConditionOperator.LESS_THAN,
    ComparisonOperator.LESS_EQUAL: ConditionOperator.LESS_EQUAL,
}


def _option_label(block: Optional[Block], value: Any) -> Optional[str]:
    if block is None:
        return None
    options = block.attributes.get("options")
    if not isinstance(options, list):
        return None
    for option in options:
        if isinstance(option, dict) and value in (option.get("value"), option.get("id")):
            label = option.get("label")
            return f'"{label}"' if label is not None else None
    return None


def _display(value: Any, block: Optional[Block]) -> str:
    label = _option_label(block, value)
    if label is not None:
        return label
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _describe_predicate(field: str, op: ConditionOperator, value: Any, blocks: Dict[str, Block]) -> str:
    if op in (ConditionOperator.IS_EMPTY, ConditionOperator.EMPTY):
        return f"{field} is empty"
    if op in (ConditionOperator.IS_NOT_EMPTY, ConditionOperator.NOT_EMPTY):
        return f"{field} is not empty"

    label = OPERATOR_LABELS.get(op, op.value)
    if op in UNARY_OPERATORS:
        return f"{field} {label}"

    block = blocks.get(field)
    if isinstance(value, (list, tuple)):
        items = [_display(v, block) for v in value]
        joined = " and ".join(items) if op in RANGE_OPERATORS else ", ".join(items)
        return f"{field} {label} {joined}"
    return f"{field} {label} {_display(value, block)}"


def _describe(expr: Expression, blocks: Dict[str, Block]) -> Optional[str]:
    if isinstance(expr, Predicate):
        return _describe_predicate(expr.field, expr.operator, expr.value, blocks)

    if isinstance(expr, Comparison):
        left, right, op = expr.left, expr.right, _COMPARISON_AS_CONDITION[expr.operator]
        if isinstance(left, FieldRef) and isinstance(right, Literal):
            return _describe_predicate(left.name, op, right.value, blocks)
        return None

    if isinstance(expr, LogicalExpression):
        left = _describe(expr.left, blocks)
        right = _describe(expr.right, blocks)
        if left is None or right is None:
            return None
        joiner = "and" if expr.operator is LogicalOperator.AND else "or"
        return f"{left} {joiner} {right}"

    if isinstance(expr, NotExpression):
        inner = _describe(expr.operand, blocks)
        return f"not ({inner})" if inner is not None else None

    if isinstance(expr, FieldRef):
        return f"{expr.name} is not empty"

    return None


def describe_condition(condition: Any, blocks: Iterable[Block] = ()) -> str:
    """
    Render a condition as a short sentence for edge labels and rule lists.

    Args:
        condition: Condition string (other forms are rendered with str())
        blocks: Blocks used to resolve option labels, matched by field name

    Returns:
        Sentence such as "age Less than 18", or the raw condition when it
        is outside the grammar.
    """
    if not condition:
        return ""
    if not isinstance(condition, str):
        return str(condition)

    by_field = {b.field_name: b for b in blocks if b.field_name}
    try:
        expr = parse_expression(condition)
    except ExpressionSyntaxError:
        return condition

    described = _describe(expr, by_field)
    return described if described is not None else condition


__all__ = ["describe_condition"]
