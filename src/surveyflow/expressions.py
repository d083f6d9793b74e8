"""
Expression System for surveyflow

Navigation and visibility conditions are parsed once into a small tagged
Abstract Syntax Tree and interpreted directly (see surveyflow.conditions).
Condition strings are never executed as code.

Node kinds:
    - Literal          constant (number, string, bool, None, tuple of literals)
    - FieldRef         answer lookup by field name
    - Comparison       left <op> right, both sub-expressions
    - Predicate        field <condition operator> value (contains, between, dates, ...)
    - LogicalExpression   AND / OR
    - NotExpression    logical negation

ARCHITECTURAL RULE:
    Nodes are structure only. They are immutable (frozen=True) and know
    nothing about answer contexts or evaluation.
"""

import json
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class Expression(ABC):
    """
    Base class for all condition AST nodes.

    Structure only. Evaluation lives in surveyflow.conditions,
    parsing in surveyflow.parser.
    """
    pass


class ComparisonOperator(Enum):
    """
    Infix comparison operators of the free-form grammar.

    ``==`` and ``!=`` compare loosely ("5" == 5), the triple forms strictly.
    """

    EQUALS = "=="
    NOT_EQUALS = "!="
    STRICT_EQUALS = "==="
    STRICT_NOT_EQUALS = "!=="
    GREATER_THAN = ">"
    GREATER_EQUAL = ">="
    LESS_THAN = "<"
    LESS_EQUAL = "<="


class LogicalOperator(Enum):
    AND = "AND"
    OR = "OR"


class ConditionOperator(Enum):
    """
    Operators of structured condition rules ({field, operator, value, type}).

    The comparison members share their symbols with ComparisonOperator.
    ``empty``/``notEmpty`` are accepted spellings of isEmpty/isNotEmpty.
    """

    # Comparison
    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_EQUAL = ">="
    LESS_THAN = "<"
    LESS_EQUAL = "<="

    # String
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES = "matches"

    # Array / set
    IN = "in"
    NOT_IN = "notIn"
    CONTAINS_ANY = "containsAny"
    CONTAINS_ALL = "containsAll"
    CONTAINS_NONE = "containsNone"

    # Emptiness and ranges
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    EMPTY = "empty"
    NOT_EMPTY = "notEmpty"
    BETWEEN = "between"
    NOT_BETWEEN = "notBetween"

    # Dates
    DATE_EQUALS = "dateEquals"
    DATE_NOT_EQUALS = "dateNotEquals"
    DATE_GREATER_THAN = "dateGreaterThan"
    DATE_GREATER_EQUAL = "dateGreaterThanOrEqual"
    DATE_LESS_THAN = "dateLessThan"
    DATE_LESS_EQUAL = "dateLessThanOrEqual"
    DATE_BETWEEN = "dateBetween"
    DATE_NOT_BETWEEN = "dateNotBetween"
    IS_TODAY = "isToday"
    IS_PAST_DATE = "isPastDate"
    IS_FUTURE_DATE = "isFutureDate"
    IS_WEEKDAY = "isWeekday"
    IS_WEEKEND = "isWeekend"
    DAY_OF_WEEK_EQUALS = "dayOfWeekEquals"
    MONTH_EQUALS = "monthEquals"
    YEAR_EQUALS = "yearEquals"
    AGE_GREATER_THAN = "ageGreaterThan"
    AGE_LESS_THAN = "ageLessThan"
    AGE_BETWEEN = "ageBetween"

    @classmethod
    def parse(cls, value: Union[str, "ConditionOperator"]) -> "ConditionOperator":
        if isinstance(value, cls):
            return value
        return cls(value)


# Operators taking no comparison value.
UNARY_OPERATORS = frozenset({
    ConditionOperator.IS_EMPTY,
    ConditionOperator.IS_NOT_EMPTY,
    ConditionOperator.EMPTY,
    ConditionOperator.NOT_EMPTY,
    ConditionOperator.IS_TODAY,
    ConditionOperator.IS_PAST_DATE,
    ConditionOperator.IS_FUTURE_DATE,
    ConditionOperator.IS_WEEKDAY,
    ConditionOperator.IS_WEEKEND,
})

# Operators whose value is a [min, max] pair.
RANGE_OPERATORS = frozenset({
    ConditionOperator.BETWEEN,
    ConditionOperator.NOT_BETWEEN,
    ConditionOperator.DATE_BETWEEN,
    ConditionOperator.DATE_NOT_BETWEEN,
    ConditionOperator.AGE_BETWEEN,
})

OPERATOR_LABELS: Dict[ConditionOperator, str] = {
    ConditionOperator.EQUALS: "Equals",
    ConditionOperator.NOT_EQUALS: "Not equals",
    ConditionOperator.GREATER_THAN: "Greater than",
    ConditionOperator.GREATER_EQUAL: "Greater than or equal",
    ConditionOperator.LESS_THAN: "Less than",
    ConditionOperator.LESS_EQUAL: "Less than or equal",
    ConditionOperator.CONTAINS: "Contains",
    ConditionOperator.NOT_CONTAINS: "Does not contain",
    ConditionOperator.STARTS_WITH: "Starts with",
    ConditionOperator.ENDS_WITH: "Ends with",
    ConditionOperator.MATCHES: "Matches pattern",
    ConditionOperator.IN: "In array",
    ConditionOperator.NOT_IN: "Not in array",
    ConditionOperator.CONTAINS_ANY: "Contains any of",
    ConditionOperator.CONTAINS_ALL: "Contains all of",
    ConditionOperator.CONTAINS_NONE: "Contains none of",
    ConditionOperator.IS_EMPTY: "Is empty",
    ConditionOperator.IS_NOT_EMPTY: "Is not empty",
    ConditionOperator.EMPTY: "Is empty",
    ConditionOperator.NOT_EMPTY: "Is not empty",
    ConditionOperator.BETWEEN: "Between",
    ConditionOperator.NOT_BETWEEN: "Not between",
    ConditionOperator.DATE_EQUALS: "Date equals",
    ConditionOperator.DATE_NOT_EQUALS: "Date not equals",
    ConditionOperator.DATE_GREATER_THAN: "Date after",
    ConditionOperator.DATE_GREATER_EQUAL: "Date on or after",
    ConditionOperator.DATE_LESS_THAN: "Date before",
    ConditionOperator.DATE_LESS_EQUAL: "Date on or before",
    ConditionOperator.DATE_BETWEEN: "Date between",
    ConditionOperator.DATE_NOT_BETWEEN: "Date not between",
    ConditionOperator.IS_TODAY: "Is today",
    ConditionOperator.IS_PAST_DATE: "Is past date",
    ConditionOperator.IS_FUTURE_DATE: "Is future date",
    ConditionOperator.IS_WEEKDAY: "Is weekday",
    ConditionOperator.IS_WEEKEND: "Is weekend",
    ConditionOperator.DAY_OF_WEEK_EQUALS: "Day of week equals",
    ConditionOperator.MONTH_EQUALS: "Month equals",
    ConditionOperator.YEAR_EQUALS: "Year equals",
    ConditionOperator.AGE_GREATER_THAN: "Age greater than",
    ConditionOperator.AGE_LESS_THAN: "Age less than",
    ConditionOperator.AGE_BETWEEN: "Age between",
}

VALUE_TYPES = ("string", "number", "boolean", "date")


@dataclass(frozen=True)
class Literal(Expression):
    """
    A constant.

    Array literals are stored as tuples so the node stays hashable.
    """

    value: Any


@dataclass(frozen=True)
class FieldRef(Expression):
    """
    Reference to an answer in the context.

    Dotted names (``address.city``) are looked up as a single key first and
    then walked through nested mappings. Existence is not checked here.
    """

    name: str


@dataclass(frozen=True)
class Comparison(Expression):
    """
    Infix comparison.

    Example:
        age < 18

    Becomes:
        Comparison(
            operator=ComparisonOperator.LESS_THAN,
            left=FieldRef("age"),
            right=Literal(18),
        )
    """

    operator: ComparisonOperator
    left: Expression
    right: Expression


@dataclass(frozen=True)
class Predicate(Expression):
    """
    A structured condition applied to one answer field.

    Properties:
        operator: ConditionOperator
        field: Answer field name
        value: Comparison value (tuple for list-valued operators, None for unary ones)
        value_type: Optional coercion hint: string, number, boolean or date
    """

    operator: ConditionOperator
    field: str
    value: Any = None
    value_type: Optional[str] = None


@dataclass(frozen=True)
class LogicalExpression(Expression):
    operator: LogicalOperator
    left: Expression
    right: Expression


@dataclass(frozen=True)
class NotExpression(Expression):
    operand: Expression


@dataclass(frozen=True)
class ConditionRule:
    """
    Structured condition as produced by a rule builder form.

    Properties:
        field: Answer field name
        operator: ConditionOperator
        value: Comparison value; a [min, max] pair for range operators
        type: Optional coercion hint (string, number, boolean, date)
    """

    field: str
    operator: ConditionOperator
    value: Any = None
    type: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConditionRule":
        value_type = d.get("type")
        if value_type is not None and value_type not in VALUE_TYPES:
            raise ValueError(f"Unknown value type: {value_type}")
        return cls(
            field=d["field"],
            operator=ConditionOperator.parse(d["operator"]),
            value=d.get("value"),
            type=value_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        d = {"field": self.field, "operator": self.operator.value, "value": self.value}
        if self.type is not None:
            d["type"] = self.type
        return d

    def to_predicate(self) -> Predicate:
        value = self.value
        if isinstance(value, list):
            value = tuple(value)
        return Predicate(self.operator, self.field, value, self.type)


def _js(value: Any) -> str:
    if isinstance(value, tuple):
        value = list(value)
    return json.dumps(value)


def _pair(value: Any) -> Tuple[Any, Any]:
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return value[0], value[1]
    return value, value


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def rule_to_expression(rule: ConditionRule) -> str:
    """
    Render a structured rule as a canonical condition string.

    The string form is what gets stored in a NavigationRule and shown in the
    editor; surveyflow.parser reads every form produced here back into an
    equivalent AST.

    Examples:
        ConditionRule("age", ConditionOperator.BETWEEN, [18, 65])
            -> 'age >= 18 && age <= 65'
        ConditionRule("color", ConditionOperator.IN, ["red", "blue"])
            -> '["red", "blue"].includes(color)'
        ConditionRule("dob", ConditionOperator.AGE_GREATER_THAN, 17)
            -> 'ageGreaterThan(dob, 17)'
    """
    f = rule.field
    op = rule.operator
    value = rule.value

    if op in (ConditionOperator.IS_EMPTY, ConditionOperator.EMPTY):
        return f'!{f} || {f} === ""'
    if op in (ConditionOperator.IS_NOT_EMPTY, ConditionOperator.NOT_EMPTY):
        return f'{f} && {f} !== ""'
    if op is ConditionOperator.IN:
        return f"{_js(_as_list(value))}.includes({f})"
    if op is ConditionOperator.NOT_IN:
        return f"!{_js(_as_list(value))}.includes({f})"
    if op is ConditionOperator.CONTAINS_ANY:
        return f"{f}.some(v => {_js(_as_list(value))}.includes(v))"
    if op is ConditionOperator.CONTAINS_ALL:
        return f"{_js(_as_list(value))}.every(v => {f}.includes(v))"
    if op is ConditionOperator.CONTAINS_NONE:
        return f"!{f}.some(v => {_js(_as_list(value))}.includes(v))"
    if op is ConditionOperator.BETWEEN:
        low, high = _pair(value)
        return f"{f} >= {_js(low)} && {f} <= {_js(high)}"
    if op is ConditionOperator.NOT_BETWEEN:
        low, high = _pair(value)
        return f"{f} < {_js(low)} || {f} > {_js(high)}"
    if op is ConditionOperator.MATCHES:
        return f"new RegExp({_js(value)}).test({f})"
    if op is ConditionOperator.CONTAINS:
        return f"{f}.includes({_js(value)})"
    if op is ConditionOperator.NOT_CONTAINS:
        return f"!{f}.includes({_js(value)})"
    if op in (ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH):
        return f"{f}.{op.value}({_js(value)})"
    if op in UNARY_OPERATORS:
        return f"{op.value}({f})"
    if op in RANGE_OPERATORS:
        low, high = _pair(value)
        return f"{op.value}({f}, {_js(low)}, {_js(high)})"
    if op.value.startswith(("date", "age", "dayOf", "month", "year")):
        return f"{op.value}({f}, {_js(value)})"

    # Plain comparison
    return f"{f} {op.value} {_js(value)}"


__all__ = [
    "Expression",
    "ComparisonOperator",
    "LogicalOperator",
    "ConditionOperator",
    "UNARY_OPERATORS",
    "RANGE_OPERATORS",
    "OPERATOR_LABELS",
    "VALUE_TYPES",
    "Literal",
    "FieldRef",
    "Comparison",
    "Predicate",
    "LogicalExpression",
    "NotExpression",
    "ConditionRule",
    "rule_to_expression",
]
