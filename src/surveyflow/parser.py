"""
Condition string parser (free-form text -> Expression AST).

Authors write navigation conditions as short JavaScript-flavoured strings
(``age < 18``, ``["a", "b"].includes(color)``, ``!email || email === ""``).
This module turns them into surveyflow.expressions nodes without executing
anything.

Parsing happens in three steps:
    1. sanitize_expression() strips host-environment tokens, a leading
       ``return`` and a trailing ``;``
    2. the whole string is matched against a table of known idioms
       (empty checks, ranges, date helpers, array helpers) that map
       straight onto a single Predicate
    3. otherwise a recursive-descent parser reads the constrained grammar:

        or_expr     := and_expr (("||" | "or") and_expr)*
        and_expr    := not_expr (("&&" | "and") not_expr)*
        not_expr    := "not" not_expr | comparison
        comparison  := unary (CMP unary)?
        unary       := "!" unary | value
        value       := "-" NUMBER | primary
        primary     := literal | array | "(" or_expr ")"
                     | IDENT ("." IDENT)* [method_call]
                     | OPERATOR_NAME "(" IDENT ("," value)* ")"
                     | "new" "RegExp" "(" STRING ")" ".test" "(" IDENT ")"

``!`` binds tighter than comparisons, as in JavaScript: ``!a == 1`` reads
``(!a) == 1``. The word form ``not`` applies to a whole comparison, as in
Python: ``not a == 1`` reads ``not (a == 1)``.

Anything outside the grammar raises ExpressionSyntaxError, and so does
nesting (parentheses and negations) deeper than MAX_NESTING.
"""

import functools
import json
import re
from typing import Any, Callable, List, Optional, Tuple

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
    Predicate,
    RANGE_OPERATORS,
    UNARY_OPERATORS,
)


class ExpressionSyntaxError(Exception):
    """Raised when a condition string is outside the supported grammar."""
    pass


# =============================================================================
# SANITIZATION
# =============================================================================

_FORBIDDEN_PATTERNS = [
    re.compile(r"import\s*\{"),
    re.compile(r"require\s*\("),
    re.compile(r"\beval\s*\("),
    re.compile(r"\b(?:process|global|globalThis|window|document)\b"),
    re.compile(r"__\w+__"),
]


def sanitize_expression(text: str) -> str:
    """
    Strip tokens that only make sense to a host runtime.

    Removes module/global access (``import {``, ``require(``, ``process``,
    ``window``, ``document``, ``eval(``, dunder names), a leading ``return``
    and a trailing semicolon, and collapses whitespace.
    """
    cleaned = text
    for pattern in _FORBIDDEN_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = re.sub(r"^return\b\s*", "", cleaned)
    cleaned = re.sub(r";+$", "", cleaned).strip()
    return cleaned


# =============================================================================
# LITERALS
# =============================================================================

_IDENT = r"[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*"
_STRING = r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\''
_NUMBER = r"-?(?:\d+(?:\.\d*)?|\.\d+)"
_SCALAR = rf"(?:{_STRING}|{_NUMBER}|true|false|null)"
_ARRAY = r"\[[^\[\]]*\]"

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "0": "\0"}


def _unquote(token: str) -> str:
    body = token[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _number(token: str):
    value = float(token)
    if value.is_integer() and not re.search(r"[.eE]", token):
        return int(value)
    return value


def _scalar(token: str) -> Any:
    token = token.strip()
    if token[:1] in ("'", '"'):
        return _unquote(token)
    if token == "true":
        return True
    if token == "false":
        return False
    if token in ("null", "undefined"):
        return None
    return _number(token)


def _array(token: str) -> Tuple[Any, ...]:
    token = token.strip()
    try:
        value = json.loads(token)
    except json.JSONDecodeError:
        inner = token[1:-1].strip()
        if not inner:
            return ()
        items = re.findall(_SCALAR, inner)
        return tuple(_scalar(item) for item in items)
    return tuple(value)


# =============================================================================
# IDIOM TABLE
# =============================================================================

def _p(pattern: str) -> "re.Pattern":
    """Compile an idiom pattern; spaces in the pattern match optional whitespace."""
    return re.compile(pattern.replace(" ", r"\s*"))


_NEW_DATE_F = r"new Date\( (?P<f>" + _IDENT + r") \)"
_NEW_DATE_V = r"new Date\( (?P<v>" + _SCALAR + r") \)"
_AGE = (
    r"Math\.floor\( \( new Date\( \)\.getTime\( \) - new Date\( (?P<f>" + _IDENT + r") \)"
    r"\.getTime\( \) \) / \( 365\.25 \* 24 \* 60 \* 60 \* 1000 \) \)"
)

_DATE_CMP = {
    ">": ConditionOperator.DATE_GREATER_THAN,
    ">=": ConditionOperator.DATE_GREATER_EQUAL,
    "<": ConditionOperator.DATE_LESS_THAN,
    "<=": ConditionOperator.DATE_LESS_EQUAL,
}

IdiomBuilder = Callable[["re.Match"], Expression]

_IDIOMS: List[Tuple["re.Pattern", IdiomBuilder]] = [
    # Emptiness
    (
        _p(r"! (?P<f>" + _IDENT + r") \|\| (?P=f) ===? (?:\"\"|'')"),
        lambda m: Predicate(ConditionOperator.IS_EMPTY, m["f"]),
    ),
    (
        _p(r"(?P<f>" + _IDENT + r") && (?P=f) !==? (?:\"\"|'')"),
        lambda m: Predicate(ConditionOperator.IS_NOT_EMPTY, m["f"]),
    ),
    # Ranges
    (
        _p(r"(?P<f>" + _IDENT + r") >= (?P<lo>" + _SCALAR + r") && (?P=f) <= (?P<hi>" + _SCALAR + r")"),
        lambda m: Predicate(ConditionOperator.BETWEEN, m["f"], (_scalar(m["lo"]), _scalar(m["hi"]))),
    ),
    (
        _p(r"(?P<f>" + _IDENT + r") < (?P<lo>" + _SCALAR + r") \|\| (?P=f) > (?P<hi>" + _SCALAR + r")"),
        lambda m: Predicate(ConditionOperator.NOT_BETWEEN, m["f"], (_scalar(m["lo"]), _scalar(m["hi"]))),
    ),
    # Array helpers
    (
        _p(r"(?P<f>" + _IDENT + r")\.some\( (?P<x>\w+) => (?P<a>" + _ARRAY + r")\.includes\( (?P=x) \) \)"),
        lambda m: Predicate(ConditionOperator.CONTAINS_ANY, m["f"], _array(m["a"])),
    ),
    (
        _p(r"(?P<a>" + _ARRAY + r")\.every\( (?P<x>\w+) => (?P<f>" + _IDENT + r")\.includes\( (?P=x) \) \)"),
        lambda m: Predicate(ConditionOperator.CONTAINS_ALL, m["f"], _array(m["a"])),
    ),
    (
        _p(r"! (?P<f>" + _IDENT + r")\.some\( (?P<x>\w+) => (?P<a>" + _ARRAY + r")\.includes\( (?P=x) \) \)"),
        lambda m: Predicate(ConditionOperator.CONTAINS_NONE, m["f"], _array(m["a"])),
    ),
    # Dates
    (
        _p(_NEW_DATE_F + r"\.toDateString\( \) === new Date\( \)\.toDateString\( \)"),
        lambda m: Predicate(ConditionOperator.IS_TODAY, m["f"]),
    ),
    (
        _p(_NEW_DATE_F + r"\.toDateString\( \) (?P<op>===|!==) " + _NEW_DATE_V + r"\.toDateString\( \)"),
        lambda m: Predicate(
            ConditionOperator.DATE_EQUALS if m["op"] == "===" else ConditionOperator.DATE_NOT_EQUALS,
            m["f"],
            _scalar(m["v"]),
        ),
    ),
    (
        _p(_NEW_DATE_F + r" < new Date\( \)"),
        lambda m: Predicate(ConditionOperator.IS_PAST_DATE, m["f"]),
    ),
    (
        _p(_NEW_DATE_F + r" > new Date\( \)"),
        lambda m: Predicate(ConditionOperator.IS_FUTURE_DATE, m["f"]),
    ),
    (
        _p(
            _NEW_DATE_F + r" >= new Date\( (?P<lo>" + _SCALAR + r") \) && new Date\( (?P=f) \) <= "
            r"new Date\( (?P<hi>" + _SCALAR + r") \)"
        ),
        lambda m: Predicate(ConditionOperator.DATE_BETWEEN, m["f"], (_scalar(m["lo"]), _scalar(m["hi"]))),
    ),
    (
        _p(
            _NEW_DATE_F + r" < new Date\( (?P<lo>" + _SCALAR + r") \) \|\| new Date\( (?P=f) \) > "
            r"new Date\( (?P<hi>" + _SCALAR + r") \)"
        ),
        lambda m: Predicate(ConditionOperator.DATE_NOT_BETWEEN, m["f"], (_scalar(m["lo"]), _scalar(m["hi"]))),
    ),
    (
        _p(_NEW_DATE_F + r" (?P<op>>=|<=|>|<) " + _NEW_DATE_V),
        lambda m: Predicate(_DATE_CMP[m["op"]], m["f"], _scalar(m["v"])),
    ),
    (
        _p(r"\( \) => \{ const d = " + _NEW_DATE_F + r" ; const day = d\.getDay\( \) ; "
           r"return day >= 1 && day <= 5 ;? \}"),
        lambda m: Predicate(ConditionOperator.IS_WEEKDAY, m["f"]),
    ),
    (
        _p(r"\( \) => \{ const d = " + _NEW_DATE_F + r" ; const day = d\.getDay\( \) ; "
           r"return day === 0 \|\| day === 6 ;? \}"),
        lambda m: Predicate(ConditionOperator.IS_WEEKEND, m["f"]),
    ),
    (
        _p(_NEW_DATE_F + r"\.getDay\( \) ===? (?P<v>" + _NUMBER + r")"),
        lambda m: Predicate(ConditionOperator.DAY_OF_WEEK_EQUALS, m["f"], _number(m["v"])),
    ),
    (
        _p(r"\( " + _NEW_DATE_F + r"\.getMonth\( \) \+ 1 \) ===? (?P<v>" + _NUMBER + r")"),
        lambda m: Predicate(ConditionOperator.MONTH_EQUALS, m["f"], _number(m["v"])),
    ),
    (
        _p(_NEW_DATE_F + r"\.getFullYear\( \) ===? (?P<v>" + _NUMBER + r")"),
        lambda m: Predicate(ConditionOperator.YEAR_EQUALS, m["f"], _number(m["v"])),
    ),
    (
        _p(_AGE + r" (?P<op>>|<) (?P<v>" + _NUMBER + r")"),
        lambda m: Predicate(
            ConditionOperator.AGE_GREATER_THAN if m["op"] == ">" else ConditionOperator.AGE_LESS_THAN,
            m["f"],
            _number(m["v"]),
        ),
    ),
]

# The IIFE forms are written as "(() => {...})()"; unwrap before matching.
_IIFE = re.compile(r"^\(\s*(\(\s*\)\s*=>\s*\{.*\})\s*\)\s*\(\s*\)$")


def match_idiom(text: str) -> Optional[Expression]:
    """Return the Predicate for a whole-string idiom, or None."""
    candidate = text
    wrapped = _IIFE.match(candidate)
    if wrapped:
        candidate = wrapped.group(1)
    for pattern, build in _IDIOMS:
        m = pattern.fullmatch(candidate)
        if m:
            return build(m)
    return None


# =============================================================================
# TOKENIZER
# =============================================================================

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<string>" + _STRING + r")"
    r"|(?P<number>\d+(?:\.\d*)?|\.\d+)"
    r"|(?P<op>===|!==|==|!=|>=|<=|&&|\|\||[<>!()\[\],.\-])"
    r"|(?P<ident>[A-Za-z_$][\w$]*)"
    r")"
)


def _tokenize(text: str) -> List[Tuple[str, str]]:
    """Split an expression into (kind, text) tokens."""
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise ExpressionSyntaxError(f"Unexpected character at {pos}: {text[pos:pos + 10]!r}")
        kind = m.lastgroup
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    if not tokens:
        raise ExpressionSyntaxError("Empty expression")
    return tokens


# =============================================================================
# RECURSIVE DESCENT
# =============================================================================

_CMP_OPS = {op.value: op for op in ComparisonOperator}
_FUNCTION_OPERATORS = {
    op.value: op for op in ConditionOperator if re.fullmatch(r"[A-Za-z]+", op.value)
}
_METHODS = {
    "includes": ConditionOperator.CONTAINS,
    "startsWith": ConditionOperator.STARTS_WITH,
    "endsWith": ConditionOperator.ENDS_WITH,
}
_KEYWORD_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}

MAX_NESTING = 100


class _Parser:
    """Token cursor with one method per grammar rule."""

    def __init__(self, tokens: List[Tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self, offset: int = 0) -> Optional[Tuple[str, str]]:
        index = self.pos + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def at(self, text: str, kind: Optional[str] = None) -> bool:
        token = self.peek()
        return token is not None and token[1] == text and (kind is None or token[0] == kind)

    def advance(self) -> Tuple[str, str]:
        token = self.peek()
        if token is None:
            raise ExpressionSyntaxError("Unexpected end of expression")
        self.pos += 1
        return token

    def expect(self, text: str) -> None:
        token = self.advance()
        if token[1] != text:
            raise ExpressionSyntaxError(f"Expected {text!r}, got {token[1]!r}")

    def descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise ExpressionSyntaxError(f"Expression nested deeper than {MAX_NESTING} levels")

    def expect_ident(self) -> str:
        kind, text = self.advance()
        if kind != "ident":
            raise ExpressionSyntaxError(f"Expected identifier, got {text!r}")
        return text

    # -- grammar -----------------------------------------------------------

    def parse(self) -> Expression:
        expr = self.or_expr()
        if self.pos < len(self.tokens):
            raise ExpressionSyntaxError(f"Unexpected tokens after expression: {self.tokens[self.pos:]}")
        return expr

    def or_expr(self) -> Expression:
        left = self.and_expr()
        while self.at("||") or self.at("or", "ident"):
            self.advance()
            right = self.and_expr()
            left = LogicalExpression(LogicalOperator.OR, left, right)
        return left

    def and_expr(self) -> Expression:
        left = self.not_expr()
        while self.at("&&") or self.at("and", "ident"):
            self.advance()
            right = self.not_expr()
            left = LogicalExpression(LogicalOperator.AND, left, right)
        return left

    def not_expr(self) -> Expression:
        if self.at("not", "ident"):
            self.advance()
            self.descend()
            operand = self.not_expr()
            self.depth -= 1
            return NotExpression(operand)
        return self.comparison()

    def comparison(self) -> Expression:
        left = self.unary()
        token = self.peek()
        if token is not None and token[0] == "op" and token[1] in _CMP_OPS:
            self.advance()
            right = self.unary()
            return Comparison(_CMP_OPS[token[1]], left, right)
        return left

    def unary(self) -> Expression:
        if self.at("!", "op"):
            self.advance()
            self.descend()
            operand = self.unary()
            self.depth -= 1
            return NotExpression(operand)
        return self.value()

    def value(self) -> Expression:
        if self.at("-", "op"):
            self.advance()
            kind, text = self.advance()
            if kind != "number":
                raise ExpressionSyntaxError(f"Expected number after '-', got {text!r}")
            return Literal(-_number(text))
        return self.primary()

    def primary(self) -> Expression:
        kind, text = self.advance()

        if kind == "string":
            return Literal(_unquote(text))
        if kind == "number":
            return Literal(_number(text))
        if text == "(":
            self.descend()
            expr = self.or_expr()
            self.expect(")")
            self.depth -= 1
            return expr
        if text == "[":
            return self.method_suffix(Literal(self.array_items()))
        if kind != "ident":
            raise ExpressionSyntaxError(f"Unexpected token: {text!r}")

        if text in _KEYWORD_LITERALS:
            return Literal(_KEYWORD_LITERALS[text])
        if text == "new":
            return self.regexp_test()
        if text in _FUNCTION_OPERATORS and self.at("("):
            return self.operator_call(_FUNCTION_OPERATORS[text])

        name = text
        while self.at(".") and self.peek(1) is not None and self.peek(1)[0] == "ident":
            if self.peek(1)[1] in _METHODS and self.peek(2) is not None and self.peek(2)[1] == "(":
                break
            self.advance()
            name = f"{name}.{self.advance()[1]}"
        return self.method_suffix(FieldRef(name))

    def array_items(self) -> Tuple[Any, ...]:
        items = []
        while not self.at("]"):
            item = self.value()
            if not isinstance(item, Literal):
                raise ExpressionSyntaxError("Array literals may only contain constants")
            items.append(item.value)
            if not self.at("]"):
                self.expect(",")
        self.expect("]")
        return tuple(items)

    def method_suffix(self, receiver: Expression) -> Expression:
        if not self.at("."):
            return receiver
        self.advance()
        method = self.expect_ident()
        if method not in _METHODS:
            raise ExpressionSyntaxError(f"Unsupported method: {method}")
        self.expect("(")
        argument = self.value()
        self.expect(")")

        if isinstance(receiver, Literal) and isinstance(receiver.value, tuple):
            if method != "includes" or not isinstance(argument, FieldRef):
                raise ExpressionSyntaxError("Only [..].includes(field) is supported on arrays")
            return Predicate(ConditionOperator.IN, argument.name, receiver.value)

        if isinstance(receiver, FieldRef) and isinstance(argument, Literal):
            return Predicate(_METHODS[method], receiver.name, argument.value)

        raise ExpressionSyntaxError(f"Unsupported call of {method}")

    def operator_call(self, operator: ConditionOperator) -> Expression:
        self.expect("(")
        field_name = self.expect_ident()
        while self.at(".") and self.peek(1) is not None and self.peek(1)[0] == "ident":
            self.advance()
            field_name = f"{field_name}.{self.advance()[1]}"
        args = []
        while self.at(","):
            self.advance()
            arg = self.value()
            if not isinstance(arg, Literal):
                raise ExpressionSyntaxError(f"{operator.value}() arguments must be constants")
            args.append(arg.value)
        self.expect(")")

        if operator in UNARY_OPERATORS:
            if args:
                raise ExpressionSyntaxError(f"{operator.value}() takes only a field")
            return Predicate(operator, field_name)
        if operator in RANGE_OPERATORS:
            if len(args) == 1 and isinstance(args[0], tuple) and len(args[0]) == 2:
                return Predicate(operator, field_name, args[0])
            if len(args) != 2:
                raise ExpressionSyntaxError(f"{operator.value}() needs a minimum and a maximum")
            return Predicate(operator, field_name, tuple(args))
        if len(args) != 1:
            raise ExpressionSyntaxError(f"{operator.value}() needs exactly one value")
        return Predicate(operator, field_name, args[0])

    def regexp_test(self) -> Expression:
        if self.expect_ident() != "RegExp":
            raise ExpressionSyntaxError("Only 'new RegExp(...)' is supported")
        self.expect("(")
        kind, pattern = self.advance()
        if kind != "string":
            raise ExpressionSyntaxError("RegExp pattern must be a string literal")
        self.expect(")")
        self.expect(".")
        if self.expect_ident() != "test":
            raise ExpressionSyntaxError("Only RegExp(...).test(field) is supported")
        self.expect("(")
        target = self.primary()
        self.expect(")")
        if not isinstance(target, FieldRef):
            raise ExpressionSyntaxError("RegExp(...).test() needs a field")
        return Predicate(ConditionOperator.MATCHES, target.name, _unquote(pattern))


@functools.lru_cache(maxsize=512)
def parse_expression(text: str) -> Expression:
    """
    Parse a condition string into an Expression AST.

    Args:
        text: Condition string, e.g. ``age >= 18 && country == "NZ"``

    Returns:
        Expression AST (immutable, safe to cache)

    Raises:
        ExpressionSyntaxError: If the string is empty or outside the grammar
    """
    cleaned = sanitize_expression(text)
    if not cleaned:
        raise ExpressionSyntaxError("Empty expression")

    idiom = match_idiom(cleaned)
    if idiom is not None:
        return idiom

    return _Parser(_tokenize(cleaned)).parse()


__all__ = [
    "ExpressionSyntaxError",
    "sanitize_expression",
    "match_idiom",
    "parse_expression",
]
