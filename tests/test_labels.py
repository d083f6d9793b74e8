"""Tests for human-readable condition labels."""

from surveyflow.labels import describe_condition
from surveyflow.model import Block


COLOR = Block(
    type="radio",
    field_name="color",
    attributes={"options": [{"value": "r", "label": "Red"}, {"value": "b", "label": "Blue"}]},
)


def test_comparison():
    assert describe_condition("age < 18") == "age Less than 18"
    assert describe_condition("age >= 18") == "age Greater than or equal 18"


def test_option_labels_resolved():
    assert describe_condition('color == "r"', [COLOR]) == 'color Equals "Red"'


def test_unknown_option_value_kept():
    assert describe_condition('color == "g"', [COLOR]) == "color Equals g"


def test_list_values():
    assert describe_condition('["r", "b"].includes(color)', [COLOR]) == 'color In array "Red", "Blue"'


def test_range_values():
    assert describe_condition("age >= 18 && age <= 65") == "age Between 18 and 65"


def test_empty_checks():
    assert describe_condition('!email || email === ""') == "email is empty"
    assert describe_condition("email && email !== ''") == "email is not empty"


def test_logical_and_negation():
    assert describe_condition("a == 1 || b == 2") == "a Equals 1 or b Equals 2"
    assert describe_condition("!(a == 1)") == "not (a Equals 1)"


def test_unary_date_operator():
    assert describe_condition("isWeekend(visit)") == "visit Is weekend"


def test_unparseable_returned_raw():
    assert describe_condition("age >") == "age >"


def test_empty_condition():
    assert describe_condition(None) == ""
    assert describe_condition("") == ""
