"""
Tests for the Flow Analyzer.

Tests verify that the analyzer correctly:
    - Finds navigation cycles over conditional edges only
    - Reports each cycle once, whichever node the search starts from
    - Flags default-rule problems and unresolved targets
    - Collects referenced and undefined fields
    - Measures condition complexity
"""

import pytest

from surveyflow.analyzer import analyze_flow, condition_metrics, find_cycle_paths, find_cycles
from surveyflow.examples import build_age_screener_survey, build_loop_survey
from surveyflow.model import Block, NavigationRule, Survey
from surveyflow.parser import ExpressionSyntaxError
from surveyflow.transform import to_graph


def _survey(*blocks):
    survey = Survey(uuid="s", name="Test")
    survey.add_page("p1", "Page 1")
    survey.add_page("p2", "Page 2")
    for page_id, block in blocks:
        survey.add_block(page_id, block)
    return survey


class TestCycles:

    def test_three_block_loop_reported_once(self):
        """A -> B -> C -> A is one cycle, not three rotations of it."""
        cycles = find_cycles(to_graph(build_loop_survey()))
        assert cycles == ["q1 → q2 → q3 → q1"]

    def test_paths_start_at_smallest_id(self):
        paths = find_cycle_paths(to_graph(build_loop_survey()))
        assert paths == [["q1", "q2", "q3"]]

    def test_custom_separator(self):
        assert find_cycles(to_graph(build_loop_survey()), " -> ") == ["q1 -> q2 -> q3 -> q1"]

    def test_sequential_edges_never_loop(self):
        assert find_cycles(to_graph(build_age_screener_survey())) == []

    def test_page_target_continues_at_first_block(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule("a == 1", "Page 2", is_page=True)])),
            ("p2", Block(type="textfield", uuid="b", field_name="b",
                         navigation_rules=[NavigationRule("b == 1", "a")])),
        )
        assert find_cycles(to_graph(survey)) == ["a → b → a"]

    def test_self_loop(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule("a == 'again'", "a")])),
        )
        assert find_cycles(to_graph(survey)) == ["a → a"]

    def test_two_distinct_cycles(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a", navigation_rules=[
                NavigationRule("a == 1", "b"),
                NavigationRule("a == 2", "c"),
            ])),
            ("p1", Block(type="textfield", uuid="b", field_name="b",
                         navigation_rules=[NavigationRule("true", "a")])),
            ("p1", Block(type="textfield", uuid="c", field_name="c",
                         navigation_rules=[NavigationRule("true", "a")])),
        )
        assert sorted(find_cycles(to_graph(survey))) == ["a → b → a", "a → c → a"]


class TestConditionMetrics:

    def test_simple(self):
        metrics = condition_metrics("age < 18")
        assert metrics.field_references == {"age"}
        assert metrics.depth == 1

    def test_nested(self):
        metrics = condition_metrics("(a == 1 || b == 2) && !c")
        assert metrics.field_references == {"a", "b", "c"}
        assert metrics.depth == 3

    def test_structured(self):
        metrics = condition_metrics([
            {"field": "x", "operator": ">", "value": 1},
            {"field": "y", "operator": "isEmpty"},
        ])
        assert metrics.field_references == {"x", "y"}

    def test_invalid_raises(self):
        with pytest.raises(ExpressionSyntaxError):
            condition_metrics("a ==")


class TestFlowReport:

    def test_clean_survey(self):
        report = analyze_flow(build_age_screener_survey())
        assert report.total_pages == 3
        assert report.total_blocks == 4
        assert report.total_rules == 3
        assert report.blocks_with_rules == 2
        assert report.conditional_edges == 3
        assert report.referenced_fields == {"age", "guardian_consent"}
        assert not report.undefined_fields
        assert not report.has_cycles
        assert report.warnings == []

    def test_cycle_warning(self):
        report = analyze_flow(build_loop_survey())
        assert report.has_cycles
        assert "Navigation cycle: q1 → q2 → q3 → q1" in report.warnings

    def test_multiple_and_misplaced_defaults(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a", navigation_rules=[
                NavigationRule("true", "Page 2", is_page=True, is_default=True),
                NavigationRule("a == 1", "submit"),
                NavigationRule("true", "submit", is_default=True),
            ])),
        )
        report = analyze_flow(survey)
        assert report.multiple_defaults == ["a"]
        assert report.misplaced_defaults == [("a", 0)]

    def test_unresolved_target(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule("a == 1", "Nowhere", is_page=True)])),
        )
        report = analyze_flow(survey)
        assert report.unresolved_targets == [("a", 0, "Nowhere")]

    def test_invalid_condition(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule("a ==", "submit")])),
        )
        report = analyze_flow(survey)
        assert report.invalid_conditions == [("a", 0, "a ==")]

    def test_rule_without_condition_never_matches(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule(None, "submit")])),
        )
        assert analyze_flow(survey).never_matching == [("a", 0)]

    def test_undefined_fields(self):
        survey = _survey(
            ("p1", Block(type="textfield", uuid="a", field_name="a",
                         navigation_rules=[NavigationRule("ghost == 1", "submit")],
                         visible_if="phantom.value > 2")),
        )
        report = analyze_flow(survey)
        assert report.undefined_fields == {"ghost", "phantom.value"}

    def test_no_pages_warning(self):
        report = analyze_flow(Survey(uuid="empty"))
        assert "Survey has no pages" in report.warnings
