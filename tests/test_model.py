"""
Tests for the survey model.

These tests verify:
    - Building a survey page by page
    - Block keys (uuid or positional)
    - Reference resolution for pages and blocks
    - Rule identity helpers
"""

import pytest

from surveyflow.examples import build_age_screener_survey
from surveyflow.model import Block, NavigationRule, Survey


class TestNavigationRule:

    def test_defaults(self):
        rule = NavigationRule("age < 18", "minor-page")
        assert not rule.is_page
        assert not rule.is_default

    def test_is_submit(self):
        assert NavigationRule("true", "submit").is_submit
        assert not NavigationRule("true", "Submit").is_submit

    def test_signature_ignores_surrounding_whitespace(self):
        a = NavigationRule(" age < 18 ", "x")
        b = NavigationRule("age < 18", "y", is_page=True)
        assert a.signature() == b.signature() == ("age < 18", False)

    def test_signature_of_structured_condition(self):
        rule = NavigationRule({"field": "a", "operator": "isEmpty"}, "x", is_default=True)
        assert rule.signature()[1] is True
        assert NavigationRule(None, "x").signature() == ("", False)


class TestBlock:

    def test_display_name_precedence(self):
        assert Block(type="text", uuid="u", field_name="f", label="L").display_name == "f"
        assert Block(type="text", uuid="u", label="L").display_name == "L"
        assert Block(type="text", uuid="u").display_name == "u"


class TestSurveyBuilding:

    def test_add_page_default_name(self):
        survey = Survey(uuid="s")
        page = survey.add_page("p1")
        assert page.name == "p1"
        assert survey.page_ids == ["p1"]

    def test_duplicate_page(self):
        survey = Survey(uuid="s")
        survey.add_page("p1")
        with pytest.raises(ValueError):
            survey.add_page("p1")

    def test_positional_block_keys(self):
        survey = Survey(uuid="s")
        survey.add_page("p1")
        assert survey.add_block("p1", Block(type="text")) == "p1-block-0"
        assert survey.add_block("p1", Block(type="text", uuid="q")) == "q"
        assert survey.add_block("p1", Block(type="text")) == "p1-block-2"

    def test_duplicate_block_key(self):
        survey = Survey(uuid="s")
        survey.add_page("p1")
        survey.add_page("p2")
        survey.add_block("p1", Block(type="text", uuid="q"))
        with pytest.raises(ValueError):
            survey.add_block("p2", Block(type="text", uuid="q"))

    def test_unknown_page(self):
        with pytest.raises(KeyError):
            Survey(uuid="s").add_block("missing", Block(type="text"))


class TestLookup:

    @pytest.fixture
    def survey(self):
        return build_age_screener_survey()

    def test_block_order(self, survey):
        assert survey.block_order() == ["age", "guardian-consent", "employment", "comments"]

    def test_page_of(self, survey):
        assert survey.page_of("comments") == "adult"
        assert survey.page_of("nope") is None

    def test_find_page_by_uuid_then_name(self, survey):
        assert survey.find_page("minor") == "minor"
        assert survey.find_page("minor-page") == "minor"
        assert survey.find_page("Minor-Page") is None

    def test_find_block_by_uuid_field_then_label(self, survey):
        assert survey.find_block("guardian-consent") == "guardian-consent"
        assert survey.find_block("guardian_consent") == "guardian-consent"
        assert survey.find_block("How old are you?") == "age"
        assert survey.find_block("missing") is None

    def test_uuid_wins_over_field_name(self):
        survey = Survey(uuid="s")
        survey.add_page("p")
        survey.add_block("p", Block(type="text", uuid="a", field_name="b"))
        survey.add_block("p", Block(type="text", uuid="b", field_name="c"))
        assert survey.find_block("b") == "b"

    def test_field_names(self, survey):
        assert survey.field_names() == ["age", "guardian_consent", "employment", "comments"]

    def test_blocks_in(self, survey):
        assert [b.uuid for b in survey.blocks_in("adult")] == ["employment", "comments"]
