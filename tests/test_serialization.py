"""
Tests for serialization and deserialization of surveys and flow graphs.

These tests ensure lossless JSON/YAML round-trip using the explicit
serialization functions in `surveyflow.serialization`, and that the looser
authoring shapes are imported the documented way.
"""

import pytest

from surveyflow.examples import build_age_screener_survey
from surveyflow.serialization import (
    SurveyFormatError,
    block_from_dict,
    block_to_dict,
    graph_from_dict,
    graph_from_json,
    graph_to_dict,
    graph_to_json,
    load_survey,
    survey_from_dict,
    survey_from_json,
    survey_from_yaml,
    survey_to_dict,
    survey_to_json,
    survey_to_yaml,
)
from surveyflow.transform import to_graph


class TestRoundTrip:

    def test_dict(self):
        survey = build_age_screener_survey()
        assert survey_from_dict(survey_to_dict(survey)) == survey

    def test_json(self):
        survey = build_age_screener_survey()
        assert survey_from_json(survey_to_json(survey)) == survey

    def test_yaml(self):
        survey = build_age_screener_survey()
        assert survey_from_yaml(survey_to_yaml(survey)) == survey

    def test_graph_json(self):
        graph = to_graph(build_age_screener_survey())
        assert graph_from_json(graph_to_json(graph)) == graph

    def test_graph_dict_shape(self):
        data = graph_to_dict(to_graph(build_age_screener_survey()))
        node = data["nodes"][0]
        assert set(node) == {"id", "type", "position", "size", "data"}
        assert node["position"] == {"x": 0.0, "y": 0.0}
        assert data["edges"][0]["type"] == "start-entry"


class TestCanonicalExport:

    def test_pages_are_sets_under_root_items(self):
        data = survey_to_dict(build_age_screener_survey())
        assert data["type"] == "section"
        assert [p["type"] for p in data["items"]] == ["set", "set", "set"]
        assert [p["name"] for p in data["items"]] == ["Page1", "minor-page", "adult-page"]

    def test_rule_flags(self):
        data = survey_to_dict(build_age_screener_survey())
        rules = data["items"][0]["items"][0]["navigationRules"]
        assert rules[0] == {"condition": "age < 18", "target": "minor-page", "isPage": True}
        assert rules[1]["isDefault"] is True

    def test_block_attributes_preserved(self):
        d = {"uuid": "q", "type": "radio", "fieldName": "q", "options": [{"value": 1}], "required": True}
        block = block_from_dict(d)
        assert block.attributes == {"options": [{"value": 1}], "required": True}
        assert block_to_dict(block) == d


class TestLooseImport:

    def test_root_blocks_form_a_page(self):
        survey = survey_from_dict({
            "uuid": "root",
            "name": "Loose",
            "items": [{"uuid": "q1", "type": "textfield"}, {"uuid": "q2", "type": "textfield"}],
        })
        assert survey.page_ids == ["root"]
        assert survey.pages["root"].block_keys == ["q1", "q2"]

    def test_blocks_next_to_sets_ignored(self):
        with pytest.warns(UserWarning, match="ignored"):
            survey = survey_from_dict({
                "uuid": "root",
                "items": [
                    {"uuid": "s1", "type": "set", "name": "A", "items": [{"uuid": "q1", "type": "textfield"}]},
                    {"uuid": "stray", "type": "textfield"},
                ],
            })
        assert survey.page_ids == ["s1"]
        assert "stray" not in survey.blocks

    def test_nodes_and_sections(self):
        with pytest.warns(UserWarning, match="dangling"):
            survey = survey_from_dict({
                "uuid": "root",
                "nodes": [
                    {"uuid": "s1", "type": "set", "name": "A", "items": []},
                    "dangling",
                    {"uuid": "sec", "type": "section", "items": [{"uuid": "s2", "type": "set", "items": []}]},
                ],
            })
        assert survey.page_ids == ["s1", "dangling", "s2"]
        assert survey.pages["dangling"].name == "Page 2"

    def test_blocks_without_uuid(self):
        survey = survey_from_dict({
            "uuid": "root",
            "items": [{"uuid": "p", "type": "set", "items": [{"type": "textfield"}, {"type": "textfield"}]}],
        })
        assert survey.pages["p"].block_keys == ["p-block-0", "p-block-1"]


class TestMalformed:

    @pytest.mark.parametrize("document", [
        [],
        {"name": "no uuid"},
        {"uuid": "r", "items": [{"uuid": "q"}]},
        {"uuid": "r", "items": [{"uuid": "q", "type": "text", "navigationRules": [{"condition": "x"}]}]},
        {"uuid": "r", "items": [{"uuid": "q", "type": "text", "navigationRules": "nope"}]},
        {"uuid": "r", "items": "nope"},
        {"uuid": "r", "nodes": [42]},
    ])
    def test_rejected(self, document):
        with pytest.raises(SurveyFormatError):
            survey_from_dict(document)

    def test_duplicate_ids(self):
        with pytest.raises(SurveyFormatError):
            survey_from_dict({
                "uuid": "r",
                "items": [
                    {"uuid": "s", "type": "set", "items": []},
                    {"uuid": "s", "type": "set", "items": []},
                ],
            })

    def test_invalid_json_and_yaml(self):
        with pytest.raises(SurveyFormatError):
            survey_from_json("{not json")
        with pytest.raises(SurveyFormatError):
            survey_from_yaml("a: [unclosed")

    def test_malformed_graph(self):
        with pytest.raises(SurveyFormatError):
            graph_from_dict({"nodes": [{"id": "x", "type": "bogus"}]})
        with pytest.raises(SurveyFormatError):
            graph_from_dict({"edges": [{"id": "e"}]})

    def test_invalid_graph_json(self):
        with pytest.raises(SurveyFormatError, match="Invalid JSON"):
            graph_from_json("{not json")


class TestGraphCopies:

    def test_exported_payloads_are_copies(self):
        graph = to_graph(build_age_screener_survey())
        data = graph_to_dict(graph)
        data["nodes"][0]["data"]["name"] = "changed"
        data["edges"][0]["data"]["extra"] = True
        assert graph.nodes[0].payload["name"] == "Age Screener"
        assert "extra" not in graph.edges[0].payload

    def test_imported_payloads_are_copies(self):
        data = graph_to_dict(to_graph(build_age_screener_survey()))
        graph = graph_from_dict(data)
        data["nodes"][0]["data"]["name"] = "changed"
        assert graph.nodes[0].payload["name"] == "Age Screener"


def test_load_survey_by_extension(tmp_path):
    survey = build_age_screener_survey()
    yaml_path = tmp_path / "survey.yaml"
    yaml_path.write_text(survey_to_yaml(survey), encoding="utf-8")
    json_path = tmp_path / "survey.json"
    json_path.write_text(survey_to_json(survey), encoding="utf-8")
    assert load_survey(str(yaml_path)) == survey
    assert load_survey(str(json_path)) == survey
