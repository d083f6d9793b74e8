"""
Tests for the survey tree <-> flow graph transform.

The survey tree is the source of truth: the graph is derived from it, edits
on the graph are folded back, and a full round trip must not lose rules.
"""

import pytest

from surveyflow.examples import build_age_screener_survey
from surveyflow.graph import EdgeKind, GraphError, NodeKind, START_NODE_ID, SUBMIT_NODE_ID
from surveyflow.model import Block, NavigationRule, Survey
from surveyflow.transform import (
    check_consistency,
    connect_rule,
    from_graph,
    remove_edge_rule,
    retarget_edge,
    rule_target_node,
    target_info,
    to_graph,
)


def _edge_ids(graph, kind):
    return [e.id for e in graph.edges_of(kind)]


class TestToGraph:
    """Node and edge derivation."""

    def test_nodes(self):
        graph = to_graph(build_age_screener_survey())
        ids = [n.id for n in graph.nodes]
        assert ids[0] == START_NODE_ID
        assert ids[-1] == SUBMIT_NODE_ID
        assert len(graph.nodes_of(NodeKind.PAGE)) == 3
        assert len(graph.nodes_of(NodeKind.BLOCK)) == 4
        graph.validate()

    def test_block_payload_carries_page(self):
        graph = to_graph(build_age_screener_survey())
        node = graph.get_node("employment")
        assert node.parent_id == "adult"
        assert node.payload["index"] == 0
        assert node.payload["fieldName"] == "employment"

    def test_structural_edges(self):
        graph = to_graph(build_age_screener_survey())
        assert _edge_ids(graph, EdgeKind.START_ENTRY) == ["start-node-page-1"]
        assert "page-1-age" in _edge_ids(graph, EdgeKind.PAGE_ENTRY)
        assert "page-1-page-to-page-minor" in _edge_ids(graph, EdgeKind.PAGE_TO_PAGE)
        sequential = _edge_ids(graph, EdgeKind.SEQUENTIAL)
        assert "age-sequential-guardian-consent" in sequential
        assert "employment-sequential-comments" in sequential
        assert "comments-sequential-submit" in sequential

    def test_sequential_fallback_flag(self):
        graph = to_graph(build_age_screener_survey())
        edge = graph.get_edge("age-sequential-guardian-consent")
        assert edge.payload["fallback"] is True
        assert edge.payload["label"] == "Default"
        assert edge.payload["cross_page"] is True
        assert graph.get_edge("employment-sequential-comments").payload["fallback"] is False

    def test_conditional_edges(self):
        graph = to_graph(build_age_screener_survey())
        edge = graph.get_edge("age-nav-0")
        assert edge.source == "age"
        assert edge.target == "minor"
        assert edge.payload["condition"] == "age < 18"
        assert edge.payload["rule_index"] == 0
        assert graph.get_edge("age-nav-1").payload["is_default"] is True
        assert graph.get_edge("guardian-consent-submit-0").target == SUBMIT_NODE_ID

    def test_edge_labels(self):
        graph = to_graph(build_age_screener_survey())
        assert graph.get_edge("age-nav-0").payload["label"] == "age Less than 18"
        assert graph.get_edge("guardian-consent-submit-0").payload["label"] == 'guardian_consent Equals "No"'

    def test_unresolved_target_skipped(self):
        survey = build_age_screener_survey()
        survey.blocks["comments"].navigation_rules = [NavigationRule("true", "nowhere")]
        graph = to_graph(survey)
        assert not graph.outgoing("comments", EdgeKind.CONDITIONAL)
        assert survey.blocks["comments"].navigation_rules

    def test_blocks_without_uuid_keyed_by_position(self):
        survey = Survey(uuid="s")
        survey.add_page("p", "P")
        survey.add_block("p", Block(type="textfield"))
        survey.add_block("p", Block(type="textfield"))
        graph = to_graph(survey)
        assert graph.get_node("p-block-0") is not None
        assert graph.get_edge("p-block-0-sequential-p-block-1") is not None

    def test_empty_survey(self):
        graph = to_graph(Survey(uuid="empty"))
        assert [n.id for n in graph.nodes] == [START_NODE_ID, SUBMIT_NODE_ID]
        assert graph.edges == []

    def test_survey_not_modified(self):
        survey = build_age_screener_survey()
        before = repr(survey)
        to_graph(survey)
        assert repr(survey) == before

    def test_graph_edits_do_not_reach_survey(self):
        """Block payloads are copies: editing the graph leaves the tree alone."""
        survey = Survey(uuid="s")
        survey.add_page("p")
        condition = {"field": "colour", "operator": "in", "value": ["red"]}
        survey.add_block("p", Block(
            type="radio",
            uuid="b",
            field_name="colour",
            attributes={"options": ["red"]},
            navigation_rules=[NavigationRule(condition, "submit")],
        ))
        before = repr(survey)

        graph = to_graph(survey)
        payload = graph.get_node("b").payload
        payload["options"].append("blue")
        payload["navigationRules"][0]["condition"]["value"].append("blue")

        assert survey.blocks["b"].attributes["options"] == ["red"]
        assert survey.blocks["b"].navigation_rules[0].condition["value"] == ["red"]
        assert repr(survey) == before


class TestFromGraph:
    """Folding a graph back into a survey."""

    def test_round_trip(self):
        survey = build_age_screener_survey()
        assert from_graph(to_graph(survey)) == survey

    def test_round_trip_with_positional_keys(self):
        survey = Survey(uuid="s", name="S")
        survey.add_page("p", "P")
        survey.add_block("p", Block(type="textfield", field_name="a"))
        survey.add_block("p", Block(
            type="textfield",
            field_name="b",
            navigation_rules=[NavigationRule("b == 1", "a")],
        ))
        assert from_graph(to_graph(survey)) == survey

    def test_rules_rebuilt_from_edges(self):
        graph = to_graph(build_age_screener_survey())
        graph.edges = [e for e in graph.edges if e.id != "age-nav-0"]
        survey = from_graph(graph)
        rules = survey.blocks["age"].navigation_rules
        assert len(rules) == 1
        assert rules[0].target == "adult-page"
        assert rules[0].is_default

    def test_block_order_follows_sequential_chain(self):
        graph = to_graph(build_age_screener_survey())
        # Swap the two adult-page blocks in node order; edges still say employment first
        nodes = graph.nodes
        i, j = [k for k, n in enumerate(nodes) if n.id in ("employment", "comments")]
        nodes[i], nodes[j] = nodes[j], nodes[i]
        survey = from_graph(graph)
        assert survey.pages["adult"].block_keys == ["employment", "comments"]

    def test_stray_block_appended(self, caplog):
        graph = to_graph(build_age_screener_survey())
        graph.edges = [e for e in graph.edges if e.id != "employment-sequential-comments"]
        survey = from_graph(graph)
        assert survey.pages["adult"].block_keys == ["employment", "comments"]
        assert "not on the page's sequential chain" in caplog.text


class TestIncrementalEdits:

    def test_connect_adds_rule(self):
        survey = build_age_screener_survey()
        graph = to_graph(survey)
        updated, changes = connect_rule(survey, graph, "employment", "comments", 'employment == "retired"')
        assert changes[0].action == "added"
        assert updated.blocks["employment"].navigation_rules[-1].target == "comments"
        assert not survey.blocks["employment"].navigation_rules

    def test_connect_same_signature_updates(self):
        survey = build_age_screener_survey()
        graph = to_graph(survey)
        updated, changes = connect_rule(survey, graph, "age", "adult", "age < 18")
        assert changes[0].action == "updated"
        assert changes[0].previous.target == "minor-page"
        rules = updated.blocks["age"].navigation_rules
        assert len(rules) == 2
        assert rules[0].target == "adult-page"
        assert rules[0].is_page

    def test_connect_to_submit(self):
        survey = build_age_screener_survey()
        updated, _ = connect_rule(survey, to_graph(survey), "comments", SUBMIT_NODE_ID, "true")
        assert updated.blocks["comments"].navigation_rules[0].is_submit

    def test_connect_from_page_rejected(self):
        survey = build_age_screener_survey()
        with pytest.raises(GraphError):
            connect_rule(survey, to_graph(survey), "adult", "minor", "true")

    def test_connect_to_start_rejected(self):
        survey = build_age_screener_survey()
        with pytest.raises(GraphError):
            connect_rule(survey, to_graph(survey), "age", START_NODE_ID, "true")

    def test_retarget(self):
        survey = build_age_screener_survey()
        graph = to_graph(survey)
        updated, changes = retarget_edge(survey, graph, "age-nav-0", "comments")
        assert changes[0].action == "updated"
        rule = updated.blocks["age"].navigation_rules[0]
        assert rule.target == "comments"
        assert not rule.is_page
        assert rule.condition == "age < 18"

    def test_retarget_non_conditional_is_noop(self):
        survey = build_age_screener_survey()
        updated, changes = retarget_edge(survey, to_graph(survey), "page-1-age", "comments")
        assert changes == []
        assert updated == survey

    def test_remove(self):
        survey = build_age_screener_survey()
        updated, changes = remove_edge_rule(survey, to_graph(survey), "age-nav-0")
        assert changes[0].action == "removed"
        assert [r.target for r in updated.blocks["age"].navigation_rules] == ["adult-page"]

    def test_edit_then_regraph_is_consistent(self):
        survey = build_age_screener_survey()
        updated, _ = retarget_edge(survey, to_graph(survey), "age-nav-0", "comments")
        assert check_consistency(updated, to_graph(updated)).is_consistent


class TestConsistency:

    def test_fresh_graph_is_consistent(self):
        survey = build_age_screener_survey()
        assert check_consistency(survey, to_graph(survey)).is_consistent

    def test_orphaned_rule_and_edge(self):
        survey = build_age_screener_survey()
        graph = to_graph(survey)
        graph.get_edge("age-nav-0").payload["condition"] = "age < 21"
        report = check_consistency(survey, graph)
        assert report.orphaned_rules == [("age", 0)]
        assert report.orphaned_edges == ["age-nav-0"]
        assert not report.is_consistent


def test_target_info():
    graph = to_graph(build_age_screener_survey())
    assert target_info(graph.get_node("minor")) == ("minor-page", True)
    assert target_info(graph.get_node("age")) == ("age", False)
    assert target_info(graph.get_node(SUBMIT_NODE_ID)) == ("submit", False)


def test_rule_target_node():
    survey = build_age_screener_survey()
    assert rule_target_node(survey, NavigationRule("x", "adult-page", is_page=True)) == "adult"
    assert rule_target_node(survey, NavigationRule("x", "How old are you?")) == "age"
    assert rule_target_node(survey, NavigationRule("x", "missing")) is None
