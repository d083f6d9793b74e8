"""
Serialization helpers for surveys and flow graphs.

The survey document format is the authoring tree:

    {uuid, type: "section", name?, items?: [Block | Page], nodes?: [Page | Section | uuid]}
    Page  = {uuid, type: "set", name, items: [Block]}
    Block = {uuid, type, fieldName?, label?, navigationRules?, visibleIf?, ...}

Export always writes the canonical shape (every page as a "set" under the
root's items). Import accepts the looser shapes authors produce.

JSON and YAML go through the same dict representation.
"""
from __future__ import annotations

import copy
import json
import os
import warnings
from typing import Any, Dict, List

import yaml

from surveyflow.graph import EdgeKind, FlowEdge, FlowGraph, FlowNode, NodeKind, Point, Size
from surveyflow.model import Block, NavigationRule, Survey


class SurveyFormatError(Exception):
    """Raised when a survey or graph document is malformed."""
    pass


_BLOCK_KEYS = ("uuid", "type", "fieldName", "label", "navigationRules", "visibleIf")


# =============================================================================
# RULES AND BLOCKS
# =============================================================================

def rule_to_dict(r: NavigationRule) -> Dict[str, Any]:
    d = {"condition": r.condition, "target": r.target}
    if r.is_page:
        d["isPage"] = True
    if r.is_default:
        d["isDefault"] = True
    return d


def rule_from_dict(d: Dict[str, Any]) -> NavigationRule:
    if not isinstance(d, dict) or "target" not in d:
        raise SurveyFormatError(f"Navigation rule needs a target: {d!r}")
    return NavigationRule(
        condition=d.get("condition"),
        target=str(d["target"]),
        is_page=bool(d.get("isPage", False)),
        is_default=bool(d.get("isDefault", False)),
    )


def block_to_dict(b: Block) -> Dict[str, Any]:
    d: Dict[str, Any] = {"uuid": b.uuid, "type": b.type}
    if b.field_name is not None:
        d["fieldName"] = b.field_name
    if b.label is not None:
        d["label"] = b.label
    if b.navigation_rules:
        d["navigationRules"] = [rule_to_dict(r) for r in b.navigation_rules]
    if b.visible_if is not None:
        d["visibleIf"] = b.visible_if
    for key, value in b.attributes.items():
        d.setdefault(key, value)
    return d


def block_from_dict(d: Dict[str, Any]) -> Block:
    if not isinstance(d, dict):
        raise SurveyFormatError(f"Block must be an object, got {type(d).__name__}")
    if not d.get("type"):
        raise SurveyFormatError(f"Block without a type: {d.get('uuid')!r}")
    rules = d.get("navigationRules") or []
    if not isinstance(rules, list):
        raise SurveyFormatError(f"navigationRules must be a list on block {d.get('uuid')!r}")
    return Block(
        type=d["type"],
        uuid=d.get("uuid"),
        field_name=d.get("fieldName"),
        label=d.get("label"),
        navigation_rules=[rule_from_dict(r) for r in rules],
        visible_if=d.get("visibleIf"),
        attributes={k: v for k, v in d.items() if k not in _BLOCK_KEYS},
    )


# =============================================================================
# SURVEY TREE
# =============================================================================

def _add_set(survey: Survey, node: Dict[str, Any]) -> None:
    page_id = node.get("uuid") or f"{survey.uuid}-page-{len(survey.page_ids)}"
    survey.add_page(page_id, node.get("name") or f"Page {len(survey.page_ids) + 1}")
    for item in node.get("items") or []:
        survey.add_block(page_id, block_from_dict(item))


def _add_items(survey: Survey, owner: Dict[str, Any], owner_id: str) -> None:
    items = owner.get("items") or []
    if not isinstance(items, list):
        raise SurveyFormatError(f"items must be a list on {owner_id!r}")
    sets = [i for i in items if isinstance(i, dict) and i.get("type") == "set"]
    loose = [i for i in items if not (isinstance(i, dict) and i.get("type") == "set")]

    for node in sets:
        _add_set(survey, node)

    if loose and sets:
        warnings.warn(
            f"{owner_id}: {len(loose)} block(s) next to pages are ignored",
            UserWarning,
        )
    elif loose:
        page_id = owner_id if owner_id not in survey.pages else f"{owner_id}-page-{len(survey.page_ids)}"
        survey.add_page(page_id, owner.get("name") or f"Page {len(survey.page_ids) + 1}")
        for item in loose:
            survey.add_block(page_id, block_from_dict(item))


def _add_nodes(survey: Survey, owner: Dict[str, Any]) -> None:
    for node in owner.get("nodes") or []:
        if isinstance(node, str):
            warnings.warn(f"Unresolved node reference {node!r}, adding an empty page", UserWarning)
            survey.add_page(node, f"Page {len(survey.page_ids) + 1}")
            continue
        if not isinstance(node, dict):
            raise SurveyFormatError(f"Unsupported node entry: {node!r}")
        if node.get("type") == "set":
            _add_set(survey, node)
        elif node.get("type") == "section":
            section_id = node.get("uuid") or f"{survey.uuid}-section-{len(survey.page_ids)}"
            _add_items(survey, node, section_id)
            _add_nodes(survey, node)
        else:
            warnings.warn(f"Skipping node of unknown type {node.get('type')!r}", UserWarning)


def survey_from_dict(d: Dict[str, Any]) -> Survey:
    """
    Build a Survey from the authoring tree.

    Raises:
        SurveyFormatError: If the document is not a section with a uuid, or a
            page/block inside it is malformed
    """
    if not isinstance(d, dict):
        raise SurveyFormatError("Survey document must be an object")
    if not d.get("uuid"):
        raise SurveyFormatError("Survey root needs a uuid")
    survey = Survey(uuid=d["uuid"], name=d.get("name") or "")
    try:
        _add_items(survey, d, d["uuid"])
        _add_nodes(survey, d)
    except ValueError as e:
        raise SurveyFormatError(str(e)) from e
    return survey


def survey_to_dict(s: Survey) -> Dict[str, Any]:
    return {
        "uuid": s.uuid,
        "type": "section",
        "name": s.name,
        "items": [
            {
                "uuid": page.uuid,
                "type": "set",
                "name": page.name,
                "items": [block_to_dict(s.blocks[key]) for key in page.block_keys],
            }
            for page in s.ordered_pages()
        ],
    }


def survey_to_json(s: Survey) -> str:
    return json.dumps(survey_to_dict(s), sort_keys=True)


def survey_from_json(s: str) -> Survey:
    try:
        d = json.loads(s)
    except json.JSONDecodeError as e:
        raise SurveyFormatError(f"Invalid JSON: {e}") from e
    return survey_from_dict(d)


def survey_to_yaml(s: Survey) -> str:
    return yaml.safe_dump(survey_to_dict(s), sort_keys=False)


def survey_from_yaml(s: str) -> Survey:
    try:
        d = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise SurveyFormatError(f"Invalid YAML: {e}") from e
    return survey_from_dict(d)


def load_survey(path: str) -> Survey:
    """Read a survey file; .yaml/.yml is parsed as YAML, anything else as JSON."""
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()
    if os.path.splitext(path)[1].lower() in (".yaml", ".yml"):
        return survey_from_yaml(content)
    return survey_from_json(content)


# =============================================================================
# FLOW GRAPH
# =============================================================================

def node_to_dict(n: FlowNode) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.kind.value,
        "position": {"x": n.position.x, "y": n.position.y},
        "size": {"width": n.size.width, "height": n.size.height},
        "data": copy.deepcopy(n.payload),
    }


def node_from_dict(d: Dict[str, Any]) -> FlowNode:
    position = d.get("position") or {}
    size = d.get("size") or {}
    return FlowNode(
        id=d["id"],
        kind=NodeKind(d["type"]),
        position=Point(position.get("x", 0.0), position.get("y", 0.0)),
        size=Size(size.get("width", 0.0), size.get("height", 0.0)),
        payload=copy.deepcopy(dict(d.get("data") or {})),
    )


def edge_to_dict(e: FlowEdge) -> Dict[str, Any]:
    return {
        "id": e.id,
        "source": e.source,
        "target": e.target,
        "type": e.kind.value,
        "data": copy.deepcopy(e.payload),
    }


def edge_from_dict(d: Dict[str, Any]) -> FlowEdge:
    return FlowEdge(
        id=d["id"],
        source=d["source"],
        target=d["target"],
        kind=EdgeKind(d["type"]),
        payload=copy.deepcopy(dict(d.get("data") or {})),
    )


def graph_to_dict(g: FlowGraph) -> Dict[str, Any]:
    return {
        "nodes": [node_to_dict(n) for n in g.nodes],
        "edges": [edge_to_dict(e) for e in g.edges],
    }


def graph_from_dict(d: Dict[str, Any]) -> FlowGraph:
    """
    Raises:
        SurveyFormatError: On missing keys or unknown node/edge types
    """
    try:
        nodes: List[FlowNode] = [node_from_dict(n) for n in d.get("nodes", [])]
        edges: List[FlowEdge] = [edge_from_dict(e) for e in d.get("edges", [])]
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise SurveyFormatError(f"Malformed flow graph: {e}") from e
    return FlowGraph(nodes=nodes, edges=edges)


def graph_to_json(g: FlowGraph) -> str:
    return json.dumps(graph_to_dict(g), sort_keys=True)


def graph_from_json(s: str) -> FlowGraph:
    try:
        d = json.loads(s)
    except json.JSONDecodeError as e:
        raise SurveyFormatError(f"Invalid JSON: {e}") from e
    return graph_from_dict(d)


__all__ = [
    "SurveyFormatError",
    "rule_to_dict",
    "rule_from_dict",
    "block_to_dict",
    "block_from_dict",
    "survey_to_dict",
    "survey_from_dict",
    "survey_to_json",
    "survey_from_json",
    "survey_to_yaml",
    "survey_from_yaml",
    "load_survey",
    "graph_to_dict",
    "graph_from_dict",
    "graph_to_json",
    "graph_from_json",
]
