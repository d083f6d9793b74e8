"""
Survey tree <-> flow graph transform.

to_graph() derives the editor graph from a survey. from_graph() folds an
edited graph back into a survey; navigation rules are rebuilt strictly from
the conditional edges. The incremental helpers (connect_rule, retarget_edge,
remove_edge_rule) apply a single editor action to a survey without a full
rebuild, and check_consistency() reports drift between the two views.

All functions return new objects; inputs are never modified.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from surveyflow.graph import (
    EdgeKind,
    FlowEdge,
    FlowGraph,
    FlowNode,
    GraphError,
    NodeKind,
    Size,
    START_NODE_ID,
    SUBMIT_NODE_ID,
)
from surveyflow.labels import describe_condition
from surveyflow.model import Block, NavigationRule, SUBMIT_TARGET, Survey
from surveyflow.serialization import block_from_dict, block_to_dict


logger = logging.getLogger(__name__)

# Initial sizes; the layout engine replaces them with content-aware estimates.
DEFAULT_PAGE_SIZE = (350.0, 250.0)
DEFAULT_BLOCK_SIZE = (140.0, 80.0)
DEFAULT_TERMINAL_SIZE = (100.0, 60.0)

_NODE_META_KEYS = ("page_id", "block_key", "index")


# =============================================================================
# TARGET RESOLUTION
# =============================================================================

def rule_target_node(survey: Survey, rule: NavigationRule) -> Optional[str]:
    """Graph node id a rule points at, or None when its target is unknown."""
    if rule.is_submit:
        return SUBMIT_NODE_ID
    if rule.is_page:
        return survey.find_page(rule.target)
    return survey.find_block(rule.target)


def _ref_matches_node(ref: Any, node: FlowNode) -> bool:
    if not isinstance(ref, str):
        return False
    if node.kind is NodeKind.SUBMIT:
        return ref == SUBMIT_TARGET
    if node.kind is NodeKind.PAGE:
        return ref in (node.id, node.payload.get("name"))
    if node.kind is NodeKind.BLOCK:
        p = node.payload
        return ref in (node.id, p.get("uuid"), p.get("fieldName"), p.get("label"))
    return False


def target_info(node: FlowNode) -> Tuple[str, bool]:
    """
    (target reference, is_page) for a rule pointing at ``node``.

    Pages are referenced by name (falling back to uuid), blocks by field
    name, then label, then uuid/key.

    Raises:
        GraphError: For start nodes, which cannot be rule targets
    """
    if node.kind is NodeKind.SUBMIT:
        return SUBMIT_TARGET, False
    if node.kind is NodeKind.PAGE:
        return node.payload.get("name") or node.id, True
    if node.kind is NodeKind.BLOCK:
        p = node.payload
        return p.get("fieldName") or p.get("label") or p.get("uuid") or node.id, False
    raise GraphError(f"Node {node.id} ({node.kind.value}) cannot be a navigation target")


def _edge_label(rule: NavigationRule, blocks: List[Block]) -> str:
    if rule.is_default and not rule.condition:
        return "Default"
    label = describe_condition(rule.condition, blocks)
    return label or "Default"


# =============================================================================
# TREE -> GRAPH
# =============================================================================

def _block_payload(block: Block, page_id: str, key: str, index: int) -> Dict[str, Any]:
    payload = copy.deepcopy(block_to_dict(block))
    payload["page_id"] = page_id
    payload["block_key"] = key
    payload["index"] = index
    return payload


def to_graph(survey: Survey) -> FlowGraph:
    """
    Build the flow graph of a survey.

    Nodes: start, one per page, one per block, submit.
    Edges:
        start -> first page                      (start-entry)
        page -> its first block                  (page-entry)
        page -> next page                        (page-to-page)
        block -> next block, last block -> submit (sequential, across pages)
        block -> rule target, one per rule       (conditional)

    Rules whose target does not resolve are left out of the graph (and
    logged); they stay untouched in the survey.
    """
    graph = FlowGraph()
    blocks = [b for _, _, b in survey.iter_blocks()]

    graph.add_node(FlowNode(
        id=START_NODE_ID,
        kind=NodeKind.START,
        size=Size(*DEFAULT_TERMINAL_SIZE),
        payload={"survey_uuid": survey.uuid, "name": survey.name},
    ))

    for page in survey.ordered_pages():
        graph.add_node(FlowNode(
            id=page.uuid,
            kind=NodeKind.PAGE,
            size=Size(*DEFAULT_PAGE_SIZE),
            payload={"uuid": page.uuid, "name": page.name, "block_count": len(page.block_keys)},
        ))
        for index, key in enumerate(page.block_keys):
            graph.add_node(FlowNode(
                id=key,
                kind=NodeKind.BLOCK,
                size=Size(*DEFAULT_BLOCK_SIZE),
                payload=_block_payload(survey.blocks[key], page.uuid, key, index),
            ))

    graph.add_node(FlowNode(id=SUBMIT_NODE_ID, kind=NodeKind.SUBMIT, size=Size(*DEFAULT_TERMINAL_SIZE)))

    # Structural edges
    if survey.page_ids:
        first = survey.page_ids[0]
        graph.add_edge(FlowEdge(
            id=f"{START_NODE_ID}-{first}",
            source=START_NODE_ID,
            target=first,
            kind=EdgeKind.START_ENTRY,
        ))

    for i, page_id in enumerate(survey.page_ids):
        keys = survey.pages[page_id].block_keys
        if keys:
            graph.add_edge(FlowEdge(
                id=f"{page_id}-{keys[0]}",
                source=page_id,
                target=keys[0],
                kind=EdgeKind.PAGE_ENTRY,
            ))
        if i + 1 < len(survey.page_ids):
            next_id = survey.page_ids[i + 1]
            graph.add_edge(FlowEdge(
                id=f"{page_id}-page-to-page-{next_id}",
                source=page_id,
                target=next_id,
                kind=EdgeKind.PAGE_TO_PAGE,
            ))

    order = list(survey.iter_blocks())
    for i, (page_id, key, block) in enumerate(order):
        fallback = bool(block.navigation_rules)
        payload = {
            "page_id": page_id,
            "fallback": fallback,
            "label": "Default" if fallback else None,
        }
        if i + 1 < len(order):
            next_page, next_key, _ = order[i + 1]
            payload["cross_page"] = next_page != page_id
            graph.add_edge(FlowEdge(
                id=f"{key}-sequential-{next_key}",
                source=key,
                target=next_key,
                kind=EdgeKind.SEQUENTIAL,
                payload=payload,
            ))
        else:
            payload["cross_page"] = True
            graph.add_edge(FlowEdge(
                id=f"{key}-sequential-submit",
                source=key,
                target=SUBMIT_NODE_ID,
                kind=EdgeKind.SEQUENTIAL,
                payload=payload,
            ))

    # Conditional edges
    for page_id, key, block in order:
        for index, rule in enumerate(block.navigation_rules):
            target_id = rule_target_node(survey, rule)
            if target_id is None:
                logger.debug("Block %s rule %d: unresolved target %r", key, index, rule.target)
                continue
            edge_id = f"{key}-submit-{index}" if rule.is_submit else f"{key}-nav-{index}"
            graph.add_edge(FlowEdge(
                id=edge_id,
                source=key,
                target=target_id,
                kind=EdgeKind.CONDITIONAL,
                payload={
                    "condition": copy.deepcopy(rule.condition),
                    "is_default": rule.is_default,
                    "is_page": rule.is_page,
                    "target_ref": rule.target,
                    "rule_index": index,
                    "label": _edge_label(rule, blocks),
                },
            ))

    return graph


# =============================================================================
# GRAPH -> TREE
# =============================================================================

def _rule_from_edge(edge: FlowEdge, target: FlowNode) -> NavigationRule:
    condition = copy.deepcopy(edge.payload.get("condition"))
    ref = edge.payload.get("target_ref")
    if _ref_matches_node(ref, target):
        target_ref, is_page = ref, target.kind is NodeKind.PAGE
    else:
        target_ref, is_page = target_info(target)
    is_default = edge.payload.get("is_default")
    if is_default is None:
        is_default = not condition
    return NavigationRule(condition=condition, target=target_ref, is_page=is_page, is_default=bool(is_default))


def _page_block_order(graph: FlowGraph, page_id: str, nodes: Dict[str, FlowNode]) -> List[str]:
    order: List[str] = []
    seen = set()

    entry = graph.outgoing(page_id, EdgeKind.PAGE_ENTRY)
    current = entry[0].target if entry else None
    while current is not None and current not in seen:
        node = nodes.get(current)
        if node is None or node.kind is not NodeKind.BLOCK or node.parent_id != page_id:
            break
        order.append(current)
        seen.add(current)
        following = [
            e.target for e in graph.outgoing(current, EdgeKind.SEQUENTIAL)
            if e.target in nodes and nodes[e.target].parent_id == page_id
        ]
        current = following[0] if following else None

    for child in graph.children(page_id):
        if child.id not in seen:
            logger.warning("Page %s: block %s is not on the page's sequential chain, appending", page_id, child.id)
            order.append(child.id)
            seen.add(child.id)
    return order


def from_graph(graph: FlowGraph) -> Survey:
    """
    Rebuild a survey from a flow graph.

    Page order follows the page nodes' order in the graph. Within a page the
    block order follows the page-entry edge and then sequential edges that
    stay on the page; blocks of the page that this walk misses are appended
    in graph order. Every block's rules are rebuilt from its outgoing
    conditional edges, ordered by their original rule index.
    """
    nodes = graph.node_map()
    start = nodes.get(START_NODE_ID)
    start_payload = start.payload if start is not None else {}
    survey = Survey(uuid=start_payload.get("survey_uuid") or "survey", name=start_payload.get("name") or "")

    for page_node in graph.nodes_of(NodeKind.PAGE):
        survey.add_page(page_node.id, page_node.payload.get("name") or page_node.id)

        for block_id in _page_block_order(graph, page_node.id, nodes):
            payload = {k: v for k, v in nodes[block_id].payload.items() if k not in _NODE_META_KEYS}
            payload.pop("navigationRules", None)
            block = block_from_dict(copy.deepcopy(payload))

            edges = graph.outgoing(block_id, EdgeKind.CONDITIONAL)
            edges = sorted(
                enumerate(edges),
                key=lambda pair: (pair[1].payload.get("rule_index") is None,
                                  pair[1].payload.get("rule_index") or 0,
                                  pair[0]),
            )
            block.navigation_rules = [
                _rule_from_edge(edge, nodes[edge.target]) for _, edge in edges if edge.target in nodes
            ]
            survey.add_block(page_node.id, block)

    return survey


# =============================================================================
# INCREMENTAL EDITS
# =============================================================================

@dataclass
class RuleChange:
    """One change applied to a block's rule list by an editor action."""

    action: str  # "added" | "updated" | "removed"
    block_key: str
    rule: NavigationRule
    previous: Optional[NavigationRule] = None


def _upsert(block: Block, key: str, rule: NavigationRule) -> RuleChange:
    signature = rule.signature()
    for i, existing in enumerate(block.navigation_rules):
        if existing.signature() == signature:
            block.navigation_rules[i] = rule
            return RuleChange("updated", key, rule, existing)
    block.navigation_rules.append(rule)
    return RuleChange("added", key, rule)


def connect_rule(
    survey: Survey,
    graph: FlowGraph,
    source_id: str,
    target_id: str,
    condition: Any = None,
    is_default: bool = False,
) -> Tuple[Survey, List[RuleChange]]:
    """
    Record a new conditional connection as a navigation rule.

    The rule is upserted into the source block's list: a rule with the same
    (condition, is_default) signature is replaced, otherwise the rule is
    appended.

    Raises:
        GraphError: If the source is not a block of the survey or the target
            node does not exist or cannot be a rule target
    """
    result = copy.deepcopy(survey)
    block = result.blocks.get(source_id)
    if block is None:
        raise GraphError(f"Navigation rules can only start from blocks: {source_id}")
    target = graph.get_node(target_id)
    if target is None:
        raise GraphError(f"Unknown node: {target_id}")
    ref, is_page = target_info(target)
    rule = NavigationRule(condition=copy.deepcopy(condition), target=ref, is_page=is_page, is_default=is_default)
    return result, [_upsert(block, source_id, rule)]


def retarget_edge(
    survey: Survey,
    graph: FlowGraph,
    edge_id: str,
    new_target_id: str,
) -> Tuple[Survey, List[RuleChange]]:
    """
    Point an existing conditional edge at a different node.

    Unknown or non-conditional edges leave the survey unchanged (a copy is
    still returned) and produce no changes.
    """
    edge = graph.get_edge(edge_id)
    if edge is None or edge.kind is not EdgeKind.CONDITIONAL:
        logger.debug("Edge %s is not a conditional edge, nothing to update", edge_id)
        return copy.deepcopy(survey), []
    is_default = edge.payload.get("is_default")
    if is_default is None:
        is_default = not edge.payload.get("condition")
    return connect_rule(survey, graph, edge.source, new_target_id, edge.payload.get("condition"), bool(is_default))


def remove_edge_rule(survey: Survey, graph: FlowGraph, edge_id: str) -> Tuple[Survey, List[RuleChange]]:
    """Delete the rule a conditional edge stands for."""
    result = copy.deepcopy(survey)
    edge = graph.get_edge(edge_id)
    if edge is None or edge.kind is not EdgeKind.CONDITIONAL:
        return result, []
    block = result.blocks.get(edge.source)
    if block is None:
        return result, []

    index = edge.payload.get("rule_index")
    candidates = list(range(len(block.navigation_rules)))
    if isinstance(index, int) and 0 <= index < len(block.navigation_rules):
        candidates.insert(0, index)

    condition = edge.payload.get("condition")
    is_default = edge.payload.get("is_default")
    if is_default is None:
        is_default = not condition
    signature = NavigationRule(condition, "", is_default=bool(is_default)).signature()
    for i in candidates:
        rule = block.navigation_rules[i]
        if rule.signature() == signature and rule_target_node(result, rule) == edge.target:
            del block.navigation_rules[i]
            return result, [RuleChange("removed", edge.source, rule)]

    logger.debug("Edge %s has no matching rule on block %s", edge_id, edge.source)
    return result, []


# =============================================================================
# CONSISTENCY
# =============================================================================

@dataclass
class ConsistencyReport:
    """
    Drift between a survey's rules and a graph's conditional edges.

    orphaned_rules: (block_key, rule_index) pairs with no matching edge
    orphaned_edges: ids of conditional edges with no matching rule
    """

    orphaned_rules: List[Tuple[str, int]] = field(default_factory=list)
    orphaned_edges: List[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.orphaned_rules and not self.orphaned_edges


def _edge_signature(edge: FlowEdge) -> Tuple[str, bool]:
    condition = edge.payload.get("condition")
    is_default = edge.payload.get("is_default")
    if is_default is None:
        is_default = not condition
    return NavigationRule(condition, "", is_default=bool(is_default)).signature()


def check_consistency(survey: Survey, graph: FlowGraph) -> ConsistencyReport:
    """Compare rules and conditional edges in both directions. Reports only."""
    report = ConsistencyReport()
    conditional = graph.edges_of(EdgeKind.CONDITIONAL)

    for _, key, block in survey.iter_blocks():
        for index, rule in enumerate(block.navigation_rules):
            target = rule_target_node(survey, rule)
            matched = any(
                e.source == key and e.target == target and _edge_signature(e) == rule.signature()
                for e in conditional
            )
            if not matched:
                report.orphaned_rules.append((key, index))

    for edge in conditional:
        block = survey.blocks.get(edge.source)
        matched = block is not None and any(
            rule.signature() == _edge_signature(edge) and rule_target_node(survey, rule) == edge.target
            for rule in block.navigation_rules
        )
        if not matched:
            report.orphaned_edges.append(edge.id)

    return report


__all__ = [
    "rule_target_node",
    "target_info",
    "to_graph",
    "from_graph",
    "RuleChange",
    "connect_rule",
    "retarget_edge",
    "remove_edge_rule",
    "ConsistencyReport",
    "check_consistency",
]
