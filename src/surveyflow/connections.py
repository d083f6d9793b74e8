"""
Which connections the flow editor may create.

    conditional    block -> block | page | submit
    sequential     block -> block | submit (forward only within a page)
    start-entry    start -> page
    page-entry     page  -> one of its own blocks
    page-to-page   page  -> page

Self-connections and duplicate connections are always rejected.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from surveyflow.graph import EdgeKind, FlowGraph, FlowNode, NodeKind


@dataclass(frozen=True)
class ConnectionCheck:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


_OK = ConnectionCheck(True)


def _block_index(graph: FlowGraph, node: FlowNode) -> int:
    """Position of a block among its page's blocks."""
    index = node.payload.get("index")
    if isinstance(index, int):
        return index
    siblings = [n.id for n in graph.children(node.parent_id)]
    return siblings.index(node.id) if node.id in siblings else 0


def _check_conditional(graph: FlowGraph, source: FlowNode, target: FlowNode) -> ConnectionCheck:
    if source.kind is not NodeKind.BLOCK:
        return ConnectionCheck(False, "Navigation rules can only start from blocks")
    if target.kind not in (NodeKind.BLOCK, NodeKind.PAGE, NodeKind.SUBMIT):
        return ConnectionCheck(False, "Invalid target for navigation rule")
    if target.kind is NodeKind.BLOCK and source.parent_id != target.parent_id:
        if _block_index(graph, target) != 0:
            return ConnectionCheck(False, "Cross-page navigation should target the first block of the page")
    return _OK


def _check_sequential(graph: FlowGraph, source: FlowNode, target: FlowNode) -> ConnectionCheck:
    if source.kind is not NodeKind.BLOCK:
        return ConnectionCheck(False, "Sequential flow must start from a block")
    if target.kind not in (NodeKind.BLOCK, NodeKind.SUBMIT):
        return ConnectionCheck(False, "Sequential flow can only connect to blocks or submit")
    if target.kind is NodeKind.BLOCK and source.parent_id == target.parent_id:
        if _block_index(graph, target) <= _block_index(graph, source):
            return ConnectionCheck(False, "Sequential flow should move forward within the same page")
    return _OK


def _check_start_entry(source: FlowNode, target: FlowNode) -> ConnectionCheck:
    if source.kind is not NodeKind.START:
        return ConnectionCheck(False, "Start entry connections must start from the start node")
    if target.kind is not NodeKind.PAGE:
        return ConnectionCheck(False, "Start entry connections must target a page")
    return _OK


def _check_page_entry(source: FlowNode, target: FlowNode) -> ConnectionCheck:
    if source.kind is not NodeKind.PAGE:
        return ConnectionCheck(False, "Page entry connections must start from a page")
    if target.kind is not NodeKind.BLOCK:
        return ConnectionCheck(False, "Page entry connections must target a block")
    if target.parent_id != source.id:
        return ConnectionCheck(False, "Page entry must connect to a block within the same page")
    return _OK


def _check_page_to_page(source: FlowNode, target: FlowNode) -> ConnectionCheck:
    if source.kind is not NodeKind.PAGE or target.kind is not NodeKind.PAGE:
        return ConnectionCheck(False, "Page-to-page connections must join two pages")
    return _OK


def validate_connection(
    graph: FlowGraph,
    source_id: str,
    target_id: str,
    kind: EdgeKind = EdgeKind.CONDITIONAL,
    edge_id: Optional[str] = None,
) -> ConnectionCheck:
    """
    Check whether an edge of ``kind`` may join two nodes.

    ``edge_id`` names the edge being moved, if any, so it does not count as a
    duplicate of itself.
    """
    source = graph.get_node(source_id)
    target = graph.get_node(target_id)
    if source is None or target is None:
        return ConnectionCheck(False, "Unknown node")
    if source_id == target_id:
        return ConnectionCheck(False, "Cannot connect node to itself")
    if any(e.source == source_id and e.target == target_id and e.id != edge_id for e in graph.edges):
        return ConnectionCheck(False, "Connection already exists")

    if kind is EdgeKind.CONDITIONAL:
        return _check_conditional(graph, source, target)
    if kind is EdgeKind.SEQUENTIAL:
        return _check_sequential(graph, source, target)
    if kind is EdgeKind.START_ENTRY:
        return _check_start_entry(source, target)
    if kind is EdgeKind.PAGE_ENTRY:
        return _check_page_entry(source, target)
    return _check_page_to_page(source, target)


def valid_targets(
    graph: FlowGraph,
    source_id: str,
    kind: EdgeKind = EdgeKind.CONDITIONAL,
    edge_id: Optional[str] = None,
) -> List[str]:
    """Ids of every node an edge of ``kind`` from ``source_id`` could connect to."""
    return [
        node.id for node in graph.nodes
        if node.id != source_id and validate_connection(graph, source_id, node.id, kind, edge_id).valid
    ]


def would_create_cycle(
    graph: FlowGraph,
    source_id: str,
    target_id: str,
    exclude_edge_id: Optional[str] = None,
    kinds: Optional[Set[EdgeKind]] = None,
) -> bool:
    """
    Whether adding source -> target closes a loop.

    Args:
        graph: Current graph
        source_id, target_id: Proposed edge
        exclude_edge_id: Edge being replaced, ignored in the check
        kinds: Edge kinds to follow (all kinds when None)
    """
    adjacency: Dict[str, List[str]] = {}
    for edge in graph.edges:
        if edge.id == exclude_edge_id or (kinds is not None and edge.kind not in kinds):
            continue
        adjacency.setdefault(edge.source, []).append(edge.target)
    adjacency.setdefault(source_id, []).append(target_id)

    # The new edge closes a loop iff source is reachable from target.
    stack = [target_id]
    seen: Set[str] = set()
    while stack:
        node = stack.pop()
        if node == source_id:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(adjacency.get(node, []))
    return False


__all__ = ["ConnectionCheck", "validate_connection", "valid_targets", "would_create_cycle"]
