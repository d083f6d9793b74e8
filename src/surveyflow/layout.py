"""
Layered layout for flow graphs.

Top-level "units" (start, pages, submit and any block without a page) are
ranked by a breadth-first walk over the edges between units, then placed
rank by rank. Blocks are laid out in a grid inside their page and the page
box grows to fit them. A bounded overlap-resolution pass runs last.

Every public function works on a copy; the input graph is not modified.
"""

import copy
import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from surveyflow.config import LayoutConfig
from surveyflow.graph import EdgeKind, FlowGraph, FlowNode, NodeKind, Point, Size


logger = logging.getLogger(__name__)


# =============================================================================
# SIZING
# =============================================================================

_OPTION_TYPES = ("radio", "checkbox")
_EXTRA_HEIGHT = {"textarea": 80.0, "range": 56.0, "slider": 56.0, "select": 40.0}


def estimate_node_size(node: FlowNode, config: Optional[LayoutConfig] = None) -> Size:
    """
    Content-aware box size for start, submit and block nodes.

    Blocks widen with long labels and grow taller with options, matrix rows,
    multi-line inputs, descriptions and a navigation-rule indicator. Page
    sizes come from their blocks (see layout()); for a page the node's
    current size is returned.
    """
    config = config or LayoutConfig()
    if node.kind in (NodeKind.START, NodeKind.SUBMIT):
        return Size(*config.terminal_size)
    if node.kind is NodeKind.PAGE:
        return Size(node.size.width, node.size.height)

    p = node.payload
    width = config.block_min_width
    height = config.block_base_height

    label = p.get("label") or ""
    if len(label) > 30:
        width = min(config.block_max_width, width + (len(label) - 30) * 3)

    block_type = p.get("type")
    if block_type in _OPTION_TYPES:
        height += min(len(p.get("options") or []) * 28, 200)
    elif block_type == "matrix":
        rows = len(p.get("rows") or []) or 3
        height += min(rows * 32 + 40, 280)
    else:
        height += _EXTRA_HEIGHT.get(block_type, 44.0)

    description = p.get("description")
    if description:
        height += min(math.ceil(len(description) / 45) * 16, 48)

    if p.get("navigationRules"):
        height += 24

    return Size(float(width), float(height))


def _size_page(page: FlowNode, children: List[FlowNode], config: LayoutConfig) -> Tuple[float, float]:
    """Page box for a grid of children, with cell size taken from the largest child."""
    min_w, min_h = config.min_page_size
    if not children:
        return min_w, min_h
    pad_x, header = config.page_padding
    gap_x, gap_y = config.block_gap
    cols = min(config.blocks_per_row, len(children))
    rows = math.ceil(len(children) / config.blocks_per_row)
    cell_w = max(c.size.width for c in children)
    cell_h = max(c.size.height for c in children)
    width = 2 * pad_x + cols * cell_w + (cols - 1) * gap_x
    height = header + rows * cell_h + (rows - 1) * gap_y + pad_x
    return max(width, min_w), max(height, min_h)


def _place_children(page: FlowNode, children: List[FlowNode], config: LayoutConfig) -> None:
    if not children:
        return
    pad_x, header = config.page_padding
    gap_x, gap_y = config.block_gap
    cell_w = max(c.size.width for c in children)
    cell_h = max(c.size.height for c in children)
    for i, child in enumerate(children):
        col, row = i % config.blocks_per_row, i // config.blocks_per_row
        child.position = Point(
            page.position.x + pad_x + col * (cell_w + gap_x),
            page.position.y + header + row * (cell_h + gap_y),
        )


# =============================================================================
# RANKING
# =============================================================================

@dataclass
class _Unit:
    node: FlowNode
    children: List[FlowNode]


def _units(graph: FlowGraph) -> Tuple[Dict[str, _Unit], Dict[str, str]]:
    """Top-level units by id, and the unit id owning each node."""
    pages = {n.id for n in graph.nodes_of(NodeKind.PAGE)}
    units: Dict[str, _Unit] = {}
    owner: Dict[str, str] = {}
    for node in graph.nodes:
        if node.kind is NodeKind.BLOCK and node.parent_id in pages:
            continue
        units[node.id] = _Unit(node, graph.children(node.id) if node.kind is NodeKind.PAGE else [])
        owner[node.id] = node.id
    for unit in units.values():
        for child in unit.children:
            owner[child.id] = unit.node.id
    return units, owner


def _unit_edges(graph: FlowGraph, owner: Dict[str, str]) -> List[Tuple[str, str]]:
    edges: List[Tuple[str, str]] = []
    for edge in graph.edges:
        pair = (owner.get(edge.source), owner.get(edge.target))
        if None in pair or pair[0] == pair[1] or pair in edges:
            continue
        edges.append(pair)
    return edges


def assign_ranks(graph: FlowGraph) -> Dict[str, int]:
    """
    Rank of every top-level unit.

    Breadth-first from units without incoming edges (start first); a unit
    keeps the rank of the first visit. Units never reached (only inside
    loops) get ranks after the deepest reached one, and submit always goes
    last.
    """
    units, owner = _units(graph)
    edges = _unit_edges(graph, owner)
    outgoing: Dict[str, List[str]] = {u: [] for u in units}
    has_incoming: Set[str] = set()
    for source, target in edges:
        outgoing[source].append(target)
        has_incoming.add(target)

    submit_ids = [u for u, unit in units.items() if unit.node.kind is NodeKind.SUBMIT]
    roots = [u for u in units if u not in has_incoming and u not in submit_ids]
    roots.sort(key=lambda u: units[u].node.kind is not NodeKind.START)

    rank: Dict[str, int] = {}
    queue = deque()
    for root in roots:
        rank[root] = 0
        queue.append(root)
    while queue:
        current = queue.popleft()
        for target in outgoing[current]:
            if target not in rank and target not in submit_ids:
                rank[target] = rank[current] + 1
                queue.append(target)

    deepest = max(rank.values(), default=-1)
    for unit_id in units:
        if unit_id not in rank and unit_id not in submit_ids:
            deepest += 1
            rank[unit_id] = deepest
            logger.debug("Unit %s unreachable from roots, placed on rank %d", unit_id, deepest)

    last = max(rank.values(), default=-1) + 1
    for unit_id in submit_ids:
        rank[unit_id] = last
    return rank


def _branching_ranks(graph: FlowGraph, owner: Dict[str, str], rank: Dict[str, int]) -> Set[int]:
    """Ranks holding a target of a block whose rules lead to several units."""
    targets_by_block: Dict[str, Set[str]] = {}
    for edge in graph.edges_of(EdgeKind.CONDITIONAL):
        target_unit = owner.get(edge.target)
        if target_unit is None or target_unit == owner.get(edge.source):
            continue
        targets_by_block.setdefault(edge.source, set()).add(target_unit)
    branching: Set[int] = set()
    for targets in targets_by_block.values():
        if len(targets) > 1:
            branching.update(rank[t] for t in targets if t in rank)
    return branching


# =============================================================================
# OVERLAPS
# =============================================================================

def _overlaps(a: FlowNode, b: FlowNode, padding: float = 0.0) -> bool:
    return (
        a.position.x < b.position.x + b.size.width + padding
        and a.position.x + a.size.width + padding > b.position.x
        and a.position.y < b.position.y + b.size.height + padding
        and a.position.y + a.size.height + padding > b.position.y
    )


def _move(unit: _Unit, dx: float, dy: float) -> None:
    for node in [unit.node] + unit.children:
        node.position = Point(node.position.x + dx, node.position.y + dy)


def _resolve_in_place(graph: FlowGraph, config: LayoutConfig) -> int:
    """Push overlapping units apart; returns the number of passes used."""
    units = list(_units(graph)[0].values())
    pad = config.padding
    for iteration in range(config.max_iterations):
        moved = False
        for i in range(len(units)):
            for j in range(i + 1, len(units)):
                a, b = units[i], units[j]
                if not _overlaps(a.node, b.node, pad):
                    continue
                an, bn = a.node, b.node
                overlap_x = min(an.position.x + an.size.width, bn.position.x + bn.size.width) \
                    - max(an.position.x, bn.position.x)
                overlap_y = min(an.position.y + an.size.height, bn.position.y + bn.size.height) \
                    - max(an.position.y, bn.position.y)
                if overlap_x < overlap_y:
                    push = math.ceil((overlap_x + pad) / 2)
                    sign = -1 if an.position.x + an.size.width / 2 <= bn.position.x + bn.size.width / 2 else 1
                    _move(a, sign * push, 0)
                    _move(b, -sign * push, 0)
                else:
                    push = math.ceil((overlap_y + pad) / 2)
                    sign = -1 if an.position.y + an.size.height / 2 <= bn.position.y + bn.size.height / 2 else 1
                    _move(a, 0, sign * push)
                    _move(b, 0, -sign * push)
                moved = True
        if not moved:
            return iteration
    logger.debug("Overlap resolution stopped after %d iterations", config.max_iterations)
    return config.max_iterations


def resolve_overlaps(graph: FlowGraph, config: Optional[LayoutConfig] = None) -> FlowGraph:
    """
    Separate overlapping top-level boxes.

    Each pass pushes every overlapping pair apart along the axis with the
    smaller overlap, by half the overlap plus padding each. A page moves
    together with its blocks. Stops when nothing overlaps or after
    ``max_iterations`` passes.
    """
    config = config or LayoutConfig()
    result = copy.deepcopy(graph)
    _resolve_in_place(result, config)
    return result


def has_overlaps(graph: FlowGraph, padding: float = 0.0) -> bool:
    """True when two top-level boxes, or two blocks of one page, intersect."""
    units = list(_units(graph)[0].values())
    for i in range(len(units)):
        for j in range(i + 1, len(units)):
            if _overlaps(units[i].node, units[j].node, padding):
                return True
    for unit in units:
        kids = unit.children
        for i in range(len(kids)):
            for j in range(i + 1, len(kids)):
                if _overlaps(kids[i], kids[j], padding):
                    return True
    return False


# =============================================================================
# LAYOUT
# =============================================================================

def layout(graph: FlowGraph, config: Optional[LayoutConfig] = None) -> FlowGraph:
    """
    Assign sizes and positions to every node.

    Returns a new graph with the same nodes and edges.
    """
    config = config or LayoutConfig()
    result = copy.deepcopy(graph)
    units, owner = _units(result)

    for node in result.nodes:
        if node.kind is not NodeKind.PAGE:
            node.size = estimate_node_size(node, config)
    for unit in units.values():
        if unit.node.kind is NodeKind.PAGE:
            unit.node.size = Size(*_size_page(unit.node, unit.children, config))

    rank = assign_ranks(result)
    branching = _branching_ranks(result, owner, rank)

    by_rank: Dict[int, List[str]] = {}
    for unit_id in units:
        by_rank.setdefault(rank[unit_id], []).append(unit_id)

    horizontal = config.direction == "TB"
    origin_x, origin_y = config.origin
    cursor = origin_y if horizontal else origin_x

    for r in sorted(by_rank):
        members = [units[u].node for u in by_rank[r]]
        gap = config.branch_gap if r in branching else config.node_gap
        if horizontal:
            spread = sum(n.size.width for n in members) + gap * (len(members) - 1)
            x = origin_x - spread / 2
            for node in members:
                node.position = Point(x, cursor)
                x += node.size.width + gap
            cursor += max(n.size.height for n in members) + config.rank_gap
        else:
            spread = sum(n.size.height for n in members) + gap * (len(members) - 1)
            y = origin_y - spread / 2
            for node in members:
                node.position = Point(cursor, y)
                y += node.size.height + gap
            cursor += max(n.size.width for n in members) + config.rank_gap

    for unit in units.values():
        _place_children(unit.node, unit.children, config)

    _resolve_in_place(result, config)
    return result


def needs_layout(graph: FlowGraph, previous_node_count: Optional[int] = None) -> bool:
    """
    Whether positions should be recomputed.

    True when the node count changed since the last layout, when no node has
    been positioned yet, or when boxes overlap.
    """
    if previous_node_count is None or previous_node_count != len(graph.nodes):
        return True
    if graph.nodes and all(n.position.x == 0 and n.position.y == 0 for n in graph.nodes):
        return True
    return has_overlaps(graph)


def layout_if_needed(
    graph: FlowGraph,
    previous_node_count: Optional[int] = None,
    config: Optional[LayoutConfig] = None,
) -> FlowGraph:
    """layout() when needs_layout() says so, otherwise a copy with positions kept."""
    if needs_layout(graph, previous_node_count):
        return layout(graph, config)
    return copy.deepcopy(graph)


__all__ = [
    "estimate_node_size",
    "assign_ranks",
    "resolve_overlaps",
    "has_overlaps",
    "layout",
    "needs_layout",
    "layout_if_needed",
]
