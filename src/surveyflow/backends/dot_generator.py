"""
Graphviz DOT diagram generator for survey flow graphs.

Converts a FlowGraph into Graphviz DOT format for visualization.

Supports multiple modes:
    - SIMPLE: Blocks and navigation only (no rule labels)
    - DETAILED: Rule labels, block types and the sequential fallback edges
    - MANAGEMENT: Like DETAILED, with pages drawn as clusters
"""

from enum import Enum
from typing import Dict, List

from surveyflow.graph import EdgeKind, FlowEdge, FlowGraph, FlowNode, NodeKind


class DotMode(Enum):
    """Visualization modes for DOT output."""
    SIMPLE = "simple"          # Just the flow
    DETAILED = "detailed"      # Include rule labels, block types
    MANAGEMENT = "management"  # Pages as clusters


_MAX_LABEL = 40


def _escape_dot_string(s: str) -> str:
    """Escape special characters for DOT labels."""
    if not s:
        return '""'
    s = s.replace('\\', '\\\\')
    s = s.replace('"', '\\"')
    s = s.replace('\n', '\\n')
    return f'"{s}"'


def _escape_dot_id(identifier: str) -> str:
    """Quote an identifier unless it is a plain DOT id."""
    if identifier and not identifier[0].isdigit() and identifier.replace('_', '').isalnum():
        return identifier
    return _escape_dot_string(identifier)


def _shorten(label: str) -> str:
    if len(label) > _MAX_LABEL:
        return label[:_MAX_LABEL - 3] + "..."
    return label


def _node_line(node: FlowNode, mode: DotMode) -> str:
    node_id = _escape_dot_id(node.id)
    if node.kind is NodeKind.START:
        return f'{node_id} [shape=ellipse, fillcolor=lightgreen, label="START"];'
    if node.kind is NodeKind.SUBMIT:
        return f'{node_id} [shape=doublecircle, fillcolor=lightcoral, label="SUBMIT"];'
    if node.kind is NodeKind.PAGE:
        return f'{node_id} [shape=folder, fillcolor=lightyellow, label={_escape_dot_string(node.display_name)}];'

    label = node.display_name
    if mode is not DotMode.SIMPLE:
        label = f"{label}\n({node.payload.get('type', '?')})"
    return f'{node_id} [label={_escape_dot_string(label)}];'


def _edge_line(edge: FlowEdge, mode: DotMode) -> str:
    attrs: List[str] = []
    if edge.kind is EdgeKind.SEQUENTIAL and edge.payload.get("fallback"):
        attrs.append("style=dashed")
    if edge.kind is EdgeKind.CONDITIONAL:
        attrs.append("color=blue")
        label = edge.payload.get("label")
        if label and mode is not DotMode.SIMPLE:
            attrs.append(f"label={_escape_dot_string(_shorten(label))}")
    attr_str = f" [{', '.join(attrs)}]" if attrs else ""
    return f"{_escape_dot_id(edge.source)} -> {_escape_dot_id(edge.target)}{attr_str};"


def _visible_edges(graph: FlowGraph, mode: DotMode) -> List[FlowEdge]:
    """
    Edges worth drawing.

    Page-to-page edges are advisory and never drawn. SIMPLE mode hides
    sequential edges that only act as a fallback after rules.
    """
    edges = []
    for edge in graph.edges:
        if edge.kind is EdgeKind.PAGE_TO_PAGE:
            continue
        if mode is DotMode.SIMPLE and edge.kind is EdgeKind.SEQUENTIAL and edge.payload.get("fallback"):
            continue
        edges.append(edge)
    return edges


def generate_dot(graph: FlowGraph, mode: DotMode = DotMode.SIMPLE) -> str:
    """
    Generate Graphviz DOT format for a flow graph.

    Args:
        graph: Flow graph to visualize (see surveyflow.transform.to_graph)
        mode: Visualization mode (SIMPLE, DETAILED, MANAGEMENT)

    Returns:
        String containing DOT graph definition
    """
    lines = []

    # Header
    lines.append("digraph survey {")
    lines.append("  rankdir=TB;")
    lines.append("  node [shape=box, style=filled, fillcolor=lightblue];")

    # =========================================================================
    # NODES
    # =========================================================================

    blocks_by_page: Dict[str, List[FlowNode]] = {}
    for node in graph.nodes:
        if mode is DotMode.MANAGEMENT and node.kind is NodeKind.BLOCK and node.parent_id:
            blocks_by_page.setdefault(node.parent_id, []).append(node)
            continue
        lines.append(f"  {_node_line(node, mode)}")

    # =========================================================================
    # PAGES (MANAGEMENT MODE)
    # =========================================================================

    for page_id, blocks in blocks_by_page.items():
        page = graph.get_node(page_id)
        title = page.display_name if page is not None else page_id
        lines.append(f'  subgraph {_escape_dot_string("cluster_" + page_id)} {{')
        lines.append(f'    label={_escape_dot_string(title)};')
        lines.append('    style=filled;')
        lines.append('    color=lightgrey;')
        for block in blocks:
            lines.append(f"    {_node_line(block, mode)}")
        lines.append("  }")

    # =========================================================================
    # EDGES
    # =========================================================================

    for edge in _visible_edges(graph, mode):
        lines.append(f"  {_edge_line(edge, mode)}")

    # Footer
    lines.append("}")

    return "\n".join(lines)


def save_dot_file(graph: FlowGraph, filename: str, mode: DotMode = DotMode.SIMPLE) -> None:
    """
    Generate DOT and save to file.

    Args:
        graph: Flow graph to visualize
        filename: Output file path (.dot extension recommended)
        mode: Visualization mode
    """
    dot = generate_dot(graph, mode=mode)
    with open(filename, 'w', encoding="utf-8") as f:
        f.write(dot)


__all__ = ["DotMode", "generate_dot", "save_dot_file"]
