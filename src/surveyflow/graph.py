"""
Flow graph: the node/edge view of a survey used by the visual editor.

The graph is always derived (surveyflow.transform.to_graph) and never the
source of truth. Edits made on it are folded back into the survey tree.

Node ids:
    start-node            the single start node
    <page uuid>           one node per page
    <block key>           one node per block (uuid or "<page>-block-<i>")
    submit-node           the single submit node
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional


START_NODE_ID = "start-node"
SUBMIT_NODE_ID = "submit-node"


class GraphError(Exception):
    """Raised when a graph is structurally invalid (duplicate ids, dangling edges)."""
    pass


class NodeKind(Enum):
    START = "start"
    PAGE = "page"
    BLOCK = "block"
    SUBMIT = "submit"


class EdgeKind(Enum):
    """
    Edge types.

    SEQUENTIAL    block -> next block (or submit) in survey order
    PAGE_ENTRY    page -> its first block
    PAGE_TO_PAGE  page -> next page (advisory, for page-level layout)
    CONDITIONAL   one per navigation rule, always from a block
    START_ENTRY   start -> first page
    """

    SEQUENTIAL = "sequential"
    PAGE_ENTRY = "page-entry"
    PAGE_TO_PAGE = "page-to-page"
    CONDITIONAL = "conditional"
    START_ENTRY = "start-entry"


@dataclass
class Point:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Size:
    width: float = 0.0
    height: float = 0.0


@dataclass
class FlowNode:
    """
    A node of the flow graph.

    Properties:
        id: Node id (see module docstring)
        kind: NodeKind
        position: Top-left corner. Block positions are absolute, like every
            other node, even though blocks are drawn inside their page.
        size: Rendered box size
        payload: Copy of the survey data the node stands for (page name,
            block fields, rules, ...) plus editor metadata such as
            ``page_id`` for blocks
    """

    id: str
    kind: NodeKind
    position: Point = field(default_factory=Point)
    size: Size = field(default_factory=Size)
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def parent_id(self) -> Optional[str]:
        """Page id of a block node."""
        return self.payload.get("page_id")

    @property
    def display_name(self) -> str:
        p = self.payload
        if self.kind is NodeKind.PAGE:
            return p.get("name") or self.id
        if self.kind is NodeKind.BLOCK:
            return p.get("fieldName") or p.get("label") or self.id
        if self.kind is NodeKind.SUBMIT:
            return "Submit"
        return "Start"


@dataclass
class FlowEdge:
    """
    A directed edge.

    Conditional edge payload keys: condition, is_default, is_page,
    target_ref (the rule's raw target), rule_index, label.
    Sequential edges carry ``fallback`` (source block has rules) and a label.
    """

    id: str
    source: str
    target: str
    kind: EdgeKind
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def condition(self) -> Any:
        return self.payload.get("condition")


@dataclass
class FlowGraph:
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)

    def add_node(self, node: FlowNode) -> FlowNode:
        if self.get_node(node.id) is not None:
            raise GraphError(f"Duplicate node id: {node.id}")
        self.nodes.append(node)
        return node

    def add_edge(self, edge: FlowEdge) -> FlowEdge:
        if self.get_node(edge.source) is None or self.get_node(edge.target) is None:
            raise GraphError(f"Edge {edge.id} references unknown node")
        self.edges.append(edge)
        return edge

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, edge_id: str) -> Optional[FlowEdge]:
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def node_map(self) -> Dict[str, FlowNode]:
        return {node.id: node for node in self.nodes}

    def nodes_of(self, kind: NodeKind) -> List[FlowNode]:
        return [node for node in self.nodes if node.kind is kind]

    def edges_of(self, kind: EdgeKind) -> List[FlowEdge]:
        return [edge for edge in self.edges if edge.kind is kind]

    def outgoing(self, node_id: str, kind: Optional[EdgeKind] = None) -> List[FlowEdge]:
        return [
            e for e in self.edges
            if e.source == node_id and (kind is None or e.kind is kind)
        ]

    def incoming(self, node_id: str, kind: Optional[EdgeKind] = None) -> List[FlowEdge]:
        return [
            e for e in self.edges
            if e.target == node_id and (kind is None or e.kind is kind)
        ]

    def children(self, page_id: str) -> List[FlowNode]:
        """Block nodes that belong to a page, in graph order."""
        return [n for n in self.nodes if n.kind is NodeKind.BLOCK and n.parent_id == page_id]

    def validate(self) -> None:
        """
        Check node ids are unique and every edge endpoint exists.

        Raises:
            GraphError: On the first problem found
        """
        seen = set()
        for node in self.nodes:
            if node.id in seen:
                raise GraphError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        edge_ids = set()
        for edge in self.edges:
            if edge.id in edge_ids:
                raise GraphError(f"Duplicate edge id: {edge.id}")
            edge_ids.add(edge.id)
            if edge.source not in seen or edge.target not in seen:
                raise GraphError(f"Edge {edge.id} references unknown node")

    def __iter__(self) -> Iterator[FlowNode]:
        return iter(self.nodes)


__all__ = [
    "START_NODE_ID",
    "SUBMIT_NODE_ID",
    "GraphError",
    "NodeKind",
    "EdgeKind",
    "Point",
    "Size",
    "FlowNode",
    "FlowEdge",
    "FlowGraph",
]
