"""
Flow Analyzer: navigation diagnostics for surveys.

This module provides read-only analysis of a survey and its flow graph:
    - Navigation cycles over conditional edges
    - Rule list problems (several defaults, defaults before other rules,
      rules that can never match)
    - Unresolved rule targets and unparseable conditions
    - Answer fields referenced by conditions but never collected

Nothing here blocks saving or running a survey. Findings are warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from surveyflow.expressions import (
    Comparison,
    ConditionRule,
    Expression,
    FieldRef,
    LogicalExpression,
    NotExpression,
    Predicate,
)
from surveyflow.graph import EdgeKind, FlowGraph, NodeKind
from surveyflow.model import Survey
from surveyflow.parser import ExpressionSyntaxError, parse_expression
from surveyflow.transform import rule_target_node, to_graph


CYCLE_SEPARATOR = " → "


@dataclass
class ExpressionMetrics:
    """Metrics about a single condition tree."""
    depth: int = 0
    node_count: int = 0
    field_references: Set[str] = field(default_factory=set)

    def add(self, other: ExpressionMetrics) -> None:
        self.depth = max(self.depth, other.depth)
        self.node_count += other.node_count
        self.field_references.update(other.field_references)


def _analyze_expression(expr: Expression | None) -> ExpressionMetrics:
    """Recursively analyze a condition tree."""
    if expr is None:
        return ExpressionMetrics()

    metrics = ExpressionMetrics(node_count=1)

    if isinstance(expr, (Comparison, LogicalExpression)):
        left = _analyze_expression(expr.left)
        right = _analyze_expression(expr.right)
        metrics.depth = 1 + max(left.depth, right.depth)
        metrics.node_count += left.node_count + right.node_count
        metrics.field_references.update(left.field_references)
        metrics.field_references.update(right.field_references)

    elif isinstance(expr, NotExpression):
        operand = _analyze_expression(expr.operand)
        metrics.depth = 1 + operand.depth
        metrics.node_count += operand.node_count
        metrics.field_references.update(operand.field_references)

    elif isinstance(expr, Predicate):
        metrics.field_references.add(expr.field)

    elif isinstance(expr, FieldRef):
        metrics.field_references.add(expr.name)

    return metrics


def condition_metrics(condition: Any) -> ExpressionMetrics:
    """
    Metrics for any condition form.

    Raises:
        ExpressionSyntaxError: For strings outside the grammar
        ValueError, KeyError: For malformed structured rules
    """
    if condition is None or isinstance(condition, bool):
        return ExpressionMetrics()
    if isinstance(condition, str):
        if not condition.strip():
            return ExpressionMetrics()
        return _analyze_expression(parse_expression(condition))
    if isinstance(condition, Expression):
        return _analyze_expression(condition)
    if isinstance(condition, ConditionRule):
        return _analyze_expression(condition.to_predicate())
    if isinstance(condition, dict):
        return _analyze_expression(ConditionRule.from_dict(condition).to_predicate())
    if isinstance(condition, (list, tuple)):
        metrics = ExpressionMetrics()
        for item in condition:
            metrics.add(condition_metrics(item))
        return metrics
    raise ValueError(f"Unsupported condition type: {type(condition).__name__}")


# =============================================================================
# CYCLES
# =============================================================================

def _navigation_adjacency(graph: FlowGraph) -> Dict[str, List[str]]:
    """
    Conditional-edge adjacency between blocks.

    A rule that targets a page continues at that page's first block.
    """
    entry_block = {e.source: e.target for e in graph.edges_of(EdgeKind.PAGE_ENTRY)}
    adjacency: Dict[str, List[str]] = {}
    for edge in graph.edges_of(EdgeKind.CONDITIONAL):
        target = entry_block.get(edge.target, edge.target)
        neighbors = adjacency.setdefault(edge.source, [])
        if target not in neighbors:
            neighbors.append(target)
    return adjacency


def _find_cycles_dfs(adjacency: Dict[str, List[str]], node: str, visited: Set[str],
                     rec_stack: Set[str], path: List[str], found: List[List[str]]) -> None:
    """DFS collecting every back edge's cycle reachable from ``node``."""
    visited.add(node)
    rec_stack.add(node)
    path.append(node)

    for neighbor in adjacency.get(node, []):
        if neighbor in rec_stack:
            found.append(path[path.index(neighbor):])
        elif neighbor not in visited:
            _find_cycles_dfs(adjacency, neighbor, visited, rec_stack, path, found)

    path.pop()
    rec_stack.remove(node)


def _canonical(cycle: List[str]) -> List[str]:
    """Rotate a cycle so it starts at its smallest node id."""
    pivot = cycle.index(min(cycle))
    return cycle[pivot:] + cycle[:pivot]


def find_cycle_paths(graph: FlowGraph) -> List[List[str]]:
    """Distinct navigation cycles as lists of node ids, each starting at its smallest id."""
    adjacency = _navigation_adjacency(graph)
    seen: Set[Tuple[str, ...]] = set()
    cycles: List[List[str]] = []

    for start in adjacency:
        found: List[List[str]] = []
        _find_cycles_dfs(adjacency, start, set(), set(), [], found)
        for cycle in found:
            canonical = _canonical(cycle)
            key = tuple(canonical)
            if key not in seen:
                seen.add(key)
                cycles.append(canonical)
    return cycles


def find_cycles(graph: FlowGraph, separator: str = CYCLE_SEPARATOR) -> List[str]:
    """
    Navigation loops as display strings, e.g. ``"q1 → q2 → q1"``.

    Only conditional edges count: sequential order alone never loops.
    Names are page names, block field names or labels, falling back to ids.
    """
    nodes = graph.node_map()
    rendered: List[str] = []
    for cycle in find_cycle_paths(graph):
        names = [nodes[n].display_name if n in nodes else n for n in cycle]
        text = separator.join(names + names[:1])
        if text not in rendered:
            rendered.append(text)
    return rendered


# =============================================================================
# FLOW REPORT
# =============================================================================

@dataclass
class FlowReport:
    """Navigation analysis report for a survey."""

    survey_name: str
    total_pages: int = 0
    total_blocks: int = 0
    total_rules: int = 0
    conditional_edges: int = 0
    blocks_with_rules: int = 0

    # Rule problems
    cycles: List[str] = field(default_factory=list)
    multiple_defaults: List[str] = field(default_factory=list)
    misplaced_defaults: List[Tuple[str, int]] = field(default_factory=list)
    unresolved_targets: List[Tuple[str, int, str]] = field(default_factory=list)
    invalid_conditions: List[Tuple[str, int, str]] = field(default_factory=list)
    never_matching: List[Tuple[str, int]] = field(default_factory=list)

    # Field usage
    referenced_fields: Set[str] = field(default_factory=set)
    undefined_fields: Set[str] = field(default_factory=set)
    max_condition_depth: int = 0

    # Warnings and flags
    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)


def analyze_flow(survey: Survey, graph: Optional[FlowGraph] = None,
                 separator: str = CYCLE_SEPARATOR) -> FlowReport:
    """
    Analyze the navigation of a survey.

    Args:
        survey: Survey to analyze
        graph: Its flow graph; derived with to_graph() when omitted
        separator: Joiner for cycle display strings

    Returns:
        FlowReport with counts, findings and warnings
    """
    if graph is None:
        graph = to_graph(survey)

    report = FlowReport(survey_name=survey.name or survey.uuid)
    report.total_pages = len(survey.page_ids)
    report.total_blocks = len(survey.blocks)
    report.conditional_edges = len(graph.edges_of(EdgeKind.CONDITIONAL))

    declared = set(survey.field_names())

    # =========================================================================
    # 1. RULE LISTS
    # =========================================================================

    for _, key, block in survey.iter_blocks():
        name = block.display_name or key
        if block.visible_if not in (None, ""):
            try:
                report.referenced_fields.update(condition_metrics(block.visible_if).field_references)
            except (ExpressionSyntaxError, ValueError, KeyError):
                report.add_warning(f"Block {name}: visibility condition cannot be parsed")

        rules = block.navigation_rules
        if not rules:
            continue
        report.blocks_with_rules += 1
        report.total_rules += len(rules)

        defaults = [i for i, r in enumerate(rules) if r.is_default]
        if len(defaults) > 1:
            report.multiple_defaults.append(key)
            report.add_warning(f"Block {name} has {len(defaults)} default rules; only the first is used")
        if defaults and defaults[0] != len(rules) - 1:
            report.misplaced_defaults.append((key, defaults[0]))
            report.add_warning(f"Block {name}: default rule is not the last rule")

        for index, rule in enumerate(rules):
            if rule_target_node(survey, rule) is None:
                report.unresolved_targets.append((key, index, rule.target))
                report.add_warning(f"Block {name}: rule {index + 1} targets unknown {rule.target!r}")

            if rule.condition in (None, "") or rule.condition == []:
                if not rule.is_default:
                    report.never_matching.append((key, index))
                    report.add_warning(f"Block {name}: rule {index + 1} has no condition and is not a default")
                continue

            try:
                metrics = condition_metrics(rule.condition)
            except (ExpressionSyntaxError, ValueError, KeyError) as e:
                report.invalid_conditions.append((key, index, str(rule.condition)))
                report.add_warning(f"Block {name}: rule {index + 1} condition cannot be parsed ({e})")
                continue
            report.referenced_fields.update(metrics.field_references)
            report.max_condition_depth = max(report.max_condition_depth, metrics.depth)

    # =========================================================================
    # 2. FIELD USAGE
    # =========================================================================

    report.undefined_fields = {f for f in report.referenced_fields if f.split(".")[0] not in declared}
    if report.undefined_fields:
        report.add_warning(
            f"Conditions reference fields no block collects: {', '.join(sorted(report.undefined_fields))}"
        )

    # =========================================================================
    # 3. CYCLES
    # =========================================================================

    report.cycles = find_cycles(graph, separator)
    for cycle in report.cycles:
        report.add_warning(f"Navigation cycle: {cycle}")

    if not graph.nodes_of(NodeKind.PAGE):
        report.add_warning("Survey has no pages")

    return report


__all__ = [
    "CYCLE_SEPARATOR",
    "ExpressionMetrics",
    "condition_metrics",
    "find_cycle_paths",
    "find_cycles",
    "FlowReport",
    "analyze_flow",
]
