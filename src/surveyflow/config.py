"""
Engine configuration.

Defaults live on the dataclasses; a YAML file may override any of them:

    layout:
      direction: LR
      rank_gap: 120
      max_iterations: 50
    history_capacity: 100
    cycle_separator: " -> "
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Tuple

import yaml


@dataclass
class LayoutConfig:
    """
    Layout engine parameters. Distances are in canvas pixels.

    Properties:
        direction: "TB" (ranks top to bottom) or "LR" (left to right)
        origin: Centre of the first rank's leading edge
        rank_gap: Space between consecutive ranks
        node_gap: Space between units of the same rank
        branch_gap: node_gap used on ranks reached from a branching block
        blocks_per_row: Grid width for blocks inside a page
        block_gap: Horizontal/vertical space between blocks of a page
        page_padding: Left/right padding and header height inside a page
        min_page_size: Smallest page box (also used for empty pages)
        padding: Minimum clearance kept by the overlap resolver
        max_iterations: Cap on overlap resolution passes
    """

    direction: str = "TB"
    origin: Tuple[float, float] = (400.0, 100.0)
    rank_gap: float = 100.0
    node_gap: float = 100.0
    branch_gap: float = 200.0
    blocks_per_row: int = 2
    block_gap: Tuple[float, float] = (20.0, 20.0)
    page_padding: Tuple[float, float] = (20.0, 60.0)
    min_page_size: Tuple[float, float] = (350.0, 120.0)
    padding: float = 16.0
    max_iterations: int = 30

    # Node size estimation
    terminal_size: Tuple[float, float] = (140.0, 48.0)
    block_min_width: float = 300.0
    block_max_width: float = 420.0
    block_base_height: float = 72.0

    def __post_init__(self):
        if self.direction not in ("TB", "LR"):
            raise ValueError(f"direction must be TB or LR, got {self.direction!r}")
        if self.blocks_per_row < 1:
            raise ValueError("blocks_per_row must be at least 1")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.padding < 0:
            raise ValueError("padding must not be negative")
        for name in ("origin", "block_gap", "page_padding", "min_page_size", "terminal_size"):
            setattr(self, name, tuple(float(v) for v in getattr(self, name)))


@dataclass
class EngineConfig:
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    history_capacity: int = 50
    cycle_separator: str = " → "

    def __post_init__(self):
        if self.history_capacity < 1:
            raise ValueError("history_capacity must be at least 1")


def _check_keys(cls, d: Dict[str, Any], where: str) -> None:
    known = {f.name for f in fields(cls)}
    unknown = set(d) - known
    if unknown:
        raise ValueError(f"Unknown {where} setting(s): {', '.join(sorted(unknown))}")


def config_from_dict(d: Dict[str, Any] | None) -> EngineConfig:
    """
    Raises:
        ValueError: On a non-mapping document, unknown keys or invalid values
    """
    if d is None:
        d = {}
    if not isinstance(d, dict):
        raise ValueError(f"Configuration must be a mapping, got {type(d).__name__}")
    d = dict(d)
    _check_keys(EngineConfig, d, "engine")
    layout = d.pop("layout", None) or {}
    if not isinstance(layout, dict):
        raise ValueError("layout must be a mapping")
    _check_keys(LayoutConfig, layout, "layout")
    try:
        return EngineConfig(layout=LayoutConfig(**layout), **d)
    except TypeError as e:
        raise ValueError(f"Invalid setting: {e}") from e


def load_config(path: str) -> EngineConfig:
    with open(path, "r", encoding="utf-8") as f:
        return config_from_dict(yaml.safe_load(f))


__all__ = ["LayoutConfig", "EngineConfig", "config_from_dict", "load_config"]
