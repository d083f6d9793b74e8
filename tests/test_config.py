"""Tests for engine configuration loading."""

import pytest

from surveyflow.config import EngineConfig, LayoutConfig, config_from_dict, load_config


def test_defaults():
    config = EngineConfig()
    assert config.layout.direction == "TB"
    assert config.layout.padding == 16.0
    assert config.layout.max_iterations == 30
    assert config.history_capacity == 50
    assert config.cycle_separator == " → "


def test_tuples_become_floats():
    config = LayoutConfig(origin=[0, 10], terminal_size=(100, 40))
    assert config.origin == (0.0, 10.0)
    assert config.terminal_size == (100.0, 40.0)


@pytest.mark.parametrize("kwargs", [
    {"direction": "RL"},
    {"blocks_per_row": 0},
    {"max_iterations": 0},
    {"padding": -1},
])
def test_invalid_layout(kwargs):
    with pytest.raises(ValueError):
        LayoutConfig(**kwargs)


def test_from_dict():
    config = config_from_dict({"layout": {"direction": "LR", "rank_gap": 150}, "history_capacity": 10})
    assert config.layout.direction == "LR"
    assert config.layout.rank_gap == 150
    assert config.history_capacity == 10


def test_from_empty():
    assert config_from_dict(None) == EngineConfig()
    assert config_from_dict({}) == EngineConfig()


@pytest.mark.parametrize("data", [
    {"colour": "blue"},
    {"layout": {"gravity": 9.8}},
    {"layout": ["TB"]},
    {"history_capacity": 0},
    {"layout": {"blocks_per_row": "two"}},
    [["direction", "LR"]],
    "layout",
])
def test_from_dict_rejected(data):
    with pytest.raises(ValueError):
        config_from_dict(data)


def test_load_config(tmp_path):
    path = tmp_path / "flow.yaml"
    path.write_text('layout:\n  direction: LR\n  max_iterations: 5\ncycle_separator: " -> "\n', encoding="utf-8")
    config = load_config(str(path))
    assert config.layout.direction == "LR"
    assert config.layout.max_iterations == 5
    assert config.cycle_separator == " -> "
