"""
Command-line interface for surveyflow.

Usage:
    surveyflow graph survey.json -o graph.json
    surveyflow layout survey.yaml --config flow.yaml -o graph.json
    surveyflow cycles survey.json
    surveyflow analyze survey.json
    surveyflow dot survey.json --mode management -o survey.dot
    surveyflow resolve survey.json --block age --answers '{"age": 16}'
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from surveyflow.analyzer import analyze_flow, find_cycles
from surveyflow.backends.dot_generator import DotMode, generate_dot
from surveyflow.config import EngineConfig, load_config
from surveyflow.layout import layout
from surveyflow.model import Survey
from surveyflow.navigation import next_step
from surveyflow.serialization import SurveyFormatError, graph_to_dict, load_survey
from surveyflow.transform import to_graph


logger = logging.getLogger(__name__)


def _write(text: str, output: Optional[str]) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info("Wrote %s", output)
    else:
        print(text)


def _cmd_graph(survey: Survey, config: EngineConfig, args) -> int:
    _write(json.dumps(graph_to_dict(to_graph(survey)), indent=2), args.output)
    return 0


def _cmd_layout(survey: Survey, config: EngineConfig, args) -> int:
    graph = layout(to_graph(survey), config.layout)
    _write(json.dumps(graph_to_dict(graph), indent=2), args.output)
    return 0


def _cmd_cycles(survey: Survey, config: EngineConfig, args) -> int:
    cycles = find_cycles(to_graph(survey), config.cycle_separator)
    for cycle in cycles:
        print(cycle)
    return 1 if cycles else 0


def _cmd_analyze(survey: Survey, config: EngineConfig, args) -> int:
    report = analyze_flow(survey, separator=config.cycle_separator)
    print(f"Survey: {report.survey_name}")
    print(f"  Pages:             {report.total_pages}")
    print(f"  Blocks:            {report.total_blocks}")
    print(f"  Rules:             {report.total_rules}")
    print(f"  Blocks with rules: {report.blocks_with_rules}")
    print(f"  Max rule depth:    {report.max_condition_depth}")
    print(f"  Fields referenced: {', '.join(sorted(report.referenced_fields)) or '-'}")
    for i, warning in enumerate(report.warnings, 1):
        print(f"  {i}. {warning}")
    return 1 if report.warnings else 0


def _cmd_dot(survey: Survey, config: EngineConfig, args) -> int:
    _write(generate_dot(to_graph(survey), DotMode(args.mode)), args.output)
    return 0


def _cmd_resolve(survey: Survey, config: EngineConfig, args) -> int:
    try:
        answers = json.loads(args.answers)
    except json.JSONDecodeError as e:
        print(f"Error: --answers is not valid JSON: {e}", file=sys.stderr)
        return 2
    block_key = survey.find_block(args.block)
    if block_key is None:
        print(f"Error: No block {args.block!r} in survey", file=sys.stderr)
        return 2
    position = next_step(survey, block_key, answers)
    if position.is_submit:
        print("submit")
    else:
        page = survey.pages[position.page_id]
        print(f"page={page.name} block={position.block_key or '-'}")
    return 0


_COMMANDS = {
    "graph": (_cmd_graph, "Print the flow graph as JSON"),
    "layout": (_cmd_layout, "Print the flow graph with computed positions"),
    "cycles": (_cmd_cycles, "List navigation cycles (exit status 1 when any)"),
    "analyze": (_cmd_analyze, "Print a navigation report (exit status 1 on warnings)"),
    "dot": (_cmd_dot, "Print a Graphviz DOT diagram"),
    "resolve": (_cmd_resolve, "Show where a block's rules lead for given answers"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="surveyflow",
        description="Inspect survey navigation: flow graphs, layout, cycles and rule resolution.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-c", "--config", help="YAML engine configuration")

    sub = parser.add_subparsers(dest="command", required=True)
    for name, (_, help_text) in _COMMANDS.items():
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("survey", help="Survey document (.json, .yaml or .yml)")
        if name in ("graph", "layout", "dot"):
            cmd.add_argument("-o", "--output", help="Output file (default: stdout)")
        if name == "dot":
            cmd.add_argument(
                "-m", "--mode",
                choices=[m.value for m in DotMode],
                default=DotMode.SIMPLE.value,
                help="Diagram detail (default: simple)",
            )
        if name == "resolve":
            cmd.add_argument("-b", "--block", required=True, help="Block uuid, field name or label")
            cmd.add_argument("-a", "--answers", default="{}", help="Answers as a JSON object")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config) if args.config else EngineConfig()
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 2

    try:
        survey = load_survey(args.survey)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except SurveyFormatError as e:
        print(f"Error: Invalid survey: {e}", file=sys.stderr)
        return 2

    handler, _ = _COMMANDS[args.command]
    return handler(survey, config, args)


if __name__ == "__main__":
    sys.exit(main())
