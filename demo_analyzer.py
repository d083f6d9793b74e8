"""
Demo: Build the example surveys, analyze their navigation and export the
age screener's laid-out flow graph.
"""

import json

from surveyflow.analyzer import analyze_flow
from surveyflow.examples import build_age_screener_survey, build_loop_survey
from surveyflow.layout import layout
from surveyflow.navigation import next_step
from surveyflow.serialization import graph_to_dict, survey_to_yaml
from surveyflow.transform import to_graph


def print_report(report):
    """Pretty-print a FlowReport."""
    print()
    print("=" * 70)
    print(f"FLOW ANALYSIS REPORT: {report.survey_name}")
    print("=" * 70)
    print()

    print("📊 BASIC METRICS")
    print(f"  Total Pages:           {report.total_pages}")
    print(f"  Total Blocks:          {report.total_blocks}")
    print(f"  Total Rules:           {report.total_rules}")
    print(f"  Conditional Edges:     {report.conditional_edges}")
    print(f"  Blocks with Rules:     {report.blocks_with_rules}")
    print()

    print("📈 FIELD USAGE")
    print(f"  Fields Referenced:     {sorted(report.referenced_fields)}")
    print(f"  Undefined Fields:      {sorted(report.undefined_fields) or 'None'}")
    print(f"  Max Condition Depth:   {report.max_condition_depth}")
    print()

    print("🔗 NAVIGATION")
    print(f"  Has Cycles:            {'YES' if report.has_cycles else 'NO'}")
    for cycle in report.cycles:
        print(f"    {cycle}")
    print()

    if report.warnings:
        print("⚠️  WARNINGS")
        for i, warning in enumerate(report.warnings, 1):
            print(f"  {i}. {warning}")
    else:
        print("✨ NO WARNINGS - Navigation looks clean!")
    print()


if __name__ == "__main__":
    survey = build_age_screener_survey()
    print_report(analyze_flow(survey))
    print_report(analyze_flow(build_loop_survey()))

    for age in (16, 30):
        position = next_step(survey, "age", {"age": age})
        print(f"age={age} -> {survey.pages[position.page_id].name}")

    with open("example_survey_output.yaml", "w") as f:
        f.write(survey_to_yaml(survey))
    with open("example_graph_output.json", "w") as f:
        json.dump(graph_to_dict(layout(to_graph(survey))), f, indent=2)
    print("✅ Survey exported to example_survey_output.yaml and example_graph_output.json")
