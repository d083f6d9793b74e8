#!/usr/bin/env python3
"""
Demo: Graphviz DOT diagrams of a survey's flow graph.

Renders the age screener in every DotMode and writes one .dot file per mode.
"""

from surveyflow.backends import DotMode, generate_dot, save_dot_file
from surveyflow.examples import build_age_screener_survey
from surveyflow.transform import to_graph


def main():
    graph = to_graph(build_age_screener_survey())

    print("=" * 80)
    print("DOT GENERATOR DEMO: age screener")
    print("=" * 80)

    filenames = []
    for mode in DotMode:
        print(f"\n{mode.value.upper()} MODE:")
        print("-" * 80)
        print(generate_dot(graph, mode))

        filename = f"age_screener_{mode.value}.dot"
        save_dot_file(graph, filename, mode)
        filenames.append(filename)
        print(f"\nSaved to: {filename}")

    print("\n" + "=" * 80)
    print("To render the diagrams:")
    for filename in filenames:
        print(f"  dot -Tpng {filename} -o {filename[:-4]}.png")
    print("=" * 80)


if __name__ == "__main__":
    main()
