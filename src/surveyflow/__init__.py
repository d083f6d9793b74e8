"""
surveyflow: navigation core for a visual survey builder.

The survey tree (surveyflow.model) is the authored artifact. Everything else
is derived from it:

    conditions / parser   evaluate rule conditions against answers
    navigation            pick the next block or page for a respondent
    transform             survey tree <-> flow graph for the visual editor
    analyzer              cycle detection and rule diagnostics
    layout                node sizing, ranking and overlap resolution
    history               bounded undo/redo of graph edits

ARCHITECTURAL RULE:
-------------------
The flow graph is never the source of truth. Graph edits are folded back
into the survey tree and the graph is derived again.

The library never configures logging handlers; the CLI does.
"""

__version__ = "0.1.0"
