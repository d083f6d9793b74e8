"""
Example surveys used by the demo script and the tests.

build_age_screener_survey():
    Page 1 asks for the respondent's age. Under-18s branch to the
    "minor-page"; everyone else falls through to the default rule and lands
    on "adult-page".

build_loop_survey():
    Three blocks whose rules send the respondent round in a circle
    (q1 -> q2 -> q3 -> q1). Used to exercise cycle detection.
"""
from surveyflow.model import Block, NavigationRule, Survey


def build_age_screener_survey() -> Survey:
    survey = Survey(uuid="age-screener", name="Age Screener")

    survey.add_page("page-1", "Page1")
    survey.add_block("page-1", Block(
        type="number",
        uuid="age",
        field_name="age",
        label="How old are you?",
        navigation_rules=[
            NavigationRule(condition="age < 18", target="minor-page", is_page=True),
            NavigationRule(condition="true", target="adult-page", is_page=True, is_default=True),
        ],
    ))

    survey.add_page("minor", "minor-page")
    survey.add_block("minor", Block(
        type="radio",
        uuid="guardian-consent",
        field_name="guardian_consent",
        label="Has a parent or guardian agreed to this survey?",
        attributes={"options": [{"value": "yes", "label": "Yes"}, {"value": "no", "label": "No"}]},
        navigation_rules=[
            NavigationRule(condition='guardian_consent == "no"', target="submit"),
        ],
    ))

    survey.add_page("adult", "adult-page")
    survey.add_block("adult", Block(
        type="select",
        uuid="employment",
        field_name="employment",
        label="What is your employment status?",
        attributes={"options": [
            {"value": "employed", "label": "Employed"},
            {"value": "student", "label": "Student"},
            {"value": "retired", "label": "Retired"},
        ]},
    ))
    survey.add_block("adult", Block(
        type="textarea",
        uuid="comments",
        field_name="comments",
        label="Anything else you would like to tell us?",
    ))

    return survey


def build_loop_survey() -> Survey:
    survey = Survey(uuid="loop", name="Loop")
    survey.add_page("p1", "Loop page")
    for name, target in (("q1", "q2"), ("q2", "q3"), ("q3", "q1")):
        survey.add_block("p1", Block(
            type="textfield",
            uuid=name,
            field_name=name,
            label=f"Question {name[1:]}",
            navigation_rules=[NavigationRule(condition=f'{name} == "again"', target=target)],
        ))
    return survey


__all__ = ["build_age_screener_survey", "build_loop_survey"]
