import pytest

from stepwright.classifier import classify, display_name, extract_name
from stepwright.contracts import StepKind


@pytest.mark.parametrize(
    "step, expected",
    [
        (["a", "b"], StepKind.PARALLEL),
        ("$(echo hi)", StepKind.COMMAND),
        ("^review_code", StepKind.AGENT),
        ("src/**/*.py", StepKind.GLOB),
        ({"each": "files", "as": "f", "steps": []}, StepKind.ITERATION),
        ({"repeat": {"until": "done", "steps": []}}, StepKind.ITERATION),
        ({"if": "x", "then": []}, StepKind.CONDITIONAL),
        ({"unless": "x", "then": []}, StepKind.CONDITIONAL),
        ({"case": "x", "when": {}}, StepKind.CASE),
        ({"input": {"prompt": "?"}}, StepKind.INPUT),
        ({"summary": "summarize the diff"}, StepKind.LABELED),
        ("analyze", StepKind.PROMPT),
        ("Explain this code", StepKind.PROMPT),
        (42, StepKind.STANDARD),
        (None, StepKind.STANDARD),
    ],
)
def test_classify_every_shape(step, expected):
    assert classify(step) is expected


def test_glob_is_prompt_when_resource_bound():
    assert classify("*.py", has_resource=True) is StepKind.PROMPT


def test_classification_is_deterministic():
    steps = ["a", "$(ls)", {"if": "x", "then": []}, ["b"], 3.5]
    assert [classify(s) for s in steps] == [classify(s) for s in steps]


def test_extract_name_strips_agent_marker():
    assert extract_name("^ fix_tests") == "fix_tests"
    assert extract_name({"label": "inner"}) == "label"
    assert extract_name(["a"]) is None


def test_display_names():
    assert display_name("$(echo a very long command here)") == "$(echo a very long c..."
    assert display_name({"each": [1, 2, 3], "as": "n", "steps": []}) == "each (3 items)"
    assert display_name({"repeat": {"until": "done", "steps": []}}) == "repeat (until done)"
    assert display_name({"unless": "x", "then": []}) == "unless"
    assert display_name({"summary": "Explain the change"}) == "summary"
    assert display_name(["a", "b"]) == "parallel (2 steps)"
    assert display_name("^agent_step") == "agent_step"
