"""Classification of workflow steps by shape."""

from __future__ import annotations

from typing import Any, Optional

from .contracts import StepKind

COMMAND_MARKER = "$("
AGENT_MARKER = "^"
GLOB_WILDCARD = "*"

CONTROL_KEYWORDS = {
    "each": StepKind.ITERATION,
    "repeat": StepKind.ITERATION,
    "if": StepKind.CONDITIONAL,
    "unless": StepKind.CONDITIONAL,
    "case": StepKind.CASE,
    "input": StepKind.INPUT,
}

_DISPLAY_LIMIT = 20


def is_command(step: Any) -> bool:
    return isinstance(step, str) and step.strip().startswith(COMMAND_MARKER)


def is_agent(step: Any) -> bool:
    return isinstance(step, str) and step.strip().startswith(AGENT_MARKER)


def is_glob(step: Any, has_resource: bool = False) -> bool:
    """Wildcard strings are globs only when the workflow has no bound resource."""
    if not isinstance(step, str) or GLOB_WILDCARD not in step:
        return False
    return not has_resource


def leading_key(step: dict) -> Optional[str]:
    for key in step:
        return str(key)
    return None


def classify(step: Any, has_resource: bool = False) -> StepKind:
    """Return the kind of ``step``.

    Total and deterministic: every value maps to exactly one kind, and
    nothing here touches the filesystem.
    """
    if isinstance(step, list):
        return StepKind.PARALLEL
    if isinstance(step, str):
        if is_command(step):
            return StepKind.COMMAND
        if is_agent(step):
            return StepKind.AGENT
        if is_glob(step, has_resource):
            return StepKind.GLOB
        return StepKind.PROMPT
    if isinstance(step, dict):
        key = leading_key(step)
        if key in CONTROL_KEYWORDS:
            return CONTROL_KEYWORDS[key]
        return StepKind.LABELED
    return StepKind.STANDARD


def extract_name(step: Any) -> Optional[str]:
    """Name of a step as used for output keys and replay lookups."""
    if isinstance(step, str):
        name = step.strip()
        if name.startswith(AGENT_MARKER):
            return name[len(AGENT_MARKER):].strip()
        return name
    if isinstance(step, dict):
        return leading_key(step)
    if isinstance(step, list):
        return None
    if step is None:
        return None
    return str(step)


def display_name(step: Any, kind: Optional[StepKind] = None) -> str:
    """Human readable name for progress reporting."""
    kind = kind or classify(step)
    if kind is StepKind.COMMAND:
        return _truncate(step.strip())
    if kind is StepKind.LABELED:
        return leading_key(step) or "labeled"
    if kind is StepKind.ITERATION:
        if "each" in step:
            items = step.get("each")
            count = len(items) if isinstance(items, (list, tuple)) else "?"
            return f"each ({count} items)"
        config = step.get("repeat")
        until = config.get("until", "?") if isinstance(config, dict) else config
        return f"repeat (until {until})"
    if kind is StepKind.CONDITIONAL:
        return "unless" if "unless" in step else "if"
    if kind is StepKind.CASE:
        return "case"
    if kind is StepKind.INPUT:
        return "input"
    if kind is StepKind.PARALLEL:
        return f"parallel ({len(step)} steps)"
    return extract_name(step) or str(step)


def _truncate(text: str) -> str:
    if len(text) > _DISPLAY_LIMIT:
        return f"{text[:_DISPLAY_LIMIT]}..."
    return text


__all__ = [
    "CONTROL_KEYWORDS",
    "classify",
    "display_name",
    "extract_name",
    "is_agent",
    "is_command",
    "is_glob",
    "leading_key",
]
