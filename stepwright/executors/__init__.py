"""Per-kind step executors."""

from .base import StepExecutor
from .control_flow import CaseExecutor, ConditionalExecutor, InputExecutor, IterationExecutor
from .parallel import ParallelExecutor
from .simple import (
    AgentStepExecutor,
    CommandStepExecutor,
    GlobStepExecutor,
    LabeledStepExecutor,
    NamedStepExecutor,
)

__all__ = [
    "AgentStepExecutor",
    "CaseExecutor",
    "CommandStepExecutor",
    "ConditionalExecutor",
    "GlobStepExecutor",
    "InputExecutor",
    "IterationExecutor",
    "LabeledStepExecutor",
    "NamedStepExecutor",
    "ParallelExecutor",
    "StepExecutor",
]
