"""Step objects executed by the workflow engine."""

from .agent import AgentRunner, AgentStep, CommandAgentRunner
from .base import BaseStep
from .conditional import CaseStep, ConditionalStep
from .input import InputPrompter, InputStep, TyperPrompter
from .iteration import DEFAULT_MAX_ITERATIONS, EachStep, RepeatStep
from .prompt import PromptStep
from .shell import ShellScriptStep

__all__ = [
    "AgentRunner",
    "AgentStep",
    "BaseStep",
    "CaseStep",
    "CommandAgentRunner",
    "ConditionalStep",
    "DEFAULT_MAX_ITERATIONS",
    "EachStep",
    "InputPrompter",
    "InputStep",
    "PromptStep",
    "RepeatStep",
    "ShellScriptStep",
    "TyperPrompter",
]
