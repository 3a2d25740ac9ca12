"""stepwright: declarative workflow orchestration for model and shell steps."""

from .classifier import classify
from .config import EngineConfig, WorkflowDefinition, load_config, load_workflow
from .contracts import ExecutionContext, StepKind, WorkflowMemory
from .executor import WorkflowExecutor
from .loader import register_step_class
from .persistence import get_state_repository
from .retry import RetryPolicy, build_policy
from .runner import WorkflowRunner
from .steps import BaseStep
from .workflow import Workflow

__version__ = "0.1.0"
__all__ = [
    "BaseStep",
    "EngineConfig",
    "ExecutionContext",
    "RetryPolicy",
    "StepKind",
    "Workflow",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowMemory",
    "WorkflowRunner",
    "build_policy",
    "classify",
    "get_state_repository",
    "load_config",
    "load_workflow",
    "register_step_class",
]
