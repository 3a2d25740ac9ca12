from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

DEFAULT_MODEL = "openai:gpt-4o-mini"
DEFAULT_AGENT_COMMAND = "claude -p --verbose --output-format stream-json"


class EngineConfig(BaseModel):
    """Engine-wide settings."""

    state_backend: Literal["file", "sqlite"] = "sqlite"
    sessions_db: Optional[str] = None
    state_dir: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    agent_command: str = DEFAULT_AGENT_COMMAND


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWRIGHT_CONFIG env
            variable or 'stepwright.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWRIGHT_CONFIG", "stepwright.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        try:
            config = EngineConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
    else:
        config = EngineConfig()

    env_backend = os.getenv("STEPWRIGHT_STATE_STORAGE")
    if env_backend:
        if env_backend.lower() not in ("file", "sqlite"):
            raise ConfigurationError(f"Unsupported state backend: {env_backend}")
        config.state_backend = env_backend.lower()  # type: ignore[assignment]
    if os.getenv("STEPWRIGHT_SESSIONS_DB"):
        config.sessions_db = os.getenv("STEPWRIGHT_SESSIONS_DB")
    if os.getenv("STEPWRIGHT_STATE_DIR"):
        config.state_dir = os.getenv("STEPWRIGHT_STATE_DIR")
    if os.getenv("STEPWRIGHT_AGENT_COMMAND"):
        config.agent_command = os.getenv("STEPWRIGHT_AGENT_COMMAND")  # type: ignore[assignment]
    return config


class WorkflowDefinition(BaseModel):
    """A parsed workflow document.

    Unknown top-level keys are kept; a key naming a step holds that step's
    configuration block.
    """

    name: Optional[str] = None
    steps: List[Any] = Field(default_factory=list)
    model: Optional[str] = None
    target: Optional[str] = None
    tools: List[Any] = Field(default_factory=list)
    retry: Any = None
    pause: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    def step_config(self, step_name: Optional[str]) -> Dict[str, Any]:
        if not step_name:
            return {}
        value = (self.model_extra or {}).get(step_name)
        return dict(value) if isinstance(value, dict) else {}


def load_workflow(path: str | Path) -> WorkflowDefinition:
    """Parse a workflow YAML document."""
    workflow_path = Path(path)
    try:
        with open(workflow_path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read workflow {workflow_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in workflow {workflow_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Workflow {workflow_path} must be a mapping")
    data.setdefault("name", workflow_path.parent.name or workflow_path.stem)
    try:
        return WorkflowDefinition(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid workflow {workflow_path}: {e}") from e
