"""Tests for configuration and workflow document loading."""

import pytest

from stepwright.config import DEFAULT_MODEL, load_config, load_workflow
from stepwright.errors import ConfigurationError


def test_load_config_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("STEPWRIGHT_SESSIONS_DB")
    monkeypatch.delenv("STEPWRIGHT_STATE_DIR")
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.state_backend == "sqlite"
    assert config.default_model == DEFAULT_MODEL
    assert config.sessions_db is None


def test_load_config_from_file_and_env(tmp_path, monkeypatch):
    config_path = tmp_path / "stepwright.yaml"
    config_path.write_text(
        """
state_backend: file
state_dir: /var/lib/stepwright
default_model: openai:gpt-4o
"""
    )
    monkeypatch.setenv("STEPWRIGHT_CONFIG", str(config_path))
    monkeypatch.delenv("STEPWRIGHT_STATE_DIR")
    monkeypatch.setenv("STEPWRIGHT_AGENT_COMMAND", "agent --print")

    config = load_config()
    assert config.state_backend == "file"
    assert config.state_dir == "/var/lib/stepwright"
    assert config.default_model == "openai:gpt-4o"
    assert config.agent_command == "agent --print"

    monkeypatch.setenv("STEPWRIGHT_STATE_STORAGE", "SQLite")
    assert load_config().state_backend == "sqlite"


def test_invalid_backend(tmp_path, monkeypatch):
    monkeypatch.setenv("STEPWRIGHT_STATE_STORAGE", "postgres")
    with pytest.raises(ConfigurationError):
        load_config()

    config_path = tmp_path / "bad.yaml"
    config_path.write_text("state_backend: redis\n")
    monkeypatch.delenv("STEPWRIGHT_STATE_STORAGE")
    with pytest.raises(ConfigurationError, match="Invalid configuration"):
        load_config(str(config_path))


def test_load_workflow_defaults_name_to_directory(tmp_path):
    flow = tmp_path / "code_review"
    flow.mkdir()
    path = flow / "workflow.yml"
    path.write_text(
        """
steps:
  - fetch
  - summarize
summarize:
  model: openai:gpt-4o
  print_response: true
"""
    )
    definition = load_workflow(path)
    assert definition.name == "code_review"
    assert definition.steps == ["fetch", "summarize"]
    assert definition.step_config("summarize") == {"model": "openai:gpt-4o", "print_response": True}
    assert definition.step_config("fetch") == {}


@pytest.mark.parametrize(
    "content, message",
    [
        ("steps: [unclosed", "Invalid YAML"),
        ("- just\n- a list\n", "must be a mapping"),
        ("steps: 3\n", "Invalid workflow"),
    ],
)
def test_load_workflow_errors(tmp_path, content, message):
    path = tmp_path / "workflow.yml"
    path.write_text(content)
    with pytest.raises(ConfigurationError, match=message):
        load_workflow(path)


def test_missing_workflow_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot read workflow"):
        load_workflow(tmp_path / "nope.yml")
