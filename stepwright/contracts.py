"""Core contracts shared by the stepwright execution engine."""

from __future__ import annotations

import copy
import threading
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict


class StepKind(str, Enum):
    """Every shape a workflow step can take."""

    PARALLEL = "parallel"
    COMMAND = "command"
    AGENT = "agent"
    GLOB = "glob"
    ITERATION = "iteration"
    CONDITIONAL = "conditional"
    CASE = "case"
    INPUT = "input"
    LABELED = "labeled"
    PROMPT = "prompt"
    STANDARD = "standard"


class ExecutionContext(BaseModel):
    """Per-call execution context passed explicitly through the engine.

    The coordinator stamps the current step onto a fresh copy before handing
    it to an executor, and parallel workers each receive their own copy, so
    nothing about "the step being executed" lives in global state.
    """

    step_name: Optional[str] = None
    step_key: Optional[str] = None
    exit_on_error: Optional[bool] = None
    is_last_step: bool = False
    agent: bool = False
    worker: Optional[int] = None
    retries: int = 0
    retry_policy: Optional[Any] = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def evolve(self, **changes: Any) -> "ExecutionContext":
        """Return a copy with ``changes`` applied."""
        return self.model_copy(update=changes)

    def for_worker(self, worker: int) -> "ExecutionContext":
        """Context for a parallel worker, with no step-specific options."""
        return ExecutionContext(worker=worker)


class DotAccessDict(Mapping[str, Any]):
    """Read-only mapping that also exposes keys as attributes.

    Lets workflow expressions write ``fetch.items`` instead of
    ``output["fetch"]["items"]``.
    """

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"DotAccessDict({dict(self._data)!r})"

    def to_dict(self) -> dict:
        return dict(self._data)


def _wrap(value: Any) -> Any:
    if isinstance(value, Mapping) and not isinstance(value, DotAccessDict):
        return DotAccessDict(value)
    return value


class WorkflowMemory:
    """Mutable state accumulated across a single workflow run.

    The output map preserves insertion order. Every read and write goes
    through an internal lock because parallel workers insert concurrently.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._transcript: List[Dict[str, Any]] = []
        self._output: Dict[str, Any] = {}
        self._final_output: List[str] = []
        self._metadata: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Output
    def set_output(self, key: str, value: Any) -> None:
        with self._lock:
            self._output[key] = value

    def get_output(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._output.get(key, default)

    def has_output(self, key: str) -> bool:
        with self._lock:
            return key in self._output

    def output_keys(self) -> List[str]:
        with self._lock:
            return list(self._output.keys())

    @property
    def output(self) -> Dict[str, Any]:
        """Shallow copy of the output map."""
        with self._lock:
            return dict(self._output)

    # ------------------------------------------------------------------
    # Transcript
    def append_message(self, role: str, content: Any) -> None:
        with self._lock:
            self._transcript.append({"role": role, "content": content})

    @property
    def transcript(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(message) for message in self._transcript]

    # ------------------------------------------------------------------
    # Final output
    def append_final_output(self, fragment: Any) -> None:
        with self._lock:
            self._final_output.append(str(fragment))

    @property
    def final_output_fragments(self) -> List[str]:
        with self._lock:
            return list(self._final_output)

    @property
    def final_output(self) -> str:
        with self._lock:
            return "\n\n".join(self._final_output)

    # ------------------------------------------------------------------
    # Metadata
    def store_metadata(self, step_name: str, key: str, value: Any) -> None:
        with self._lock:
            self._metadata.setdefault(step_name, {})[key] = value

    def get_metadata(self, step_name: str, key: Optional[str] = None) -> Any:
        with self._lock:
            step_metadata = self._metadata.get(step_name, {})
            if key is None:
                return dict(step_metadata)
            return step_metadata.get(key)

    @property
    def metadata(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: dict(values) for name, values in self._metadata.items()}

    # ------------------------------------------------------------------
    # Snapshots
    def copy_state(self) -> Dict[str, Any]:
        """Deep copy of every memory section, for persistence."""
        with self._lock:
            return {
                "transcript": copy.deepcopy(self._transcript),
                "output": copy.deepcopy(self._output),
                "final_output": list(self._final_output),
                "metadata": copy.deepcopy(self._metadata),
            }

    def restore(
        self,
        transcript: Optional[List[Dict[str, Any]]] = None,
        output: Optional[Dict[str, Any]] = None,
        final_output: Any = None,
        metadata: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> None:
        """Replace memory sections with persisted values."""
        with self._lock:
            if transcript is not None:
                self._transcript = [dict(message) for message in transcript]
            if output is not None:
                self._output = dict(output)
            if final_output is not None:
                if isinstance(final_output, str):
                    final_output = [final_output] if final_output else []
                self._final_output = [str(fragment) for fragment in final_output]
            if metadata is not None:
                self._metadata = {k: dict(v) for k, v in metadata.items()}


__all__ = [
    "StepKind",
    "ExecutionContext",
    "DotAccessDict",
    "WorkflowMemory",
]
