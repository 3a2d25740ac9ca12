"""Language-model completion seam and its pydantic-ai adapter."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)

from .config import DEFAULT_MODEL

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class CompletionClient(Protocol):
    """Anything that turns a transcript into a model response."""

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None,
        tools: Optional[Sequence[Callable[..., Any]]] = None,
    ) -> Any:
        ...


def to_model_messages(messages: List[Dict[str, Any]]) -> List[ModelMessage]:
    """Convert ``{"role", "content"}`` dicts into pydantic-ai message history."""
    history: List[ModelMessage] = []
    for message in messages:
        role = message.get("role")
        content = str(message.get("content", ""))
        if role == "system":
            history.append(ModelRequest(parts=[SystemPromptPart(content=content)]))
        elif role == "assistant":
            history.append(ModelResponse(parts=[TextPart(content=content)]))
        else:
            history.append(ModelRequest(parts=[UserPromptPart(content=content)]))
    return history


def parse_json_response(text: Any) -> Any:
    """Decode a JSON answer, tolerating a surrounding code fence."""
    if not isinstance(text, str):
        return text
    candidate = text.strip()
    match = _CODE_FENCE.match(candidate)
    if match:
        candidate = match.group(1)
    try:
        return json.loads(candidate)
    except ValueError:
        logger.warning("Model response was not valid JSON, returning raw text")
        return text


class PydanticAICompletionClient:
    """Runs completions through :class:`pydantic_ai.Agent`.

    The agent is built per call so that a missing provider API key only
    fails the step that needs a model.
    """

    def __init__(self, default_model: str = DEFAULT_MODEL):
        self.default_model = default_model

    def build_agent(
        self, model: str, tools: Optional[Sequence[Callable[..., Any]]] = None
    ) -> Agent:
        return Agent(model, output_type=str, tools=list(tools or []))

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        json: bool = False,
        params: Optional[Dict[str, Any]] = None,
        tools: Optional[Sequence[Callable[..., Any]]] = None,
    ) -> Any:
        if not messages:
            raise ValueError("Cannot request a completion without messages")

        *history, last = messages
        prompt = str(last.get("content", ""))
        if json:
            prompt = f"{prompt}\n\nRespond with valid JSON only."

        agent = self.build_agent(model or self.default_model, tools)
        logger.debug(f"Requesting completion from {model or self.default_model}")
        result = agent.run_sync(
            prompt,
            message_history=to_model_messages(history) or None,
            model_settings=dict(params) if params else None,
        )
        output = result.output
        return parse_json_response(output) if json else output


__all__ = [
    "CompletionClient",
    "PydanticAICompletionClient",
    "parse_json_response",
    "to_model_messages",
]
