from __future__ import annotations

from typing import Any

from .base import BaseStep


class PromptStep(BaseStep):
    """An inline prompt: the step name is the prompt text."""

    def call(self) -> Any:
        self.prompt(self.name)
        result = self.chat_completion()
        return self.apply_coercion(result)
