"""Executors for leaf steps: prompts, named steps, commands, agents and globs."""

from __future__ import annotations

import glob
import logging
from typing import Any

from ..classifier import extract_name, is_command, leading_key
from ..contracts import ExecutionContext, StepKind
from ..errors import CommandExecutionError
from .base import StepExecutor

logger = logging.getLogger(__name__)

COMMAND_ACKNOWLEDGEMENT = "Noted, thank you."


class NamedStepExecutor(StepExecutor):
    """Loads a step by name through the step loader and calls it."""

    def execute(self, step: Any, context: ExecutionContext) -> Any:
        name = self.interpolate(str(step).strip())
        if is_command(name):
            return self.workflow_executor.coordinator.executor_for(StepKind.COMMAND).execute(
                name, context
            )
        return self.run_step(name, context)

    def run_step(self, name: str, context: ExecutionContext, agent: bool = False) -> Any:
        loader = self.workflow_executor.loader

        def block() -> Any:
            logger.info(
                f"Executing: {name} (Resource type: {self.workflow.resource_type or 'unknown'})"
            )
            step_object = loader.load(
                name,
                step_key=context.step_key or name,
                agent=agent,
                is_last_step=context.is_last_step,
            )
            return self.store(name, step_object.call())

        return self.run_with_error_handling(name, block, context)


class AgentStepExecutor(NamedStepExecutor):
    """``^name``: the named step handed to the coding agent."""

    def execute(self, step: Any, context: ExecutionContext) -> Any:
        name = self.interpolate(extract_name(step) or "")
        return self.run_step(name, context.evolve(agent=True), agent=True)


class CommandStepExecutor(StepExecutor):
    """``$(...)`` steps run through the workflow's command executor."""

    def execute(self, step: Any, context: ExecutionContext) -> Any:
        command = self.interpolate(str(step).strip())
        exit_on_error = True if context.exit_on_error is None else context.exit_on_error
        command_executor = self.workflow_executor.command_executor

        def block() -> Any:
            logger.info(
                f"Executing: {command} (Resource type: {self.workflow.resource_type or 'unknown'})"
            )
            try:
                output = command_executor.execute(command, exit_on_error=exit_on_error)
            except CommandExecutionError as e:
                logger.error(f"Command failed: {command}")
                if e.exit_status is not None:
                    logger.error(f"Exit status: {e.exit_status}")
                if e.output and e.output.strip():
                    logger.error(f"Command output:\n{e.output.strip()}")
                elif not self.workflow.verbose:
                    logger.error("To see the command output, run with --verbose flag.")
                raise

            if self.workflow.verbose:
                logger.info(f"Command output:\n{output}")
            self.memory.append_message(
                "user",
                f"I just executed the following command: ```\n{command}\n```\n\n"
                f"Here is the output:\n\n```\n{output}\n```",
            )
            self.memory.append_message("assistant", COMMAND_ACKNOWLEDGEMENT)
            return self.store(command, output)

        return self.run_with_error_handling(command, block, context)


class GlobStepExecutor(StepExecutor):
    """Expands a wildcard pattern to a newline separated list of paths."""

    def execute(self, step: Any, context: ExecutionContext) -> Any:
        pattern = str(step).strip()
        matches = sorted(glob.glob(pattern, recursive=True))
        logger.debug(f"Glob {pattern} matched {len(matches)} paths")
        return self.store(pattern, "\n".join(matches))


class LabeledStepExecutor(StepExecutor):
    """``{label: step}``: runs the inner step and stores it under the label."""

    def execute(self, step: Any, context: ExecutionContext) -> Any:
        key = leading_key(step)
        inner = step[key]
        label = str(self.interpolate(key))
        coordinator = self.workflow_executor.coordinator

        if isinstance(inner, dict):
            return coordinator.execute_steps([inner], context)

        result = coordinator.execute(self.interpolate(inner), context.evolve(step_key=label))
        return self.store(label, result)


__all__ = [
    "AgentStepExecutor",
    "CommandStepExecutor",
    "GlobStepExecutor",
    "LabeledStepExecutor",
    "NamedStepExecutor",
]
