"""Concurrent execution of list-shaped steps."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional

from ..contracts import ExecutionContext
from .base import StepExecutor

logger = logging.getLogger(__name__)


class ParallelExecutor(StepExecutor):
    """Runs each sub-step of a list on its own worker thread.

    All workers are joined before returning. When any worker fails, the
    error of the earliest failing sub-step (in step order) is raised; output
    written by the workers that succeeded stays in workflow memory.
    """

    def __init__(self, workflow_executor: Any, max_workers: Optional[int] = None) -> None:
        super().__init__(workflow_executor)
        self.max_workers = max_workers

    def execute(self, step: List[Any], context: ExecutionContext) -> List[Any]:
        if not step:
            return []

        coordinator = self.workflow_executor.coordinator
        logger.info(f"Executing {len(step)} steps in parallel")
        workers = self.max_workers or len(step)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="stepwright") as pool:
            futures = [
                pool.submit(coordinator.execute, substep, context.for_worker(index))
                for index, substep in enumerate(step)
            ]
            # leaving the block joins every worker
        errors = [(index, f.exception()) for index, f in enumerate(futures) if f.exception()]

        if errors:
            index, error = errors[0]
            logger.error(
                f"Parallel step {index} failed ({len(errors)} of {len(step)} failed): {error}"
            )
            raise error
        return [f.result() for f in futures]


__all__ = ["ParallelExecutor"]
