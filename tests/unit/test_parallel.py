import threading

import pytest

from stepwright.contracts import ExecutionContext
from stepwright.errors import StepExecutionError
from stepwright.executors import ParallelExecutor
from stepwright.loader import register_step_class, unregister_step_class
from stepwright.steps import BaseStep


class Explode(BaseStep):
    def call(self):
        raise RuntimeError("worker exploded")


class ThreadName(BaseStep):
    def call(self):
        return threading.current_thread().name


@pytest.fixture(autouse=True)
def steps():
    register_step_class("explode", Explode)
    register_step_class("thread_name", ThreadName)
    yield
    unregister_step_class("explode")
    unregister_step_class("thread_name")


def test_parallel_results_keep_step_order(make_workflow, make_executor):
    workflow = make_workflow({"steps": []})
    results = make_executor(workflow).execute_steps([["$(echo one)", "$(echo two)", "Summarize the changes"]])
    one, two, summary = results[0]
    assert one.strip() == "one"
    assert two.strip() == "two"
    assert summary == "ok"
    assert set(workflow.output) == {"$(echo one)", "$(echo two)", "Summarize the changes"}


def test_parallel_steps_run_on_worker_threads(make_workflow, make_executor):
    workflow = make_workflow({"steps": []})
    make_executor(workflow).execute_steps([["thread_name"]])
    assert workflow.output["thread_name"].startswith("stepwright")


def test_workers_get_their_own_context(make_workflow, make_executor):
    executor = make_executor(make_workflow({"steps": []}))
    seen = []
    original = executor.coordinator.execute

    def recording_execute(step, context=None):
        seen.append((step, context))
        return original(step, context)

    executor.coordinator.execute = recording_execute
    parallel = ParallelExecutor(executor)
    parallel.execute(["Lint the code", "Run the tests"], ExecutionContext(step_key="group", exit_on_error=False))

    workers = {step: context for step, context in seen}
    assert workers["Lint the code"].worker == 0
    assert workers["Run the tests"].worker == 1
    assert workers["Lint the code"].step_key is None
    assert workers["Run the tests"].exit_on_error is None


def test_failing_worker_raises_after_siblings_finish(make_workflow, make_executor):
    workflow = make_workflow({"steps": []})
    with pytest.raises(StepExecutionError, match="worker exploded"):
        make_executor(workflow).execute_steps([["Summarize the changes", "explode", "$(echo done)"]])

    assert workflow.output["Summarize the changes"] == "ok"
    assert workflow.output["$(echo done)"].strip() == "done"
    assert "explode" not in workflow.output


def test_empty_group(make_workflow, make_executor):
    executor = make_executor(make_workflow({"steps": []}))
    assert ParallelExecutor(executor).execute([], ExecutionContext()) == []
