"""Command line interface for running stepwright workflows."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

from stepwright.config import load_config
from stepwright.errors import WorkflowError
from stepwright.persistence import get_state_repository
from stepwright.runner import WorkflowRunner

app = typer.Typer(help="CLI for stepwright workflows")

# Command groups
session_app = typer.Typer(help="Commands for inspecting workflow sessions")

app.add_typer(session_app, name="session")


@app.callback()
def main() -> None:
    """stepwright CLI entry point."""
    pass


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("run")
def run(
    workflow_path: Path,
    replay: Optional[str] = typer.Option(
        None, "--replay", "-r", help="Resume from a step: [session_timestamp:]step_name"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show command output and debug logs"),
    pause: Optional[str] = typer.Option(None, help="Pause before the named step"),
    session_name: Optional[str] = typer.Option(None, help="Name used to group persisted sessions"),
) -> None:
    """
    Run a workflow document.

    Executes every step of the workflow in order, persisting state after each
    one so the run can be resumed later with --replay.

    Example:
        stepwright run ./review/workflow.yml
        stepwright run ./review/workflow.yml --replay 20240101_120000_000:analyze
    """
    _configure_logging(verbose)
    if not workflow_path.exists():
        typer.secho(f"Workflow not found: {workflow_path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        runner = WorkflowRunner(
            workflow_path,
            replay=replay,
            verbose=verbose,
            pause_step_name=pause,
            session_name=session_name,
        )
        final_output = runner.run()
    except (WorkflowError, ValueError) as e:
        typer.secho(f"Workflow failed: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if final_output is None:
        typer.echo("Workflow paused. Resume it with: stepwright session event <event_name>")
    elif final_output:
        typer.echo(final_output)


@session_app.command("list")
def session_list(
    status: Optional[str] = None,
    workflow: Optional[str] = typer.Option(None, help="Only sessions of this workflow"),
    older_than: Optional[str] = typer.Option(None, help="Age filter such as '7d' or '12 hours'"),
    limit: int = 100,
) -> None:
    """
    List persisted workflow sessions, newest first.

    Example:
        stepwright session list --status waiting
        # Output: review_1a2b3c4d_20240101_120000_000    waiting    review
    """
    repo = get_state_repository(config=load_config())
    try:
        sessions = repo.list_sessions(
            status=status, workflow_name=workflow, older_than=older_than, limit=limit
        )
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not sessions:
        typer.echo("No sessions found")
        return
    for session in sessions:
        typer.echo(f"{session.id}\t{session.status}\t{session.workflow_name}")


@session_app.command("show")
def session_show(session_id: str) -> None:
    """
    Show a session with its saved step states and received events.
    """
    repo = get_state_repository(config=load_config())
    details = repo.get_session_details(session_id)
    if details is None:
        typer.echo("Session not found")
        raise typer.Exit(code=1)

    session = details.session
    typer.echo(f"Session {session.id}: {session.status}")
    typer.echo(f"Workflow: {session.workflow_name} ({session.workflow_path})")
    for state in details.states:
        typer.echo(f"- {state.step_index}: {state.step_name} ({state.created_at})")
    for event in details.events:
        typer.echo(f"* {event.event_name}: {event.event_data} ({event.received_at})")
    if session.final_output:
        typer.echo("Final output:")
        typer.echo(session.final_output)


@session_app.command("cleanup")
def session_cleanup(
    older_than: str = typer.Option("7d", help="Delete sessions older than this age"),
) -> None:
    """Delete sessions older than the given age."""
    repo = get_state_repository(config=load_config())
    try:
        removed = repo.cleanup_old_sessions(older_than)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Removed {removed} sessions")


@session_app.command("event")
def session_event(
    event_name: str,
    session_id: Optional[str] = typer.Option(None, help="Session to deliver the event to"),
    workflow_path: Optional[Path] = typer.Option(
        None, help="Deliver to the latest waiting session of this workflow"
    ),
    data: Optional[str] = typer.Option(None, help="JSON payload for the event"),
) -> None:
    """
    Deliver an external event to a waiting session.

    Example:
        stepwright session event approved --workflow-path ./review/workflow.yml --data '{"by": "ana"}'
    """
    if not session_id and not workflow_path:
        typer.secho("Either --session-id or --workflow-path is required", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    try:
        payload = json.loads(data) if data else None
    except ValueError as e:
        typer.secho(f"Invalid JSON payload: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_state_repository(config=load_config())
    path = str(workflow_path.resolve()) if workflow_path else None
    try:
        target = repo.add_event(path, session_id, event_name, payload)
    except LookupError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Event {event_name} delivered to session {target}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
