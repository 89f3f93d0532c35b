"""Command line interface for operating stepwright workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, Optional, TypeVar

import typer
import yaml
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from stepwright import CATALOG, WorkflowEngine, get_store
from stepwright.config import configure_logging, load_config
from stepwright.constants import ExecutionMode
from stepwright.definitions import WorkflowDefinitions, load_definitions
from stepwright.db.store import ExecutionStore
from stepwright.errors import StepwrightError

T = TypeVar("T")

app = typer.Typer(help="CLI for stepwright workflows")

definitions_app = typer.Typer(help="Commands for workflow definitions")
execution_app = typer.Typer(help="Commands for workflow executions")

app.add_typer(definitions_app, name="definitions")
app.add_typer(execution_app, name="execution")


@app.callback()
def main() -> None:
    """Stepwright CLI entry point."""
    configure_logging(load_config().log_level)


def _fail(error: StepwrightError) -> NoReturn:
    typer.secho(f"{type(error).__name__}: {error.message}", fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _run(action: Callable[[ExecutionStore], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly initialised store and dispose it afterwards."""

    async def runner() -> T:
        store = get_store(config=load_config())
        await store.init_db()
        try:
            return await action(store)
        finally:
            await store.dispose()

    try:
        return asyncio.run(runner())
    except StepwrightError as exc:
        _fail(exc)
    except IntegrityError as exc:
        typer.secho(f"Database constraint violated: {exc.orig}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _read_definitions(path: Path) -> WorkflowDefinitions:
    try:
        return load_definitions(path)
    except FileNotFoundError:
        typer.secho(f"File not found: {path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (ValidationError, yaml.YAMLError) as exc:
        typer.secho(f"Invalid definitions file {path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except StepwrightError as exc:
        _fail(exc)


@definitions_app.command("check")
def definitions_check(path: Path) -> None:
    """
    Validate a workflow definitions file without loading it.

    Example:
        stepwright definitions check workflow.yaml
    """
    definitions = _read_definitions(path)
    steps = sum(len(role.steps) for role in definitions.roles)
    typer.echo(
        f"OK: {len(definitions.roles)} roles, {steps} steps, "
        f"{len(definitions.transitions)} transitions"
    )


@definitions_app.command("load")
def definitions_load(path: Path) -> None:
    """
    Validate a workflow definitions file and load it into the database.

    Example:
        stepwright definitions load workflow.yaml
    """
    definitions = _read_definitions(path)
    counts = _run(lambda store: store.load_definitions(definitions))
    typer.echo(
        f"Loaded {counts['roles']} roles, {counts['steps']} steps, "
        f"{counts['transitions']} transitions"
    )


@execution_app.command("list")
def execution_list() -> None:
    """List executions with their role, phase and progress."""
    executions = _run(lambda store: WorkflowEngine(store).lifecycle.list_executions())
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(
            f"{execution.id}\t{execution.current_role_id}\t"
            f"{execution.phase}\t{execution.progress_percentage:.0f}%"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution and its transition history."""

    async def action(store: ExecutionStore) -> tuple[Any, Any]:
        engine = WorkflowEngine(store)
        execution = await engine.get_execution(execution_id)
        history = await engine.get_transition_history(execution_id)
        return execution, history

    execution, history = _run(action)
    typer.echo(f"Execution {execution.id}: {execution.phase}")
    typer.echo(f"Role: {execution.current_role_id}")
    typer.echo(f"Step: {execution.current_step_id or '-'}")
    typer.echo(
        f"Steps completed: {execution.steps_completed} "
        f"({execution.progress_percentage:.0f}% of role)"
    )
    if execution.task_id is not None:
        typer.echo(f"Task: {execution.task_id}")
    if execution.execution_context:
        typer.echo(f"Context: {json.dumps(execution.execution_context)}")
    if execution.completed_at:
        typer.echo(f"Completed at: {execution.completed_at.isoformat()}")
    for event in history:
        typer.echo(
            f"- {event.timestamp.isoformat()} {event.from_role_id} -> "
            f"{event.to_role_id}: {event.message or ''}"
        )


@execution_app.command("start")
def execution_start(
    role_name: str,
    mode: ExecutionMode = typer.Option(ExecutionMode.GUIDED, help="Execution mode"),
    task_id: Optional[int] = typer.Option(None, help="Task to attach"),
) -> None:
    """
    Bootstrap a new execution at the first step of a role.

    Example:
        stepwright execution start planner --mode AUTOMATED
    """
    execution = _run(
        lambda store: WorkflowEngine(store).bootstrap(role_name, mode, task_id=task_id)
    )
    typer.echo(f"Started execution {execution.id} at step {execution.current_step_id}")


@app.command("transitions")
def transitions(role_name: str) -> None:
    """List active transitions leaving a role, in ranking order."""
    rows = _run(lambda store: WorkflowEngine(store).get_role_transitions(role_name))
    if not rows:
        typer.echo("No transitions available")
        return
    for row in rows:
        conditions = ", ".join(f"{k}={v}" for k, v in row.conditions.items())
        typer.echo(f"{row.name}\t{row.id}\tpriority={row.priority}\t{conditions}")


@app.command("describe")
def describe(
    service_name: str,
    operation: str,
    camel_case: bool = typer.Option(False, help="Use itemType-style keys"),
) -> None:
    """Print the parameter descriptor of a catalog operation as JSON."""
    if (service_name, operation) not in CATALOG:
        typer.secho(
            f"Operation not registered: {service_name}.{operation}", fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    descriptor = CATALOG.describe(service_name, operation)
    typer.echo(json.dumps(descriptor.to_dict(camel_case), indent=2))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    app()
