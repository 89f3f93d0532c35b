"""Execution lifecycle: bootstrap, step start/completion and context updates."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .constants import ExecutionMode, ExecutionPhase, StepResult, StepStatus
from .contracts import (
    CompletedStepSummary,
    ExecutionSnapshot,
    ResolveResult,
    RoleSummary,
    StepCompletion,
    StepProgress,
    StepSummary,
    TransitionSummary,
)
from .db.models import WorkflowExecution, WorkflowStepProgress, utcnow
from .db.store import ExecutionStore, StoreSession
from .errors import NoActiveStep, NoStepsForRole, RoleNotFound, StepConflict, StepNotFound
from .resolver import (
    current_step_for,
    load_execution,
    ordered_steps,
    resolve_for,
    step_statuses,
)
from .transitions import is_terminal_role

logger = logging.getLogger(__name__)


def _with_state(execution: WorkflowExecution, **updates: Any) -> None:
    state = dict(execution.execution_state or {})
    state.update(updates)
    execution.execution_state = state


async def _role_progress(tx: StoreSession, execution: WorkflowExecution) -> float:
    """Completed steps of the current role as a percentage of its steps."""
    steps = await ordered_steps(tx, execution.current_role_id)
    if not steps:
        return 100.0
    statuses = await step_statuses(tx, execution)
    done = sum(1 for step in steps if statuses.get(step.id) == StepStatus.COMPLETED)
    return round(done / len(steps) * 100, 2)


class ExecutionLifecycle:
    """Creates executions and records step progress against them.

    Every mutating call runs in a single transaction holding the execution
    row lock, so two concurrent reports for one execution cannot both
    advance its step pointer.
    """

    def __init__(self, store: ExecutionStore) -> None:
        self.store = store

    async def bootstrap(
        self,
        role_name: str,
        mode: ExecutionMode | str = ExecutionMode.GUIDED,
        context: Optional[Mapping[str, Any]] = None,
        task_id: Optional[int] = None,
    ) -> ExecutionSnapshot:
        """Start a new execution at the first step of ``role_name``.

        Raises:
            RoleNotFound: no role with that name is configured.
            NoStepsForRole: the role has no steps to start from.
        """
        operation = "bootstrap"
        mode = ExecutionMode(mode)
        async with self.store.transaction() as tx:
            role = await tx.get_role_by_name(role_name)
            if role is None:
                raise RoleNotFound(role_name, operation)
            steps = await ordered_steps(tx, role.id, operation)
            if not steps:
                raise NoStepsForRole(role_name, operation)

            first = steps[0]
            now = utcnow()
            execution = WorkflowExecution(
                task_id=task_id,
                current_role_id=role.id,
                current_step_id=first.id,
                execution_mode=mode.value,
                total_steps=len(steps),
                execution_context=dict(context or {}),
                execution_state={
                    "phase": ExecutionPhase.INITIALIZED.value,
                    "bootstrapped_at": now.isoformat(),
                    "initial_role": role.name,
                    "assigned_step_id": first.id,
                    "assigned_step_name": first.name,
                },
                started_at=now,
                created_at=now,
                updated_at=now,
            )
            tx.add(execution)
            await tx.flush()
            snapshot = ExecutionSnapshot.from_row(execution)

        logger.info(
            f"Bootstrapped execution {snapshot.id} in role {role_name} "
            f"at step {first.name} ({mode.value})"
        )
        return snapshot

    async def start_step(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> ResolveResult:
        """Mark the resolved step as started; a step already in progress is returned as is.

        A failed step is restarted by calling this again, which appends a
        new progress row for it.
        """
        operation = "start_step"
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, task_id, operation, lock=True)
            step, reason = await resolve_for(tx, execution, operation)
            if step is None:
                raise NoActiveStep(execution.id, reason, operation)
            if reason != "resume":
                now = utcnow()
                tx.add(
                    WorkflowStepProgress(
                        execution_id=execution.id,
                        task_id=execution.task_id,
                        step_id=step.id,
                        role_id=step.role_id,
                        status=StepStatus.IN_PROGRESS.value,
                        started_at=now,
                        created_at=now,
                    )
                )
                execution.current_step_id = step.id
                execution.updated_at = now
                _with_state(
                    execution,
                    phase=ExecutionPhase.STEP_IN_PROGRESS.value,
                    current_step_name=step.name,
                )
                await tx.flush()
                logger.info(f"Execution {execution.id}: started step {step.name} ({reason})")
            summary = StepSummary.from_row(step)
            resolved_id = execution.id

        return ResolveResult(step=summary, reason=reason, execution_id=resolved_id)

    async def complete_step(
        self,
        execution_id: str,
        step_id: str,
        result: StepResult | str = StepResult.SUCCESS,
        payload: Optional[Mapping[str, Any]] = None,
        duration_ms: Optional[int] = None,
        error: Optional[str] = None,
    ) -> StepCompletion:
        """Record the outcome of a step and advance the execution.

        On success the next step of the role becomes current. When the role
        has no steps left the pointer is cleared and the caller must execute
        a role transition, unless the role is terminal, in which case the
        execution is complete. On failure the pointer stays on the step.

        Raises:
            StepNotFound: ``step_id`` is unknown.
            StepConflict: the step is not the one the execution is on.
        """
        operation = "complete_step"
        result = StepResult(result)
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, operation=operation, lock=True)
            step = await tx.get_step(step_id)
            if step is None:
                raise StepNotFound(step_id, operation)
            if execution.completed_at is not None:
                raise StepConflict(execution_id, step_id, "execution is already complete", operation)
            if step.role_id != execution.current_role_id:
                raise StepConflict(
                    execution_id, step_id, "step does not belong to the current role", operation
                )

            row = await tx.in_progress(execution.id)
            if row is not None and row.step_id != step_id:
                raise StepConflict(
                    execution_id,
                    step_id,
                    f"step {row.step_id} is in progress",
                    operation,
                )
            if row is None:
                expected, reason = await resolve_for(tx, execution, operation)
                if expected is None or expected.id != step_id:
                    detail = (
                        f"expected step {expected.id}" if expected else f"role state is {reason}"
                    )
                    raise StepConflict(
                        execution_id, step_id, f"not the active step ({detail})", operation
                    )
                row = WorkflowStepProgress(
                    execution_id=execution.id,
                    task_id=execution.task_id,
                    step_id=step.id,
                    role_id=step.role_id,
                    status=StepStatus.IN_PROGRESS.value,
                )
                tx.add(row)

            now = utcnow()
            if row.started_at is None:
                row.started_at = now
            row.execution_data = dict(payload) if payload is not None else None
            row.result = result.value
            if duration_ms is None:
                duration_ms = int((now - row.started_at).total_seconds() * 1000)
            row.duration_ms = duration_ms
            execution.updated_at = now

            if result is StepResult.FAILURE:
                row.status = StepStatus.FAILED.value
                row.failed_at = now
                row.error_details = {"message": error} if error else None
                execution.current_step_id = step.id
                execution.last_error = {
                    "step_id": step.id,
                    "message": error,
                    "at": now.isoformat(),
                }
                _with_state(execution, phase=ExecutionPhase.STEP_FAILED.value)
                await tx.flush()
                snapshot = ExecutionSnapshot.from_row(execution)
                logger.info(f"Execution {execution_id}: step {step.name} failed")
                return StepCompletion(
                    outcome="step_failed",
                    execution=snapshot,
                    next_step=StepSummary.from_row(step),
                )

            row.status = StepStatus.COMPLETED.value
            row.completed_at = now
            execution.steps_completed += 1
            await tx.flush()
            logger.info(f"Execution {execution_id}: completed step {step.name}")

            execution.progress_percentage = await _role_progress(tx, execution)
            next_step, reason = await resolve_for(tx, execution, operation)
            transitions: list[TransitionSummary] = []
            if next_step is not None:
                execution.current_step_id = next_step.id
                _with_state(
                    execution,
                    phase=ExecutionPhase.STEP_COMPLETED.value,
                    assigned_step_id=next_step.id,
                    assigned_step_name=next_step.name,
                )
                outcome = "next_step"
            else:
                execution.current_step_id = None
                rows = await tx.transitions_from(execution.current_role_id, active_only=True)
                transitions = [TransitionSummary.from_row(t) for t in rows]
                if await is_terminal_role(tx, execution.current_role_id):
                    execution.completed_at = now
                    _with_state(execution, phase=ExecutionPhase.COMPLETED.value)
                    outcome = "workflow_complete"
                else:
                    _with_state(execution, phase=ExecutionPhase.TRANSITION_REQUIRED.value)
                    outcome = "role_transition_required"
            await tx.flush()
            snapshot = ExecutionSnapshot.from_row(execution)

        if outcome == "workflow_complete":
            logger.info(f"Execution {execution_id} completed")
        elif outcome == "role_transition_required":
            logger.info(
                f"Execution {execution_id}: role steps exhausted, "
                f"{len(transitions)} transition(s) available"
            )
        return StepCompletion(
            outcome=outcome,
            execution=snapshot,
            next_step=StepSummary.from_row(next_step) if next_step else None,
            transitions=transitions,
        )

    async def attach_task(self, execution_id: str, task_id: int) -> ExecutionSnapshot:
        async with self.store.transaction() as tx:
            execution = await load_execution(
                tx, execution_id, operation="attach_task", lock=True
            )
            execution.task_id = task_id
            execution.updated_at = utcnow()
            await tx.flush()
            return ExecutionSnapshot.from_row(execution)

    async def update_context(
        self, execution_id: str, patch: Mapping[str, Any]
    ) -> ExecutionSnapshot:
        """Merge ``patch`` into the execution context."""
        async with self.store.transaction() as tx:
            execution = await load_execution(
                tx, execution_id, operation="update_context", lock=True
            )
            context = dict(execution.execution_context or {})
            context.update(patch)
            execution.execution_context = context
            execution.updated_at = utcnow()
            await tx.flush()
            return ExecutionSnapshot.from_row(execution)

    async def get_execution(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> ExecutionSnapshot:
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, task_id, "get_execution")
            return ExecutionSnapshot.from_row(execution)

    async def step_progress(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> StepProgress:
        """Summarise the progress ledger of an execution.

        ``steps_completed`` counts COMPLETED progress rows across every role
        visited, so a role entered twice contributes its steps twice.
        """
        operation = "get_step_progress"
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, task_id, operation)
            completed = await tx.count_progress(execution.id, StepStatus.COMPLETED)
            role = await tx.get_role(execution.current_role_id)
            step = await current_step_for(tx, execution)

            last_completed: Optional[CompletedStepSummary] = None
            row = await tx.last_completed(execution.id)
            if row is not None:
                done_step = await tx.get_step(row.step_id)
                done_role = await tx.get_role(row.role_id)
                last_completed = CompletedStepSummary(
                    step_id=row.step_id,
                    step_name=done_step.name if done_step else row.step_id,
                    role_name=done_role.name if done_role else None,
                    completed_at=row.completed_at,
                    summary=(row.execution_data or {}).get("output_summary"),
                )

            snapshot = ExecutionSnapshot.from_row(execution)
            return StepProgress(
                execution_id=snapshot.id,
                task_id=snapshot.task_id,
                status="completed" if snapshot.is_complete else "in_progress",
                current_role=RoleSummary.from_row(role) if role else None,
                current_step=StepSummary.from_row(step) if step else None,
                phase=snapshot.phase,
                execution_mode=snapshot.execution_mode,
                steps_completed=completed,
                total_steps=snapshot.total_steps,
                progress_percentage=snapshot.progress_percentage,
                started_at=snapshot.started_at,
                completed_at=snapshot.completed_at,
                last_completed_step=last_completed,
                is_ready=step is not None and not snapshot.is_complete,
            )

    async def list_executions(self) -> list[ExecutionSnapshot]:
        async with self.store.transaction() as tx:
            rows = await tx.list_executions()
            return [ExecutionSnapshot.from_row(row) for row in rows]
