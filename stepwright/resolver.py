"""Step resolution: which step of the current role an execution works on."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .constants import StepStatus
from .contracts import ResolveResult, StepSummary
from .db.models import WorkflowExecution, WorkflowStep
from .db.store import ExecutionStore, StoreSession
from .errors import ConfigurationError, ExecutionNotFound

logger = logging.getLogger(__name__)


async def load_execution(
    tx: StoreSession,
    execution_id: Optional[str] = None,
    task_id: Optional[int] = None,
    operation: Optional[str] = None,
    lock: bool = False,
) -> WorkflowExecution:
    """Find an execution by id, or the most recent one for ``task_id``."""
    execution: Optional[WorkflowExecution] = None
    if execution_id is not None:
        if lock:
            execution = await tx.lock_execution(execution_id)
        else:
            execution = await tx.get_execution(execution_id)
    elif task_id is not None:
        execution = await tx.latest_execution_for_task(task_id)
        if execution is not None and lock:
            execution = await tx.lock_execution(execution.id)
    if execution is None:
        raise ExecutionNotFound(execution_id, task_id, operation)
    return execution


async def ordered_steps(
    tx: StoreSession, role_id: str, operation: Optional[str] = None
) -> list[WorkflowStep]:
    """Steps of a role by sequence number.

    Raises:
        ConfigurationError: two steps share a sequence number.
    """
    steps = await tx.steps_for_role(role_id)
    counts = Counter(step.sequence_number for step in steps)
    duplicated = sorted(number for number, count in counts.items() if count > 1)
    if duplicated:
        raise ConfigurationError(
            f"Role {role_id} has duplicate step sequence numbers: "
            f"{', '.join(str(n) for n in duplicated)}",
            operation,
            {"role_id": role_id, "sequence_numbers": duplicated},
        )
    return steps


async def step_statuses(
    tx: StoreSession, execution: WorkflowExecution
) -> dict[str, StepStatus]:
    """Status per step id, taken from the most recent progress row.

    Rows written before the execution last entered its current role are
    ignored, so a role visited again starts from its first step.
    """
    floor = int((execution.execution_state or {}).get("progress_floor", 0))
    latest = await tx.latest_progress_by_step(execution.id, after_id=floor)
    return {step_id: StepStatus(row.status) for step_id, row in latest.items()}


async def resolve_for(
    tx: StoreSession, execution: WorkflowExecution, operation: str = "resolve_next"
) -> tuple[Optional[WorkflowStep], str]:
    """Resolve the step to work on next and the reason it was chosen.

    A started step is always resumed before anything else. Otherwise the
    first step after the highest completed sequence number that is neither
    completed nor in progress is chosen; failing that, the lowest step that
    is still not completed (an earlier failure) is retried.
    """
    active = await tx.in_progress(execution.id)
    if active is not None:
        step = await tx.get_step(active.step_id)
        if step is not None:
            logger.debug(f"Execution {execution.id}: resuming step {step.name}")
            return step, "resume"

    steps = await ordered_steps(tx, execution.current_role_id, operation)
    if not steps:
        logger.debug(f"Execution {execution.id}: role has no steps")
        return None, "no_steps"

    statuses = await step_statuses(tx, execution)

    def status_of(step: WorkflowStep) -> StepStatus:
        return statuses.get(step.id, StepStatus.NOT_STARTED)

    completed = [s.sequence_number for s in steps if status_of(s) == StepStatus.COMPLETED]
    highest = max(completed, default=0)
    for step in steps:
        if step.sequence_number <= highest:
            continue
        if status_of(step) in (StepStatus.COMPLETED, StepStatus.IN_PROGRESS):
            continue
        reason = "retry" if status_of(step) == StepStatus.FAILED else "next"
        logger.debug(f"Execution {execution.id}: {reason} step {step.name}")
        return step, reason

    remaining = [s for s in steps if status_of(s) != StepStatus.COMPLETED]
    if not remaining:
        logger.debug(f"Execution {execution.id}: role complete")
        return None, "role_complete"

    logger.debug(f"Execution {execution.id}: retry step {remaining[0].name}")
    return remaining[0], "retry"


async def current_step_for(
    tx: StoreSession, execution: WorkflowExecution
) -> Optional[WorkflowStep]:
    active = await tx.in_progress(execution.id)
    if active is not None:
        return await tx.get_step(active.step_id)
    if execution.current_step_id is None:
        return None
    return await tx.get_step(execution.current_step_id)


class StepResolver:
    """Read-only step resolution, one transaction per call."""

    def __init__(self, store: ExecutionStore) -> None:
        self.store = store

    async def current_step(self, execution_id: str) -> Optional[StepSummary]:
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, operation="current_step")
            step = await current_step_for(tx, execution)
        return StepSummary.from_row(step) if step else None

    async def resolve_next(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> ResolveResult:
        async with self.store.transaction() as tx:
            execution = await load_execution(
                tx, execution_id, task_id, operation="resolve_next"
            )
            step, reason = await resolve_for(tx, execution)
        return ResolveResult(
            step=StepSummary.from_row(step) if step else None,
            reason=reason,
            execution_id=execution.id,
        )

    async def first_step_for_role(self, role_id: str) -> Optional[StepSummary]:
        async with self.store.transaction() as tx:
            step = await tx.first_step_for_role(role_id)
        return StepSummary.from_row(step) if step else None
