"""Role transitions: ranking, validation and transactional execution."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .audit import AuditSink, LoggingAuditSink
from .constants import ExecutionPhase, StepStatus
from .contracts import (
    ExecutionSnapshot,
    TransitionEvent,
    TransitionSummary,
    TransitionValidation,
)
from .db.models import RoleTransition, TransitionRecord, WorkflowExecution, utcnow
from .db.store import ExecutionStore, StoreSession
from .errors import RoleNotFound, TransitionNotAllowed, TransitionNotFound
from .resolver import load_execution, ordered_steps, step_statuses

logger = logging.getLogger(__name__)


def evaluation_context(execution: WorkflowExecution) -> dict[str, Any]:
    """Execution context overlaid with ``execution_state["context"]``."""
    context = dict(execution.execution_context or {})
    state_context = (execution.execution_state or {}).get("context")
    if isinstance(state_context, Mapping):
        context.update(state_context)
    return context


def unmet_conditions(
    conditions: Mapping[str, bool], context: Mapping[str, Any]
) -> list[str]:
    """Names of conditions whose expected value does not match ``context``.

    Missing keys are falsy, so ``{"reviewed": False}`` holds when the key
    is absent.
    """
    return [
        name
        for name, expected in conditions.items()
        if bool(context.get(name)) != bool(expected)
    ]


async def is_terminal_role(tx: StoreSession, role_id: str) -> bool:
    role = await tx.get_role(role_id)
    if role is not None and role.is_terminal:
        return True
    return not await tx.transitions_from(role_id, active_only=True)


async def active_transition(
    tx: StoreSession, transition_id: str, operation: str
) -> RoleTransition:
    transition = await tx.get_transition(transition_id)
    if transition is None or not transition.is_active:
        raise TransitionNotFound(transition_id, operation)
    return transition


async def validate_for(
    tx: StoreSession, transition: RoleTransition, execution: WorkflowExecution
) -> TransitionValidation:
    issues: list[str] = []
    if execution.completed_at is not None:
        issues.append("execution is already complete")
    if execution.current_role_id != transition.from_role_id:
        issues.append(
            f"execution is in role {execution.current_role_id}, "
            f"transition starts from role {transition.from_role_id}"
        )

    steps = await ordered_steps(tx, execution.current_role_id, "validate_transition")
    statuses = await step_statuses(tx, execution)
    incomplete = [
        step.name
        for step in steps
        if statuses.get(step.id, StepStatus.NOT_STARTED) != StepStatus.COMPLETED
    ]
    if incomplete:
        issues.append(f"steps not completed: {', '.join(incomplete)}")

    missing = unmet_conditions(transition.conditions or {}, evaluation_context(execution))
    return TransitionValidation(
        ok=not issues and not missing,
        transition_id=transition.id,
        execution_id=execution.id,
        missing=missing,
        issues=issues,
        requirements=list(transition.requirements or []),
        validation_criteria=list(transition.validation_criteria or []),
        deliverables=list(transition.deliverables or []),
    )


class RoleTransitionEngine:
    """Moves executions between roles along configured transitions."""

    def __init__(
        self, store: ExecutionStore, audit_sink: Optional[AuditSink] = None
    ) -> None:
        self.store = store
        self.audit_sink = audit_sink or LoggingAuditSink()

    async def available_transitions(self, from_role_id: str) -> list[TransitionSummary]:
        """Active transitions leaving a role, highest priority first then by name."""
        async with self.store.transaction() as tx:
            rows = await tx.transitions_from(from_role_id, active_only=True)
        return [TransitionSummary.from_row(row) for row in rows]

    async def available_transitions_for_role_name(
        self, role_name: str
    ) -> list[TransitionSummary]:
        async with self.store.transaction() as tx:
            role = await tx.get_role_by_name(role_name)
            if role is None:
                raise RoleNotFound(role_name, "get_role_transitions")
            rows = await tx.transitions_from(role.id, active_only=True)
        return [TransitionSummary.from_row(row) for row in rows]

    async def validate(self, transition_id: str, execution_id: str) -> TransitionValidation:
        """Check a transition without changing anything. Always safe to repeat."""
        operation = "validate_transition"
        async with self.store.transaction() as tx:
            transition = await active_transition(tx, transition_id, operation)
            execution = await load_execution(tx, execution_id, operation=operation)
            return await validate_for(tx, transition, execution)

    async def execute(
        self,
        transition_id: str,
        execution_id: str,
        handoff_message: Optional[str] = None,
    ) -> ExecutionSnapshot:
        """Apply a transition inside one transaction holding the execution row lock.

        Validation is repeated under the lock so that a concurrent caller
        that already moved the execution causes ``TransitionNotAllowed``.
        """
        operation = "execute_transition"
        async with self.store.transaction() as tx:
            transition = await active_transition(tx, transition_id, operation)
            execution = await load_execution(
                tx, execution_id, operation=operation, lock=True
            )
            validation = await validate_for(tx, transition, execution)
            if not validation.ok:
                raise TransitionNotAllowed(
                    transition_id,
                    execution_id,
                    validation.missing,
                    validation.issues,
                    operation,
                )

            now = utcnow()
            message = handoff_message or transition.handoff_message
            target_steps = await ordered_steps(tx, transition.to_role_id, operation)
            first_step = target_steps[0] if target_steps else None

            execution.current_role_id = transition.to_role_id
            execution.current_step_id = first_step.id if first_step else None
            execution.total_steps = len(target_steps)
            execution.progress_percentage = 0.0
            execution.updated_at = now

            state = dict(execution.execution_state or {})
            state["last_transition"] = {
                "transition_id": transition.id,
                "name": transition.name,
                "from_role_id": transition.from_role_id,
                "to_role_id": transition.to_role_id,
                "message": message,
                "at": now.isoformat(),
            }
            state["progress_floor"] = await tx.last_progress_id(execution.id)
            if first_step is not None:
                state["phase"] = ExecutionPhase.ROLE_TRANSITIONED.value
                state["assigned_step_id"] = first_step.id
            elif await is_terminal_role(tx, transition.to_role_id):
                state["phase"] = ExecutionPhase.COMPLETED.value
                execution.completed_at = now
                execution.progress_percentage = 100.0
            else:
                state["phase"] = ExecutionPhase.TRANSITION_REQUIRED.value
            execution.execution_state = state

            record = TransitionRecord(
                execution_id=execution.id,
                transition_id=transition.id,
                from_role_id=transition.from_role_id,
                to_role_id=transition.to_role_id,
                message=message,
                created_at=now,
            )
            tx.add(record)
            await tx.flush()
            snapshot = ExecutionSnapshot.from_row(execution)
            event = TransitionEvent.from_record(record)

        logger.info(
            f"Execution {execution_id} transitioned via {transition.name} "
            f"to role {transition.to_role_id} (phase {snapshot.phase})"
        )
        if snapshot.is_complete:
            logger.info(f"Execution {execution_id} completed")
        await self.audit_sink.record(event)
        return snapshot

    async def transition_history(self, execution_id: str) -> list[TransitionEvent]:
        """Executed transitions, newest first."""
        async with self.store.transaction() as tx:
            await load_execution(tx, execution_id, operation="get_transition_history")
            records = await tx.transition_records(execution_id)
        return [TransitionEvent.from_record(record) for record in records]
