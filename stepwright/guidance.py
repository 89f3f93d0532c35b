"""Guidance payloads: everything an agent needs to carry out one step."""

from __future__ import annotations

import logging
from typing import Optional

from .catalog import CATALOG, OperationCatalog
from .contracts import ActionGuidance, GuidancePayload, RoleSummary, StepSummary
from .db.models import WorkflowExecution, WorkflowStep
from .db.store import ExecutionStore, StoreSession
from .errors import NoActiveStep, RoleNotFound, StepNotFound
from .resolver import current_step_for, load_execution, resolve_for

logger = logging.getLogger(__name__)


class GuidanceAssembler:
    """Builds a ``GuidancePayload`` for the step an execution is on.

    Each action is annotated with the parameter descriptor of the
    operation it references, taken from the operation catalog.
    """

    def __init__(
        self, store: ExecutionStore, catalog: Optional[OperationCatalog] = None
    ) -> None:
        self.store = store
        self.catalog = catalog if catalog is not None else CATALOG

    async def guidance(
        self,
        execution_id: Optional[str] = None,
        task_id: Optional[int] = None,
        role_id: Optional[str] = None,
        step_id: Optional[str] = None,
    ) -> GuidancePayload:
        """Assemble guidance for ``step_id``, or for the current step when omitted.

        Raises:
            StepNotFound: ``step_id`` does not exist.
            NoActiveStep: no step is resolvable for the execution.
        """
        operation = "get_step_guidance"
        async with self.store.transaction() as tx:
            execution = await load_execution(tx, execution_id, task_id, operation)
            if role_id is not None and role_id != execution.current_role_id:
                logger.warning(
                    f"Guidance for execution {execution.id} requested for role "
                    f"{role_id}, but the execution is in role {execution.current_role_id}"
                )

            if step_id is not None:
                step = await tx.get_step(step_id)
                if step is None:
                    raise StepNotFound(step_id, operation)
            else:
                step = await current_step_for(tx, execution)
                if step is None:
                    step, reason = await resolve_for(tx, execution, operation)
                    if step is None:
                        raise NoActiveStep(execution.id, reason, operation)
            return await self.build(tx, execution, step)

    async def build(
        self, tx: StoreSession, execution: WorkflowExecution, step: WorkflowStep
    ) -> GuidancePayload:
        role = await tx.get_role(step.role_id)
        if role is None:
            raise RoleNotFound(step.role_id, "get_step_guidance")

        actions = [
            ActionGuidance(
                name=action.name,
                service_name=action.service_name,
                operation=action.operation,
                sequence_order=action.sequence_order,
                default_parameters=dict(action.parameters or {}),
                parameters=self.catalog.describe(
                    action.service_name, action.operation
                ).to_dict(),
            )
            for action in await tx.actions_for_step(step.id)
        ]
        checks = await tx.quality_checks_for_step(step.id)

        return GuidancePayload(
            execution_id=execution.id,
            role=RoleSummary.from_row(role),
            step=StepSummary.from_row(step),
            approach=step.approach,
            actions=actions,
            quality_checklist=[check.criterion for check in checks],
            step_by_step=list(step.step_by_step or []),
            dependencies=list(step.dependencies or []),
        )
