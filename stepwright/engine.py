"""Agent-facing façade over the workflow components."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from pydantic import BaseModel

from .audit import AuditSink
from .catalog import CATALOG, OperationCatalog
from .constants import ExecutionMode, StepResult
from .contracts import (
    ExecutionSnapshot,
    GuidancePayload,
    ResolveResult,
    StepCompletion,
    StepProgress,
    TransitionEvent,
    TransitionSummary,
    TransitionValidation,
)
from .db.store import ExecutionStore
from .errors import NotFoundError
from .guidance import GuidanceAssembler
from .lifecycle import ExecutionLifecycle
from .operations import OPERATION_INPUTS
from .resolver import StepResolver
from .transitions import RoleTransitionEngine

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Wires resolver, guidance, transitions and lifecycle around one store."""

    def __init__(
        self,
        store: ExecutionStore,
        catalog: Optional[OperationCatalog] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog if catalog is not None else CATALOG
        self.resolver = StepResolver(store)
        self.guidance = GuidanceAssembler(store, self.catalog)
        self.transitions = RoleTransitionEngine(store, audit_sink)
        self.lifecycle = ExecutionLifecycle(store)

    async def bootstrap(
        self,
        role_name: str,
        execution_mode: ExecutionMode | str = ExecutionMode.GUIDED,
        execution_context: Optional[Mapping[str, Any]] = None,
        task_id: Optional[int] = None,
    ) -> ExecutionSnapshot:
        return await self.lifecycle.bootstrap(
            role_name, execution_mode, execution_context, task_id
        )

    async def get_step_guidance(
        self,
        execution_id: Optional[str] = None,
        task_id: Optional[int] = None,
        role_id: Optional[str] = None,
        step_id: Optional[str] = None,
    ) -> GuidancePayload:
        """Start the current step if needed and return its guidance.

        With an explicit ``step_id`` the step is described without being
        started.
        """
        if step_id is None:
            started = await self.lifecycle.start_step(execution_id, task_id)
            execution_id = started.execution_id
        return await self.guidance.guidance(execution_id, task_id, role_id, step_id)

    async def report_step_completion(
        self,
        execution_id: str,
        step_id: str,
        result: StepResult | str = StepResult.SUCCESS,
        execution_data: Optional[Mapping[str, Any]] = None,
        duration_ms: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> StepCompletion:
        return await self.lifecycle.complete_step(
            execution_id, step_id, result, execution_data, duration_ms, error_message
        )

    async def get_next_step(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> ResolveResult:
        return await self.resolver.resolve_next(execution_id, task_id)

    async def get_role_transitions(self, from_role_name: str) -> list[TransitionSummary]:
        return await self.transitions.available_transitions_for_role_name(from_role_name)

    async def validate_transition(
        self, transition_id: str, execution_id: str
    ) -> TransitionValidation:
        return await self.transitions.validate(transition_id, execution_id)

    async def execute_transition(
        self,
        transition_id: str,
        execution_id: str,
        handoff_message: Optional[str] = None,
    ) -> ExecutionSnapshot:
        return await self.transitions.execute(transition_id, execution_id, handoff_message)

    async def get_transition_history(self, execution_id: str) -> list[TransitionEvent]:
        return await self.transitions.transition_history(execution_id)

    async def get_execution(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> ExecutionSnapshot:
        return await self.lifecycle.get_execution(execution_id, task_id)

    async def update_context(
        self, execution_id: str, context: Mapping[str, Any]
    ) -> ExecutionSnapshot:
        return await self.lifecycle.update_context(execution_id, context)

    async def attach_task(self, execution_id: str, task_id: int) -> ExecutionSnapshot:
        return await self.lifecycle.attach_task(execution_id, task_id)

    async def get_step_progress(
        self, execution_id: Optional[str] = None, task_id: Optional[int] = None
    ) -> StepProgress:
        return await self.lifecycle.step_progress(execution_id, task_id)

    async def invoke(self, operation: str, arguments: Mapping[str, Any]) -> Any:
        """Validate ``arguments`` against the operation's input model and call it.

        Returns plain JSON-compatible data; wire encoding is left to the
        caller. Raises ``pydantic.ValidationError`` for malformed arguments.
        """
        model = OPERATION_INPUTS.get(operation)
        if model is None:
            raise NotFoundError(
                f"Unknown workflow operation: {operation}",
                "invoke",
                {"operation": operation},
            )
        params = model.model_validate(dict(arguments))
        logger.debug(f"Invoking {operation}")
        result = await getattr(self, operation)(**params.model_dump())
        return _plain(result)


def _plain(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_plain(item) for item in result]
    return result
