"""Input contracts of the agent-facing workflow operations.

Each model is registered in the default operation catalog under the
``WorkflowOperations`` service, so steps may reference these operations
as actions and receive their parameter descriptors in guidance.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from .catalog import CATALOG, OperationCatalog
from .constants import WORKFLOW_OPERATIONS_SERVICE, ExecutionMode, StepResult


class _ExecutionLookup(BaseModel):
    execution_id: Optional[str] = Field(default=None, description="Execution id")
    task_id: Optional[int] = Field(
        default=None, description="Task id; the most recent execution for it is used"
    )

    @model_validator(mode="after")
    def _require_reference(self) -> "_ExecutionLookup":
        if self.execution_id is None and self.task_id is None:
            raise ValueError("either execution_id or task_id is required")
        return self


class BootstrapInput(BaseModel):
    """Start a new workflow execution in the given role."""

    role_name: str = Field(..., min_length=1, description="Initial role name")
    execution_mode: ExecutionMode = ExecutionMode.GUIDED
    execution_context: Dict[str, Any] = Field(default_factory=dict)
    task_id: Optional[int] = None


class StepGuidanceInput(_ExecutionLookup):
    """Start (or resume) the current step and return its guidance."""

    role_id: Optional[str] = Field(
        default=None, description="Role the caller believes the execution is in"
    )
    step_id: Optional[str] = Field(
        default=None, description="Explicit step; the current step when omitted"
    )


class StepCompletionInput(BaseModel):
    """Report the outcome of a step."""

    execution_id: str
    step_id: str
    result: StepResult = StepResult.SUCCESS
    execution_data: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)
    error_message: Optional[str] = None


class NextStepInput(_ExecutionLookup):
    """Resolve the next step without starting it."""


class RoleTransitionsInput(BaseModel):
    """List transitions available from a role."""

    from_role_name: str = Field(..., min_length=1)


class TransitionInput(BaseModel):
    """Check whether a transition may be executed."""

    transition_id: str
    execution_id: str


class ExecuteTransitionInput(TransitionInput):
    """Move the execution to the transition's target role."""

    handoff_message: Optional[str] = None


class TransitionHistoryInput(BaseModel):
    """List executed transitions, newest first."""

    execution_id: str


class ExecutionStateInput(_ExecutionLookup):
    """Read the execution state."""


class UpdateContextInput(BaseModel):
    """Merge values into the execution context."""

    execution_id: str
    context: Dict[str, Any]


class AttachTaskInput(BaseModel):
    """Associate a task with an execution that started without one."""

    execution_id: str
    task_id: int = Field(..., ge=1)


class StepProgressInput(_ExecutionLookup):
    """Summarise completed work and what the execution is on now."""


OPERATION_INPUTS: dict[str, type[BaseModel]] = {
    "bootstrap": BootstrapInput,
    "get_step_guidance": StepGuidanceInput,
    "report_step_completion": StepCompletionInput,
    "get_next_step": NextStepInput,
    "get_role_transitions": RoleTransitionsInput,
    "validate_transition": TransitionInput,
    "execute_transition": ExecuteTransitionInput,
    "get_transition_history": TransitionHistoryInput,
    "get_execution": ExecutionStateInput,
    "update_context": UpdateContextInput,
    "attach_task": AttachTaskInput,
    "get_step_progress": StepProgressInput,
}


def register_workflow_operations(catalog: OperationCatalog) -> None:
    for name, model in OPERATION_INPUTS.items():
        catalog.register(WORKFLOW_OPERATIONS_SERVICE, name, model, model.__doc__)


register_workflow_operations(CATALOG)
