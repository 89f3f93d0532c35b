"""Structured records returned across the engine boundary."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .db.models import (
    RoleTransition,
    TransitionRecord,
    WorkflowExecution,
    WorkflowRole,
    WorkflowStep,
)

ResolveReason = Literal["resume", "next", "retry", "role_complete", "no_steps"]
CompletionOutcome = Literal[
    "next_step", "role_transition_required", "workflow_complete", "step_failed"
]


class ExecutionSnapshot(BaseModel):
    """Read-only copy of a ``WorkflowExecution`` row."""

    id: str
    task_id: Optional[int] = None
    current_role_id: str
    current_step_id: Optional[str] = None
    execution_mode: str
    steps_completed: int = 0
    total_steps: Optional[int] = None
    progress_percentage: float = 0.0
    execution_context: Dict[str, Any] = Field(default_factory=dict)
    execution_state: Dict[str, Any] = Field(default_factory=dict)
    last_error: Optional[Dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    updated_at: datetime

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    @property
    def phase(self) -> Optional[str]:
        return self.execution_state.get("phase")

    @classmethod
    def from_row(cls, row: WorkflowExecution) -> ExecutionSnapshot:
        return cls(
            id=row.id,
            task_id=row.task_id,
            current_role_id=row.current_role_id,
            current_step_id=row.current_step_id,
            execution_mode=row.execution_mode,
            steps_completed=row.steps_completed,
            total_steps=row.total_steps,
            progress_percentage=row.progress_percentage,
            execution_context=dict(row.execution_context or {}),
            execution_state=dict(row.execution_state or {}),
            last_error=row.last_error,
            started_at=row.started_at,
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )


class StepSummary(BaseModel):
    id: str
    role_id: str
    name: str
    description: str = ""
    step_type: str
    sequence_number: int
    is_required: bool = True

    @classmethod
    def from_row(cls, row: WorkflowStep) -> StepSummary:
        return cls(
            id=row.id,
            role_id=row.role_id,
            name=row.name,
            description=row.description,
            step_type=row.step_type,
            sequence_number=row.sequence_number,
            is_required=row.is_required,
        )


class RoleSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    is_terminal: bool = False
    core_responsibilities: List[str] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: WorkflowRole) -> RoleSummary:
        return cls(
            id=row.id,
            name=row.name,
            description=row.description,
            is_terminal=row.is_terminal,
            core_responsibilities=list(row.core_responsibilities or []),
        )


class ActionGuidance(BaseModel):
    """An operation the step may invoke, with its parameter descriptor."""

    name: str
    service_name: str
    operation: str
    sequence_order: int
    default_parameters: Dict[str, Any] = Field(default_factory=dict)
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="TypeDescriptor in plain-dict form"
    )


class GuidancePayload(BaseModel):
    execution_id: str
    role: RoleSummary
    step: StepSummary
    approach: str
    actions: List[ActionGuidance] = Field(default_factory=list)
    quality_checklist: List[str] = Field(default_factory=list)
    step_by_step: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(
        default_factory=list, description="Advisory; not enforced"
    )


class ResolveResult(BaseModel):
    """Outcome of next-step resolution: a step, or ``None`` with a reason."""

    step: Optional[StepSummary] = None
    reason: ResolveReason
    execution_id: str


class TransitionSummary(BaseModel):
    id: str
    name: str
    from_role_id: str
    to_role_id: str
    description: str = ""
    handoff_message: str = ""
    priority: int = 0
    conditions: Dict[str, bool] = Field(default_factory=dict)
    requirements: List[str] = Field(default_factory=list)
    validation_criteria: List[str] = Field(default_factory=list)
    context_elements: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: RoleTransition) -> TransitionSummary:
        return cls(
            id=row.id,
            name=row.name,
            from_role_id=row.from_role_id,
            to_role_id=row.to_role_id,
            description=row.description,
            handoff_message=row.handoff_message,
            priority=row.priority,
            conditions=dict(row.conditions or {}),
            requirements=list(row.requirements or []),
            validation_criteria=list(row.validation_criteria or []),
            context_elements=list(row.context_elements or []),
            deliverables=list(row.deliverables or []),
        )


class TransitionValidation(BaseModel):
    """``missing`` lists unmet conditions only; ``issues`` holds structural failures.

    Requirements, validation criteria and deliverables are advisory and
    returned for the agent to check off.
    """

    ok: bool
    transition_id: str
    execution_id: str
    missing: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    validation_criteria: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)


class TransitionEvent(BaseModel):
    """Audit record emitted per executed transition."""

    execution_id: str
    transition_id: str
    from_role_id: str
    to_role_id: str
    timestamp: datetime
    message: Optional[str] = None

    @classmethod
    def from_record(cls, record: TransitionRecord) -> TransitionEvent:
        return cls(
            execution_id=record.execution_id,
            transition_id=record.transition_id,
            from_role_id=record.from_role_id,
            to_role_id=record.to_role_id,
            timestamp=record.created_at,
            message=record.message,
        )


class StepCompletion(BaseModel):
    outcome: CompletionOutcome
    execution: ExecutionSnapshot
    next_step: Optional[StepSummary] = None
    transitions: List[TransitionSummary] = Field(default_factory=list)


class CompletedStepSummary(BaseModel):
    step_id: str
    step_name: str
    role_name: Optional[str] = None
    completed_at: Optional[datetime] = None
    summary: Optional[str] = Field(
        default=None, description="``output_summary`` from the step's execution data"
    )


class StepProgress(BaseModel):
    """Where an execution stands, for an agent deciding how to continue."""

    execution_id: str
    task_id: Optional[int] = None
    status: Literal["completed", "in_progress"]
    current_role: Optional[RoleSummary] = None
    current_step: Optional[StepSummary] = None
    phase: Optional[str] = None
    execution_mode: str
    steps_completed: int = 0
    total_steps: Optional[int] = None
    progress_percentage: float = 0.0
    started_at: datetime
    completed_at: Optional[datetime] = None
    last_completed_step: Optional[CompletedStepSummary] = None
    is_ready: bool = False
