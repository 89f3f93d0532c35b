from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from ..constants import (
    DEFAULT_HANDOFF_MESSAGE,
    DEFAULT_STEP_APPROACH,
    ExecutionMode,
    StepType,
)


UTC_TIMESTAMP = DateTime(timezone=False)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every backend stores without conversion."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class WorkflowRole(SQLModel, table=True):
    """A named phase of work. Configuration data."""

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True, unique=True)
    description: str = ""
    priority: int = 0
    is_active: bool = True
    is_terminal: bool = False
    capabilities: dict = Field(default_factory=dict, sa_column=Column(JSON))
    core_responsibilities: list = Field(default_factory=list, sa_column=Column(JSON))
    key_capabilities: list = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class WorkflowStep(SQLModel, table=True):
    """One unit of work within a role, ordered by ``sequence_number``."""

    __table_args__ = (
        UniqueConstraint("role_id", "sequence_number", name="uq_step_role_sequence"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    role_id: str = Field(foreign_key="workflowrole.id", index=True)
    name: str
    description: str = ""
    sequence_number: int
    is_required: bool = True
    step_type: str = Field(default=StepType.ACTION.value)
    approach: str = DEFAULT_STEP_APPROACH
    step_by_step: list = Field(default_factory=list, sa_column=Column(JSON))
    dependencies: list = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class StepAction(SQLModel, table=True):
    """Reference from a step to an internal operation it may invoke."""

    id: str = Field(default_factory=new_id, primary_key=True)
    step_id: str = Field(foreign_key="workflowstep.id", index=True)
    name: str
    service_name: str
    operation: str
    parameters: dict = Field(default_factory=dict, sa_column=Column(JSON))
    sequence_order: int = 1


class QualityCheck(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    step_id: str = Field(foreign_key="workflowstep.id", index=True)
    criterion: str
    sequence_order: int


class RoleTransition(SQLModel, table=True):
    """Directed, condition-gated edge between two roles."""

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(index=True, unique=True)
    from_role_id: str = Field(foreign_key="workflowrole.id", index=True)
    to_role_id: str = Field(foreign_key="workflowrole.id", index=True)
    description: str = "Role transition"
    handoff_message: str = DEFAULT_HANDOFF_MESSAGE
    priority: int = 0
    is_active: bool = True
    conditions: dict = Field(default_factory=dict, sa_column=Column(JSON))
    requirements: list = Field(default_factory=list, sa_column=Column(JSON))
    validation_criteria: list = Field(default_factory=list, sa_column=Column(JSON))
    context_elements: list = Field(default_factory=list, sa_column=Column(JSON))
    deliverables: list = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class WorkflowExecution(SQLModel, table=True):
    """The single mutable row of one traversal of the workflow."""

    id: str = Field(default_factory=new_id, primary_key=True)
    task_id: Optional[int] = Field(default=None, index=True)
    current_role_id: str = Field(foreign_key="workflowrole.id", index=True)
    current_step_id: Optional[str] = Field(
        default=None, foreign_key="workflowstep.id", index=True
    )
    execution_mode: str = Field(default=ExecutionMode.GUIDED.value)
    steps_completed: int = 0
    total_steps: Optional[int] = None
    progress_percentage: float = 0.0
    execution_context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    execution_state: dict = Field(default_factory=dict, sa_column=Column(JSON))
    last_error: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    started_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class WorkflowStepProgress(SQLModel, table=True):
    """Ledger of attempts at a step. The highest ``id`` per step governs."""

    __table_args__ = (
        Index(
            "uq_progress_one_in_progress",
            "execution_id",
            unique=True,
            sqlite_where=text("status = 'IN_PROGRESS'"),
            postgresql_where=text("status = 'IN_PROGRESS'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    execution_id: str = Field(foreign_key="workflowexecution.id", index=True)
    task_id: Optional[int] = None
    step_id: str = Field(foreign_key="workflowstep.id", index=True)
    role_id: str = Field(foreign_key="workflowrole.id", index=True)
    status: str = Field(index=True)
    started_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    failed_at: Optional[datetime] = Field(default=None, sa_type=UTC_TIMESTAMP)
    duration_ms: Optional[int] = None
    execution_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error_details: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    result: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)


class TransitionRecord(SQLModel, table=True):
    """Audit record appended for every executed role transition."""

    id: Optional[int] = Field(default=None, primary_key=True)
    execution_id: str = Field(foreign_key="workflowexecution.id", index=True)
    transition_id: str = Field(foreign_key="roletransition.id")
    from_role_id: str = Field(foreign_key="workflowrole.id")
    to_role_id: str = Field(foreign_key="workflowrole.id")
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTC_TIMESTAMP)
