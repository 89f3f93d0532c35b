"""Shared enumerations and defaults."""

from __future__ import annotations

from enum import Enum

DEFAULT_CONFIG_FILE = "stepwright.yaml"
DEFAULT_STEP_APPROACH = "Execute step according to guidance"
DEFAULT_HANDOFF_MESSAGE = "Transitioning to next role"
WORKFLOW_OPERATIONS_SERVICE = "WorkflowOperations"


class StepType(str, Enum):
    ACTION = "ACTION"
    ANALYSIS = "ANALYSIS"


class ExecutionMode(str, Enum):
    GUIDED = "GUIDED"
    AUTOMATED = "AUTOMATED"
    HYBRID = "HYBRID"


class StepStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StepResult(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class ExecutionPhase(str, Enum):
    """Value of ``execution_state["phase"]``; mirrors the per-execution state machine."""

    INITIALIZED = "initialized"
    STEP_IN_PROGRESS = "step_in_progress"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    TRANSITION_REQUIRED = "transition_required"
    ROLE_TRANSITIONED = "role_transitioned"
    COMPLETED = "completed"
