"""Stepwright: guided multi-role workflow execution for AI agents."""

from .catalog import CATALOG, OperationCatalog, register_operation
from .constants import ExecutionMode, StepResult, StepStatus, StepType
from .contracts import (
    ExecutionSnapshot,
    GuidancePayload,
    ResolveResult,
    StepCompletion,
    StepProgress,
    TransitionValidation,
)
from .db import ExecutionStore, get_store
from .definitions import WorkflowDefinitions, load_definitions
from .engine import WorkflowEngine
from .errors import StepwrightError
from .schema import TypeDescriptor, describe

__version__ = "0.1.0"
__all__ = [
    "CATALOG",
    "ExecutionMode",
    "ExecutionSnapshot",
    "ExecutionStore",
    "GuidancePayload",
    "OperationCatalog",
    "ResolveResult",
    "StepCompletion",
    "StepProgress",
    "StepResult",
    "StepStatus",
    "StepType",
    "StepwrightError",
    "TransitionValidation",
    "TypeDescriptor",
    "WorkflowDefinitions",
    "WorkflowEngine",
    "describe",
    "get_store",
    "load_definitions",
    "register_operation",
]
