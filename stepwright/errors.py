"""Error taxonomy for the workflow engine.

Every error carries the name of the operation that raised it and the ids
involved, so a caller can diagnose a failure from the error alone.
"""

from __future__ import annotations

from typing import Any, Optional


class StepwrightError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Return a structured representation suitable for a response envelope."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "operation": self.operation,
            "details": dict(self.details),
        }


class ConfigurationError(StepwrightError):
    """Workflow configuration is inconsistent. Never recovered at runtime."""


class NoStepsForRole(ConfigurationError):
    def __init__(self, role_name: str, operation: Optional[str] = None) -> None:
        super().__init__(
            f"No workflow steps found for role '{role_name}'",
            operation,
            {"role": role_name},
        )
        self.role_name = role_name


class NotFoundError(StepwrightError):
    """An id could not be resolved."""


class RoleNotFound(NotFoundError):
    def __init__(self, role: str, operation: Optional[str] = None) -> None:
        super().__init__(f"Role not found: {role}", operation, {"role": role})
        self.role = role


class StepNotFound(NotFoundError):
    def __init__(self, step_id: str, operation: Optional[str] = None) -> None:
        super().__init__(f"Step not found: {step_id}", operation, {"step_id": step_id})
        self.step_id = step_id


class TransitionNotFound(NotFoundError):
    def __init__(self, transition_id: str, operation: Optional[str] = None) -> None:
        super().__init__(
            f"Transition not found or inactive: {transition_id}",
            operation,
            {"transition_id": transition_id},
        )
        self.transition_id = transition_id


class ExecutionNotFound(NotFoundError):
    def __init__(
        self,
        execution_id: Optional[str] = None,
        task_id: Optional[int] = None,
        operation: Optional[str] = None,
    ) -> None:
        target = f"execution {execution_id}" if execution_id else f"task {task_id}"
        super().__init__(
            f"No workflow execution found for {target}",
            operation,
            {"execution_id": execution_id, "task_id": task_id},
        )
        self.execution_id = execution_id
        self.task_id = task_id


class NoActiveStep(NotFoundError):
    """The execution has no step to work on (role exhausted or workflow complete)."""

    def __init__(
        self, execution_id: str, reason: str, operation: Optional[str] = None
    ) -> None:
        super().__init__(
            f"Execution {execution_id} has no active step ({reason})",
            operation,
            {"execution_id": execution_id, "reason": reason},
        )
        self.execution_id = execution_id
        self.reason = reason


class ValidationError(StepwrightError):
    """A requested state change is not allowed in the current state."""


class TransitionNotAllowed(ValidationError):
    def __init__(
        self,
        transition_id: str,
        execution_id: str,
        missing: list[str],
        issues: list[str],
        operation: Optional[str] = None,
    ) -> None:
        reasons = list(issues) + [f"condition not met: {name}" for name in missing]
        super().__init__(
            f"Transition {transition_id} not allowed: {'; '.join(reasons)}",
            operation,
            {
                "transition_id": transition_id,
                "execution_id": execution_id,
                "missing": list(missing),
                "issues": list(issues),
            },
        )
        self.transition_id = transition_id
        self.execution_id = execution_id
        self.missing = list(missing)
        self.issues = list(issues)


class StepConflict(ValidationError):
    def __init__(
        self,
        execution_id: str,
        step_id: str,
        reason: str,
        operation: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Cannot update step {step_id} of execution {execution_id}: {reason}",
            operation,
            {"execution_id": execution_id, "step_id": step_id, "reason": reason},
        )
        self.execution_id = execution_id
        self.step_id = step_id
        self.reason = reason


class SchemaIntrospectionError(StepwrightError):
    """Raised inside the introspector; converted into an ``unknown`` descriptor."""


__all__ = [
    "StepwrightError",
    "ConfigurationError",
    "NoStepsForRole",
    "NotFoundError",
    "RoleNotFound",
    "StepNotFound",
    "TransitionNotFound",
    "ExecutionNotFound",
    "NoActiveStep",
    "ValidationError",
    "TransitionNotAllowed",
    "StepConflict",
    "SchemaIntrospectionError",
]
