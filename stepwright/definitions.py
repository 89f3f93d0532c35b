"""Workflow configuration: roles, their steps and the transitions between them.

Definitions are written in YAML and loaded once per deployment; runtime
logic only ever reads them. Example::

    roles:
      - name: planner
        steps:
          - name: analyse
            sequence_number: 1
            actions:
              - name: fetch task
                service_name: TaskOperations
                operation: get
    transitions:
      - name: planner_to_implementer
        from_role: planner
        to_role: implementer
        conditions: {analysisDone: true}
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_HANDOFF_MESSAGE,
    DEFAULT_STEP_APPROACH,
    StepType,
)
from .errors import ConfigurationError


class ActionDefinition(BaseModel):
    name: str
    service_name: str
    operation: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    sequence_order: Optional[int] = None


class StepDefinition(BaseModel):
    name: str
    description: str = ""
    sequence_number: int = Field(..., ge=1)
    is_required: bool = True
    step_type: StepType = StepType.ACTION
    approach: str = DEFAULT_STEP_APPROACH
    step_by_step: list[str] = Field(default_factory=list)
    quality_checklist: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(
        default_factory=list, description="Advisory only; never enforced"
    )
    actions: list[ActionDefinition] = Field(default_factory=list)


class RoleDefinition(BaseModel):
    name: str
    description: str = ""
    priority: int = 0
    is_active: bool = True
    is_terminal: bool = False
    capabilities: dict[str, Any] = Field(default_factory=dict)
    core_responsibilities: list[str] = Field(default_factory=list)
    key_capabilities: list[str] = Field(default_factory=list)
    steps: list[StepDefinition] = Field(default_factory=list)


class TransitionDefinition(BaseModel):
    name: str
    from_role: str
    to_role: str
    description: str = "Role transition"
    handoff_message: str = DEFAULT_HANDOFF_MESSAGE
    priority: int = 0
    is_active: bool = True
    conditions: dict[str, bool] = Field(default_factory=dict)
    requirements: list[str] = Field(default_factory=list)
    validation_criteria: list[str] = Field(default_factory=list)
    context_elements: list[str] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)


class WorkflowDefinitions(BaseModel):
    """Top-level definitions document."""

    roles: list[RoleDefinition] = Field(default_factory=list)
    transitions: list[TransitionDefinition] = Field(default_factory=list)

    def role(self, name: str) -> Optional[RoleDefinition]:
        return next((r for r in self.roles if r.name == name), None)


def _duplicates(values: list[Any]) -> list[Any]:
    return [value for value, count in Counter(values).items() if count > 1]


def validate_definitions(definitions: WorkflowDefinitions) -> WorkflowDefinitions:
    """Reject configuration that would make resolution undefined.

    Raises:
        ConfigurationError: duplicate role names, duplicate sequence numbers
            within a role, duplicate transition names, or transitions that
            reference undefined roles.
    """
    operation = "validate_definitions"

    dup_roles = _duplicates([r.name for r in definitions.roles])
    if dup_roles:
        raise ConfigurationError(
            f"Duplicate role names: {', '.join(dup_roles)}",
            operation,
            {"roles": dup_roles},
        )

    for role in definitions.roles:
        dup_seq = _duplicates([s.sequence_number for s in role.steps])
        if dup_seq:
            raise ConfigurationError(
                f"Role '{role.name}' has duplicate step sequence numbers: "
                f"{', '.join(str(n) for n in sorted(dup_seq))}",
                operation,
                {"role": role.name, "sequence_numbers": sorted(dup_seq)},
            )

    dup_transitions = _duplicates([t.name for t in definitions.transitions])
    if dup_transitions:
        raise ConfigurationError(
            f"Duplicate transition names: {', '.join(dup_transitions)}",
            operation,
            {"transitions": dup_transitions},
        )

    role_names = {r.name for r in definitions.roles}
    for transition in definitions.transitions:
        unknown = [
            name
            for name in (transition.from_role, transition.to_role)
            if name not in role_names
        ]
        if unknown:
            raise ConfigurationError(
                f"Transition '{transition.name}' references undefined roles: "
                f"{', '.join(unknown)}",
                operation,
                {"transition": transition.name, "roles": unknown},
            )
    return definitions


def load_definitions(path: str | Path) -> WorkflowDefinitions:
    """Read and validate a YAML definitions file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return validate_definitions(WorkflowDefinitions.model_validate(data))
