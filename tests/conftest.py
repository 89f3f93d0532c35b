"""Shared fixtures: a small four-role workflow on a file-backed SQLite store."""

import pytest
import pytest_asyncio

import stepwright.db as db
from stepwright.audit import MemoryAuditSink
from stepwright.catalog import OperationCatalog
from stepwright.db import ExecutionStore
from stepwright.definitions import WorkflowDefinitions
from stepwright.engine import WorkflowEngine
from stepwright.operations import register_workflow_operations

SAMPLE_DEFINITIONS = {
    "roles": [
        {
            "name": "planner",
            "priority": 1,
            "core_responsibilities": ["Understand the task", "Write a plan"],
            "steps": [
                {
                    "name": "analyse",
                    "sequence_number": 1,
                    "step_type": "ANALYSIS",
                    "approach": "Read before writing",
                    "step_by_step": ["Read the task", "List open questions"],
                    "quality_checklist": ["Scope understood", "Risks listed"],
                    "actions": [
                        {
                            "name": "record findings",
                            "service_name": "WorkflowOperations",
                            "operation": "update_context",
                        },
                        {
                            "name": "fetch task",
                            "service_name": "TaskOperations",
                            "operation": "get",
                            "parameters": {"include_subtasks": True},
                        },
                    ],
                },
                {
                    "name": "plan",
                    "sequence_number": 2,
                    "dependencies": ["analyse"],
                    "quality_checklist": ["Plan has milestones"],
                },
            ],
        },
        {
            "name": "implementer",
            "priority": 2,
            "steps": [{"name": "implement", "sequence_number": 1}],
        },
        {
            "name": "reviewer",
            "priority": 3,
            "is_terminal": True,
            "steps": [{"name": "review", "sequence_number": 1}],
        },
        {"name": "archivist", "priority": 4},
        {"name": "triage", "priority": 5},
    ],
    "transitions": [
        {
            "name": "planner_to_implementer",
            "from_role": "planner",
            "to_role": "implementer",
            "priority": 10,
            "conditions": {"analysisDone": True},
            "requirements": ["Plan reviewed by the agent"],
            "validation_criteria": ["Milestones are testable"],
            "deliverables": ["implementation plan"],
            "handoff_message": "Plan ready for implementation",
        },
        {
            "name": "planner_to_triage",
            "from_role": "planner",
            "to_role": "triage",
            "priority": 1,
        },
        {
            "name": "planner_to_archivist",
            "from_role": "planner",
            "to_role": "archivist",
            "priority": 1,
        },
        {
            "name": "legacy_planner_to_reviewer",
            "from_role": "planner",
            "to_role": "reviewer",
            "is_active": False,
        },
        {
            "name": "implementer_to_reviewer",
            "from_role": "implementer",
            "to_role": "reviewer",
        },
        {
            "name": "triage_to_planner",
            "from_role": "triage",
            "to_role": "planner",
        },
    ],
}


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests independent of the caller's environment and working directory."""
    for name in ("STEPWRIGHT_CONFIG", "STEPWRIGHT_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    db.reset_store()
    yield
    db.reset_store()


@pytest.fixture
def sample_definitions():
    return WorkflowDefinitions.model_validate(SAMPLE_DEFINITIONS)


@pytest_asyncio.fixture
async def store(tmp_path):
    store = ExecutionStore(f"sqlite+aiosqlite:///{tmp_path / 'stepwright.db'}")
    await store.init_db()
    yield store
    await store.dispose()


@pytest_asyncio.fixture
async def loaded_store(store, sample_definitions):
    await store.load_definitions(sample_definitions)
    return store


@pytest_asyncio.fixture
async def ids(loaded_store):
    """Row ids of the sample roles, steps and transitions, keyed by name."""
    async with loaded_store.transaction() as tx:
        roles = await tx.list_roles()
        steps = {}
        transitions = {}
        for role in roles:
            for step in await tx.steps_for_role(role.id):
                steps[step.name] = step.id
            for transition in await tx.transitions_from(role.id, active_only=False):
                transitions[transition.name] = transition.id
    return {
        "roles": {role.name: role.id for role in roles},
        "steps": steps,
        "transitions": transitions,
    }


@pytest.fixture
def catalog():
    catalog = OperationCatalog()
    register_workflow_operations(catalog)
    return catalog


@pytest.fixture
def audit_sink():
    return MemoryAuditSink()


@pytest.fixture
def engine(loaded_store, catalog, audit_sink):
    return WorkflowEngine(loaded_store, catalog, audit_sink)
