"""Concurrent requests against one execution on the file-backed SQLite store."""

import asyncio

import pytest

from stepwright.constants import StepStatus
from stepwright.errors import StepConflict, TransitionNotAllowed
from stepwright.lifecycle import ExecutionLifecycle


async def _count(store, execution_id, status):
    async with store.transaction() as tx:
        return await tx.count_progress(execution_id, status)


@pytest.mark.asyncio
async def test_concurrent_start_step_opens_one_progress_row(loaded_store, ids):
    lifecycle = ExecutionLifecycle(loaded_store)
    execution = await lifecycle.bootstrap("planner")

    results = await asyncio.gather(*[lifecycle.start_step(execution.id) for _ in range(4)])

    assert sorted(r.reason for r in results) == ["next", "resume", "resume", "resume"]
    assert {r.step.id for r in results} == {ids["steps"]["analyse"]}
    assert await _count(loaded_store, execution.id, StepStatus.IN_PROGRESS) == 1


@pytest.mark.asyncio
async def test_concurrent_completions_advance_once(loaded_store, ids):
    lifecycle = ExecutionLifecycle(loaded_store)
    execution = await lifecycle.bootstrap("planner")
    await lifecycle.start_step(execution.id)

    results = await asyncio.gather(
        *[lifecycle.complete_step(execution.id, ids["steps"]["analyse"]) for _ in range(3)],
        return_exceptions=True,
    )

    completions = [r for r in results if not isinstance(r, BaseException)]
    conflicts = [r for r in results if isinstance(r, StepConflict)]
    assert len(completions) == 1
    assert len(conflicts) == 2
    assert completions[0].outcome == "next_step"

    current = await lifecycle.get_execution(execution.id)
    assert current.steps_completed == 1
    assert current.current_step_id == ids["steps"]["plan"]
    assert await _count(loaded_store, execution.id, StepStatus.COMPLETED) == 1
    assert await _count(loaded_store, execution.id, StepStatus.IN_PROGRESS) == 0


@pytest.mark.asyncio
async def test_concurrent_transitions_apply_once(engine, ids, audit_sink):
    execution = await engine.bootstrap("planner", execution_context={"analysisDone": True})
    for _ in range(2):
        guidance = await engine.get_step_guidance(execution.id)
        await engine.report_step_completion(execution.id, guidance.step.id)

    transition_id = ids["transitions"]["planner_to_implementer"]
    results = await asyncio.gather(
        engine.execute_transition(transition_id, execution.id),
        engine.execute_transition(transition_id, execution.id),
        return_exceptions=True,
    )

    snapshots = [r for r in results if not isinstance(r, BaseException)]
    rejected = [r for r in results if isinstance(r, TransitionNotAllowed)]
    assert len(snapshots) == 1
    assert len(rejected) == 1
    assert snapshots[0].current_role_id == ids["roles"]["implementer"]
    assert len(await engine.get_transition_history(execution.id)) == 1
    assert len(audit_sink.events) == 1
