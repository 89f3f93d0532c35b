import pytest

from stepwright.constants import ExecutionPhase
from stepwright.errors import ExecutionNotFound, RoleNotFound, TransitionNotAllowed, TransitionNotFound
from stepwright.lifecycle import ExecutionLifecycle
from stepwright.transitions import RoleTransitionEngine, unmet_conditions


async def _finish_planner(store, context=None):
    lifecycle = ExecutionLifecycle(store)
    execution = await lifecycle.bootstrap("planner", context=context)
    for _ in range(2):
        started = await lifecycle.start_step(execution.id)
        await lifecycle.complete_step(execution.id, started.step.id)
    return execution


def test_unmet_conditions():
    assert unmet_conditions({"a": True, "b": False}, {"a": 1}) == []
    assert unmet_conditions({"a": True}, {"a": 0}) == ["a"]
    assert unmet_conditions({"b": False}, {"b": "yes"}) == ["b"]


@pytest.mark.asyncio
async def test_available_transitions_are_ranked(loaded_store, ids, audit_sink):
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    rows = await transitions.available_transitions(ids["roles"]["planner"])
    assert [t.name for t in rows] == [
        "planner_to_implementer",
        "planner_to_archivist",
        "planner_to_triage",
    ]
    assert rows[0].conditions == {"analysisDone": True}
    assert await transitions.available_transitions(ids["roles"]["reviewer"]) == []


@pytest.mark.asyncio
async def test_available_transitions_by_role_name(loaded_store, audit_sink):
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    rows = await transitions.available_transitions_for_role_name("implementer")
    assert [t.name for t in rows] == ["implementer_to_reviewer"]
    with pytest.raises(RoleNotFound):
        await transitions.available_transitions_for_role_name("ghost")


@pytest.mark.asyncio
async def test_validate_reports_unmet_conditions(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store, {"analysisDone": False})
    transitions = RoleTransitionEngine(loaded_store, audit_sink)

    result = await transitions.validate(
        ids["transitions"]["planner_to_implementer"], execution.id
    )
    assert result.ok is False
    assert result.missing == ["analysisDone"]
    assert result.issues == []
    assert result.requirements == ["Plan reviewed by the agent"]
    assert result.deliverables == ["implementation plan"]


@pytest.mark.asyncio
async def test_validate_reports_incomplete_steps(loaded_store, ids, audit_sink):
    lifecycle = ExecutionLifecycle(loaded_store)
    execution = await lifecycle.bootstrap("planner", context={"analysisDone": True})
    transitions = RoleTransitionEngine(loaded_store, audit_sink)

    result = await transitions.validate(
        ids["transitions"]["planner_to_implementer"], execution.id
    )
    assert result.ok is False
    assert result.missing == []
    assert result.issues == ["steps not completed: analyse, plan"]


@pytest.mark.asyncio
async def test_validate_reports_role_mismatch(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store)
    transitions = RoleTransitionEngine(loaded_store, audit_sink)

    result = await transitions.validate(
        ids["transitions"]["implementer_to_reviewer"], execution.id
    )
    assert result.ok is False
    assert any("transition starts from role" in issue for issue in result.issues)


@pytest.mark.asyncio
async def test_state_context_counts_for_conditions(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store)
    async with loaded_store.transaction() as tx:
        row = await tx.get_execution(execution.id)
        row.execution_state = {**row.execution_state, "context": {"analysisDone": True}}

    result = await RoleTransitionEngine(loaded_store, audit_sink).validate(
        ids["transitions"]["planner_to_implementer"], execution.id
    )
    assert result.ok is True


@pytest.mark.asyncio
async def test_execute_moves_to_first_step_of_target(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store, {"analysisDone": True})
    transitions = RoleTransitionEngine(loaded_store, audit_sink)

    snapshot = await transitions.execute(
        ids["transitions"]["planner_to_implementer"], execution.id
    )
    assert snapshot.current_role_id == ids["roles"]["implementer"]
    assert snapshot.current_step_id == ids["steps"]["implement"]
    assert snapshot.total_steps == 1
    assert snapshot.progress_percentage == 0.0
    assert snapshot.phase == ExecutionPhase.ROLE_TRANSITIONED.value
    assert snapshot.completed_at is None
    assert snapshot.execution_state["last_transition"]["message"] == (
        "Plan ready for implementation"
    )

    assert len(audit_sink.events) == 1
    event = audit_sink.events[0]
    assert event.execution_id == execution.id
    assert event.from_role_id == ids["roles"]["planner"]
    assert event.to_role_id == ids["roles"]["implementer"]

    history = await transitions.transition_history(execution.id)
    assert [h.transition_id for h in history] == [
        ids["transitions"]["planner_to_implementer"]
    ]


@pytest.mark.asyncio
async def test_execute_is_rejected_when_steps_incomplete(loaded_store, ids, audit_sink):
    execution = await ExecutionLifecycle(loaded_store).bootstrap(
        "planner", context={"analysisDone": True}
    )
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    with pytest.raises(TransitionNotAllowed) as exc:
        await transitions.execute(ids["transitions"]["planner_to_implementer"], execution.id)
    assert exc.value.issues == ["steps not completed: analyse, plan"]
    assert exc.value.details["execution_id"] == execution.id
    assert audit_sink.events == []


@pytest.mark.asyncio
async def test_second_execute_of_same_transition_is_rejected(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store, {"analysisDone": True})
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    transition_id = ids["transitions"]["planner_to_implementer"]

    await transitions.execute(transition_id, execution.id)
    with pytest.raises(TransitionNotAllowed):
        await transitions.execute(transition_id, execution.id)


@pytest.mark.asyncio
async def test_execute_to_terminal_role_without_steps_completes(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store)
    snapshot = await RoleTransitionEngine(loaded_store, audit_sink).execute(
        ids["transitions"]["planner_to_archivist"], execution.id, "archiving"
    )
    assert snapshot.current_step_id is None
    assert snapshot.completed_at is not None
    assert snapshot.phase == ExecutionPhase.COMPLETED.value
    assert audit_sink.events[0].message == "archiving"


@pytest.mark.asyncio
async def test_execute_to_stepless_role_with_exits_requires_transition(
    loaded_store, ids, audit_sink
):
    execution = await _finish_planner(loaded_store)
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    snapshot = await transitions.execute(ids["transitions"]["planner_to_triage"], execution.id)
    assert snapshot.current_step_id is None
    assert snapshot.completed_at is None
    assert snapshot.phase == ExecutionPhase.TRANSITION_REQUIRED.value

    # Back into planner: the role starts over from its first step.
    snapshot = await transitions.execute(ids["transitions"]["triage_to_planner"], execution.id)
    assert snapshot.current_step_id == ids["steps"]["analyse"]
    started = await ExecutionLifecycle(loaded_store).start_step(execution.id)
    assert started.step.id == ids["steps"]["analyse"]
    assert started.reason == "next"


@pytest.mark.asyncio
async def test_unknown_or_inactive_transition(loaded_store, ids, audit_sink):
    execution = await _finish_planner(loaded_store)
    transitions = RoleTransitionEngine(loaded_store, audit_sink)
    with pytest.raises(TransitionNotFound) as exc:
        await transitions.execute("nope", execution.id)
    assert exc.value.details == {"transition_id": "nope"}
    assert exc.value.operation == "execute_transition"

    with pytest.raises(TransitionNotFound):
        await transitions.validate(
            ids["transitions"]["legacy_planner_to_reviewer"], execution.id
        )


@pytest.mark.asyncio
async def test_unknown_execution(loaded_store, ids, audit_sink):
    with pytest.raises(ExecutionNotFound):
        await RoleTransitionEngine(loaded_store, audit_sink).validate(
            ids["transitions"]["planner_to_implementer"], "missing"
        )
