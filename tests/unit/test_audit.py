import logging
from datetime import datetime

import pytest

from stepwright.audit import LoggingAuditSink
from stepwright.contracts import TransitionEvent
from stepwright.errors import NoStepsForRole, StepNotFound


@pytest.mark.asyncio
async def test_logging_sink_writes_event(caplog):
    event = TransitionEvent(
        execution_id="exec-1",
        transition_id="t-1",
        from_role_id="planner-id",
        to_role_id="implementer-id",
        timestamp=datetime(2026, 1, 2, 3, 4, 5),
        message="handing over",
    )
    with caplog.at_level(logging.INFO, logger="stepwright.audit"):
        await LoggingAuditSink().record(event)
    assert "exec-1" in caplog.text
    assert "planner-id -> implementer-id" in caplog.text
    assert "handing over" in caplog.text


def test_errors_carry_ids_and_operation():
    error = StepNotFound("step-9", "get_step_guidance")
    assert error.to_dict() == {
        "error": "StepNotFound",
        "message": "Step not found: step-9",
        "operation": "get_step_guidance",
        "details": {"step_id": "step-9"},
    }
    assert NoStepsForRole("archivist").details == {"role": "archivist"}
