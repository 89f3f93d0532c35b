"""Audit sinks for executed role transitions."""

from __future__ import annotations

import logging
from typing import Protocol

from .contracts import TransitionEvent

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    """Receives one event per committed role transition."""

    async def record(self, event: TransitionEvent) -> None:
        """Persist or forward an audit event."""


class LoggingAuditSink:
    """Default sink: writes each event to the log."""

    async def record(self, event: TransitionEvent) -> None:
        logger.info(
            f"Transition {event.transition_id} on execution {event.execution_id}: "
            f"{event.from_role_id} -> {event.to_role_id} at "
            f"{event.timestamp.isoformat()} ({event.message or 'no message'})"
        )


class MemoryAuditSink:
    """Collects events in a list."""

    def __init__(self) -> None:
        self.events: list[TransitionEvent] = []

    async def record(self, event: TransitionEvent) -> None:
        self.events.append(event)
