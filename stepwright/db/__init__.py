"""Relational persistence for workflow configuration and executions."""

from __future__ import annotations

from typing import Optional

from ..config import StepwrightConfig, load_config
from .models import (
    QualityCheck,
    RoleTransition,
    StepAction,
    TransitionRecord,
    WorkflowExecution,
    WorkflowRole,
    WorkflowStep,
    WorkflowStepProgress,
)
from .store import MEMORY_URL, ExecutionStore, StoreSession

_store_instance: ExecutionStore | None = None


def normalize_database_url(database_url: str) -> str:
    """Map plain ``sqlite``/``postgres`` URLs onto their async drivers."""
    if database_url.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
        return database_url
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    for prefix in ("postgres://", "postgresql://"):
        if database_url.startswith(prefix):
            return database_url.replace(prefix, "postgresql+asyncpg://", 1)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_store(
    database_url: Optional[str] = None, config: Optional[StepwrightConfig] = None
) -> ExecutionStore:
    """Factory function to obtain the execution store.

    The backend is selected from ``database_url``, which can be provided
    explicitly, via environment variable ``STEPWRIGHT_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory SQLite store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = database_url or config.database_url

    if not database_url:
        _store_instance = ExecutionStore(MEMORY_URL)
    else:
        _store_instance = ExecutionStore(normalize_database_url(database_url))
    return _store_instance


def reset_store() -> None:
    """Forget the cached store instance."""
    global _store_instance
    _store_instance = None


__all__ = [
    "ExecutionStore",
    "QualityCheck",
    "RoleTransition",
    "StepAction",
    "StoreSession",
    "TransitionRecord",
    "WorkflowExecution",
    "WorkflowRole",
    "WorkflowStep",
    "WorkflowStepProgress",
    "get_store",
    "normalize_database_url",
    "reset_store",
]
