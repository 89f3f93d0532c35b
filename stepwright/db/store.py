from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager, nullcontext
from typing import Any, AsyncIterator, Optional

from sqlalchemy import event, func
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, select

from ..constants import StepStatus
from ..definitions import WorkflowDefinitions, validate_definitions
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

logger = logging.getLogger(__name__)

MEMORY_URL = "sqlite+aiosqlite://"


class StoreSession:
    """Typed queries over one ``AsyncSession``.

    Every engine component takes a ``StoreSession`` so that it can run
    inside a transaction opened by its caller.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def add(self, obj: SQLModel) -> None:
        self.session.add(obj)

    async def flush(self) -> None:
        await self.session.flush()

    # ------------------------------------------------------------------
    # Roles and steps
    async def get_role(self, role_id: str) -> Optional[WorkflowRole]:
        return await self.session.get(WorkflowRole, role_id)

    async def get_role_by_name(self, name: str) -> Optional[WorkflowRole]:
        result = await self.session.execute(
            select(WorkflowRole).where(WorkflowRole.name == name)
        )
        return result.scalars().first()

    async def list_roles(self) -> list[WorkflowRole]:
        result = await self.session.execute(
            select(WorkflowRole).order_by(WorkflowRole.priority, WorkflowRole.name)
        )
        return list(result.scalars().all())

    async def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        return await self.session.get(WorkflowStep, step_id)

    async def steps_for_role(self, role_id: str) -> list[WorkflowStep]:
        result = await self.session.execute(
            select(WorkflowStep)
            .where(WorkflowStep.role_id == role_id)
            .order_by(WorkflowStep.sequence_number)
        )
        return list(result.scalars().all())

    async def first_step_for_role(self, role_id: str) -> Optional[WorkflowStep]:
        result = await self.session.execute(
            select(WorkflowStep)
            .where(WorkflowStep.role_id == role_id)
            .order_by(WorkflowStep.sequence_number)
            .limit(1)
        )
        return result.scalars().first()

    async def actions_for_step(self, step_id: str) -> list[StepAction]:
        result = await self.session.execute(
            select(StepAction)
            .where(StepAction.step_id == step_id)
            .order_by(StepAction.sequence_order)
        )
        return list(result.scalars().all())

    async def quality_checks_for_step(self, step_id: str) -> list[QualityCheck]:
        result = await self.session.execute(
            select(QualityCheck)
            .where(QualityCheck.step_id == step_id)
            .order_by(QualityCheck.sequence_order)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Transitions
    async def get_transition(self, transition_id: str) -> Optional[RoleTransition]:
        return await self.session.get(RoleTransition, transition_id)

    async def transitions_from(
        self, role_id: str, active_only: bool = True
    ) -> list[RoleTransition]:
        query = select(RoleTransition).where(RoleTransition.from_role_id == role_id)
        if active_only:
            query = query.where(RoleTransition.is_active == True)  # noqa: E712
        result = await self.session.execute(
            query.order_by(RoleTransition.priority.desc(), RoleTransition.name)
        )
        return list(result.scalars().all())

    async def transition_records(self, execution_id: str) -> list[TransitionRecord]:
        result = await self.session.execute(
            select(TransitionRecord)
            .where(TransitionRecord.execution_id == execution_id)
            .order_by(TransitionRecord.id.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Executions
    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.session.get(WorkflowExecution, execution_id)

    async def lock_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Read the execution row with a row-level lock held until commit."""
        result = await self.session.execute(
            select(WorkflowExecution)
            .where(WorkflowExecution.id == execution_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def latest_execution_for_task(
        self, task_id: int
    ) -> Optional[WorkflowExecution]:
        result = await self.session.execute(
            select(WorkflowExecution)
            .where(WorkflowExecution.task_id == task_id)
            .order_by(WorkflowExecution.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_executions(self) -> list[WorkflowExecution]:
        result = await self.session.execute(
            select(WorkflowExecution).order_by(WorkflowExecution.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Step progress
    async def progress_for_execution(
        self, execution_id: str
    ) -> list[WorkflowStepProgress]:
        result = await self.session.execute(
            select(WorkflowStepProgress)
            .where(WorkflowStepProgress.execution_id == execution_id)
            .order_by(WorkflowStepProgress.id)
        )
        return list(result.scalars().all())

    async def latest_progress_by_step(
        self, execution_id: str, after_id: int = 0
    ) -> dict[str, WorkflowStepProgress]:
        """Most recent progress row per step id, ignoring rows up to ``after_id``."""
        latest: dict[str, WorkflowStepProgress] = {}
        for row in await self.progress_for_execution(execution_id):
            if row.id is not None and row.id > after_id:
                latest[row.step_id] = row
        return latest

    async def last_progress_id(self, execution_id: str) -> int:
        result = await self.session.execute(
            select(func.max(WorkflowStepProgress.id)).where(
                WorkflowStepProgress.execution_id == execution_id
            )
        )
        return int(result.scalar_one_or_none() or 0)

    async def in_progress(self, execution_id: str) -> Optional[WorkflowStepProgress]:
        result = await self.session.execute(
            select(WorkflowStepProgress)
            .where(
                WorkflowStepProgress.execution_id == execution_id,
                WorkflowStepProgress.status == StepStatus.IN_PROGRESS.value,
            )
            .order_by(WorkflowStepProgress.id.desc())
        )
        return result.scalars().first()

    async def last_completed(self, execution_id: str) -> Optional[WorkflowStepProgress]:
        result = await self.session.execute(
            select(WorkflowStepProgress)
            .where(
                WorkflowStepProgress.execution_id == execution_id,
                WorkflowStepProgress.status == StepStatus.COMPLETED.value,
            )
            .order_by(WorkflowStepProgress.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def count_progress(self, execution_id: str, status: StepStatus) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(WorkflowStepProgress)
            .where(
                WorkflowStepProgress.execution_id == execution_id,
                WorkflowStepProgress.status == status.value,
            )
        )
        return int(result.scalar_one())


class ExecutionStore:
    """Async persistence façade over the workflow tables."""

    def __init__(self, database_url: str = MEMORY_URL) -> None:
        self.database_url = database_url
        kwargs: dict = {"echo": False}
        sqlite = database_url.startswith("sqlite")
        memory = sqlite and _is_memory_sqlite(database_url)
        if sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if memory:
                kwargs["poolclass"] = StaticPool
        self.engine = create_async_engine(database_url, **kwargs)
        # The in-memory database lives on one shared connection, so its
        # transactions cannot overlap.
        self._exclusive: AbstractAsyncContextManager[Any] = (
            asyncio.Lock() if memory else nullcontext()
        )
        if sqlite and not memory:
            _begin_immediate(self.engine)

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreSession]:
        """One unit of work: commit on exit, roll back on error.

        On SQLite the database write lock is taken when the transaction
        begins, which is what makes ``lock_execution`` exclusive there.
        """
        async with self._exclusive:
            async with AsyncSession(self.engine, expire_on_commit=False) as session:
                async with session.begin():
                    yield StoreSession(session)

    async def load_definitions(self, definitions: WorkflowDefinitions) -> dict[str, int]:
        """Validate ``definitions`` and insert them in a single transaction."""
        validate_definitions(definitions)
        counts = {"roles": 0, "steps": 0, "transitions": 0}
        async with self.transaction() as tx:
            role_ids: dict[str, str] = {}
            for role_def in definitions.roles:
                role = WorkflowRole(
                    name=role_def.name,
                    description=role_def.description,
                    priority=role_def.priority,
                    is_active=role_def.is_active,
                    is_terminal=role_def.is_terminal,
                    capabilities=dict(role_def.capabilities),
                    core_responsibilities=list(role_def.core_responsibilities),
                    key_capabilities=list(role_def.key_capabilities),
                )
                tx.add(role)
                role_ids[role.name] = role.id
                counts["roles"] += 1

                for step_def in role_def.steps:
                    step = WorkflowStep(
                        role_id=role.id,
                        name=step_def.name,
                        description=step_def.description,
                        sequence_number=step_def.sequence_number,
                        is_required=step_def.is_required,
                        step_type=step_def.step_type.value,
                        approach=step_def.approach,
                        step_by_step=list(step_def.step_by_step),
                        dependencies=list(step_def.dependencies),
                    )
                    tx.add(step)
                    counts["steps"] += 1
                    for index, criterion in enumerate(step_def.quality_checklist, start=1):
                        tx.add(
                            QualityCheck(
                                step_id=step.id, criterion=criterion, sequence_order=index
                            )
                        )
                    for index, action_def in enumerate(step_def.actions, start=1):
                        tx.add(
                            StepAction(
                                step_id=step.id,
                                name=action_def.name,
                                service_name=action_def.service_name,
                                operation=action_def.operation,
                                parameters=dict(action_def.parameters),
                                sequence_order=action_def.sequence_order or index,
                            )
                        )

            for transition_def in definitions.transitions:
                tx.add(
                    RoleTransition(
                        name=transition_def.name,
                        from_role_id=role_ids[transition_def.from_role],
                        to_role_id=role_ids[transition_def.to_role],
                        description=transition_def.description,
                        handoff_message=transition_def.handoff_message,
                        priority=transition_def.priority,
                        is_active=transition_def.is_active,
                        conditions=dict(transition_def.conditions),
                        requirements=list(transition_def.requirements),
                        validation_criteria=list(transition_def.validation_criteria),
                        context_elements=list(transition_def.context_elements),
                        deliverables=list(transition_def.deliverables),
                    )
                )
                counts["transitions"] += 1

        logger.info(
            f"Loaded {counts['roles']} roles, {counts['steps']} steps, "
            f"{counts['transitions']} transitions"
        )
        return counts


def _is_memory_sqlite(database_url: str) -> bool:
    tail = database_url.split("://", 1)[-1]
    return tail in ("", "/", "/:memory:") or ":memory:" in tail


def _begin_immediate(engine: AsyncEngine) -> None:
    """Open every SQLite transaction with ``BEGIN IMMEDIATE``.

    The driver would otherwise delay ``BEGIN`` until the first write, and
    ``SELECT ... FOR UPDATE`` is a no-op on SQLite, so two transactions
    could both read an execution before either one writes it.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
