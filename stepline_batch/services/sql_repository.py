"""
SqlJobRepository -- JobRepository persisted through the SQLAlchemy ORM.

Contract:
    Same behaviour as InMemoryJobRepository, backed by the
    ``job_executions`` and ``step_executions`` tables.  Every call opens its
    own session and commits before returning, so a successful
    ``update_step_progress`` is durable.

Architecture: stepline_batch/services.  Imports from stepline_batch.models,
    stepline_batch.domain and stepline_kernel.

Invariants enforced:
    - ``(job_name, run_id)`` UNIQUE constraint backs RunIdCollisionError.
    - Job rows are locked (SELECT ... FOR UPDATE) while they change, in
      addition to the in-process per-execution lock.
    - SQLAlchemy failures surface as RepositoryError.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from stepline_batch.domain.types import (
    ExecutionStatus,
    JobExecution,
    StepExecution,
)
from stepline_batch.models.execution import JobExecutionModel, StepExecutionModel
from stepline_batch.services.repository import (
    ExecutionLocks,
    check_can_start,
    next_step_attempt,
)
from stepline_kernel.db.engine import session_scope
from stepline_kernel.domain.clock import Clock, SystemClock
from stepline_kernel.exceptions import (
    ExecutionImmutableError,
    JobExecutionNotFoundError,
    RepositoryError,
    RunIdCollisionError,
)
from stepline_kernel.logging_config import get_logger

logger = get_logger("batch.sql_repository")


class SqlJobRepository:
    """JobRepository over a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = ExecutionLocks()
        self._create_lock = threading.Lock()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Job repository operation failed: {exc}") from exc

    def _lock_job_row(self, session: Session, execution_id: UUID) -> JobExecutionModel:
        model = session.execute(
            select(JobExecutionModel)
            .where(JobExecutionModel.id == execution_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise JobExecutionNotFoundError(str(execution_id))
        return model

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_execution(self, execution_id: UUID) -> JobExecution:
        with self._session() as session:
            model = session.get(JobExecutionModel, execution_id)
            if model is None:
                raise JobExecutionNotFoundError(str(execution_id))
            return model.to_dto()

    def find_execution(self, job_name: str, run_id: int) -> JobExecution | None:
        with self._session() as session:
            model = session.execute(
                select(JobExecutionModel).where(
                    JobExecutionModel.job_name == job_name,
                    JobExecutionModel.run_id == run_id,
                )
            ).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    def find_last_execution(self, job_name: str) -> JobExecution | None:
        with self._session() as session:
            model = session.execute(
                select(JobExecutionModel)
                .where(JobExecutionModel.job_name == job_name)
                .order_by(JobExecutionModel.run_id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return model.to_dto() if model is not None else None

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create_execution(
        self, job_name: str, run_id: int | None = None,
    ) -> JobExecution:
        with self._create_lock, self._session() as session:
            if run_id is None:
                current_max = session.execute(
                    select(func.max(JobExecutionModel.run_id)).where(
                        JobExecutionModel.job_name == job_name,
                    )
                ).scalar()
                run_id = (current_max or 0) + 1

            now = self._clock.now()
            model = JobExecutionModel(
                id=uuid4(),
                job_name=job_name,
                run_id=run_id,
                status=ExecutionStatus.STARTING.value,
                attempt=0,
            )
            model.created_at = now
            model.updated_at = now
            session.add(model)
            try:
                session.flush()
            except IntegrityError as exc:
                raise RunIdCollisionError(job_name, run_id) from exc

            logger.debug(
                "job_execution_created",
                extra={"job_name": job_name, "run_id": run_id},
            )
            return model.to_dto()

    def mark_started(self, execution: JobExecution) -> JobExecution:
        with self._locks.hold(execution.execution_id), self._session() as session:
            model = self._lock_job_row(session, execution.execution_id)
            check_can_start(model.to_dto())
            model.status = ExecutionStatus.STARTED.value
            model.attempt = model.attempt + 1
            model.started_at = self._clock.now()
            model.ended_at = None
            model.exit_description = None
            session.flush()
            return model.to_dto()

    def add_step_execution(
        self, execution: JobExecution, step_name: str,
    ) -> StepExecution:
        with self._locks.hold(execution.execution_id), self._session() as session:
            model = self._lock_job_row(session, execution.execution_id)
            step_execution = next_step_attempt(model.to_dto(), step_name, uuid4())
            step_model = StepExecutionModel.from_dto(
                step_execution, sequence=len(model.step_executions),
            )
            model.step_executions.append(step_model)
            session.flush()
            return step_execution

    def _store_progress(self, session: Session, step_execution: StepExecution) -> None:
        model = session.get(
            StepExecutionModel, step_execution.step_execution_id, with_for_update=True,
        )
        if model is None:
            raise RepositoryError(
                f"Unknown step execution {step_execution.step_execution_id}"
            )
        if ExecutionStatus(model.status).is_terminal:
            raise ExecutionImmutableError(str(model.id), model.status)
        model.apply_dto(step_execution)

    def update_step_progress(self, step_execution: StepExecution) -> None:
        with self._locks.hold(step_execution.job_execution_id), self._session() as session:
            self._store_progress(session, step_execution)

    def mark_terminal(
        self,
        execution: JobExecution | StepExecution,
        status: ExecutionStatus,
        exit_description: str | None = None,
    ) -> JobExecution | StepExecution:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        if isinstance(execution, StepExecution):
            final = replace(
                execution,
                status=status,
                exit_description=exit_description,
                ended_at=self._clock.now(),
            )
            with self._locks.hold(execution.job_execution_id), self._session() as session:
                self._store_progress(session, final)
            return final

        with self._locks.hold(execution.execution_id), self._session() as session:
            model = self._lock_job_row(session, execution.execution_id)
            if model.status == ExecutionStatus.COMPLETED.value:
                raise ExecutionImmutableError(str(model.id), model.status)
            model.status = status.value
            model.exit_description = exit_description
            model.ended_at = self._clock.now()
            session.flush()
            return model.to_dto()
