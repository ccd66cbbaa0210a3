"""
JobRepository -- durable record of job runs and step attempts.

Contract:
    The repository is the single source of truth for restart.  The chunk
    executor calls ``update_step_progress`` exactly once per committed chunk;
    the launcher and job runner use the remaining operations to create,
    start and finish executions.

Architecture: stepline_batch/services.  Imports from stepline_batch.domain
    and stepline_kernel only.

Invariants enforced:
    - Run ids are unique per job name; an explicit duplicate raises
      RunIdCollisionError instead of overwriting.
    - Minted run ids increase monotonically per job name.
    - Terminal step executions are never updated again
      (ExecutionImmutableError); a COMPLETED job execution is final.
    - Writes are serialised per job execution; unrelated executions
      proceed independently.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Protocol, runtime_checkable
from uuid import UUID, uuid4

from stepline_batch.domain.types import (
    ExecutionStatus,
    JobExecution,
    StepExecution,
)
from stepline_kernel.domain.clock import Clock, SystemClock
from stepline_kernel.exceptions import (
    ExecutionImmutableError,
    JobExecutionAlreadyRunningError,
    JobExecutionNotFoundError,
    RepositoryError,
    RunIdCollisionError,
)
from stepline_kernel.logging_config import get_logger

logger = get_logger("batch.repository")


@runtime_checkable
class JobRepository(Protocol):
    """Persistence port for job and step executions."""

    def create_execution(
        self, job_name: str, run_id: int | None = None,
    ) -> JobExecution: ...

    def find_last_execution(self, job_name: str) -> JobExecution | None: ...

    def find_execution(self, job_name: str, run_id: int) -> JobExecution | None: ...

    def get_execution(self, execution_id: UUID) -> JobExecution: ...

    def mark_started(self, execution: JobExecution) -> JobExecution: ...

    def add_step_execution(
        self, execution: JobExecution, step_name: str,
    ) -> StepExecution: ...

    def update_step_progress(self, step_execution: StepExecution) -> None: ...

    def mark_terminal(
        self,
        execution: JobExecution | StepExecution,
        status: ExecutionStatus,
        exit_description: str | None = None,
    ) -> JobExecution | StepExecution: ...


class ExecutionLocks:
    """One re-entrant lock per job execution id.

    An entry lives only while some thread holds or waits for it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.RLock] = {}
        self._users: dict[UUID, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, execution_id: UUID) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(execution_id, threading.RLock())
            self._users[execution_id] = self._users.get(execution_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[execution_id] -= 1
                if not self._users[execution_id]:
                    del self._users[execution_id]
                    del self._locks[execution_id]


def check_can_start(current: JobExecution) -> None:
    """Raise if ``current`` may not move to STARTED."""
    if current.status is ExecutionStatus.COMPLETED:
        raise ExecutionImmutableError(str(current.execution_id), current.status.value)
    if current.status is ExecutionStatus.STARTED:
        raise JobExecutionAlreadyRunningError(current.job_name, current.run_id)


def next_step_attempt(
    current: JobExecution, step_name: str, step_execution_id: UUID,
) -> StepExecution:
    """Build the STARTING attempt for ``step_name`` within ``current``."""
    previous = current.latest_step_execution(step_name)
    if previous is None:
        return StepExecution(
            step_execution_id=step_execution_id,
            job_execution_id=current.execution_id,
            step_name=step_name,
            run_id=current.run_id,
        )
    if previous.status is ExecutionStatus.COMPLETED:
        raise ExecutionImmutableError(
            str(previous.step_execution_id), previous.status.value,
        )
    return StepExecution.resume_from(previous, step_execution_id)


class InMemoryJobRepository:
    """Process-lifetime repository backed by dicts.

    Suitable for tests and for jobs that do not need restart across
    process boundaries.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._locks = ExecutionLocks()
        self._create_lock = threading.Lock()
        self._executions: dict[UUID, JobExecution] = {}
        self._by_job: dict[str, list[UUID]] = {}
        self._steps: dict[UUID, StepExecution] = {}
        self._step_order: dict[UUID, list[UUID]] = {}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _snapshot(self, execution_id: UUID) -> JobExecution:
        stored = self._executions.get(execution_id)
        if stored is None:
            raise JobExecutionNotFoundError(str(execution_id))
        steps = tuple(self._steps[s] for s in self._step_order[execution_id])
        return replace(stored, step_executions=steps)

    def get_execution(self, execution_id: UUID) -> JobExecution:
        return self._snapshot(execution_id)

    def find_execution(self, job_name: str, run_id: int) -> JobExecution | None:
        for execution_id in self._by_job.get(job_name, ()):
            if self._executions[execution_id].run_id == run_id:
                return self._snapshot(execution_id)
        return None

    def find_last_execution(self, job_name: str) -> JobExecution | None:
        ids = self._by_job.get(job_name)
        if not ids:
            return None
        last = max(ids, key=lambda i: self._executions[i].run_id)
        return self._snapshot(last)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create_execution(
        self, job_name: str, run_id: int | None = None,
    ) -> JobExecution:
        with self._create_lock:
            existing = [self._executions[i] for i in self._by_job.get(job_name, ())]
            if run_id is None:
                run_id = max((e.run_id for e in existing), default=0) + 1
            elif any(e.run_id == run_id for e in existing):
                raise RunIdCollisionError(job_name, run_id)

            execution = JobExecution(
                execution_id=uuid4(),
                job_name=job_name,
                run_id=run_id,
                status=ExecutionStatus.STARTING,
                created_at=self._clock.now(),
            )
            self._executions[execution.execution_id] = execution
            self._by_job.setdefault(job_name, []).append(execution.execution_id)
            self._step_order[execution.execution_id] = []

        logger.debug(
            "job_execution_created",
            extra={"job_name": job_name, "run_id": run_id},
        )
        return execution

    def mark_started(self, execution: JobExecution) -> JobExecution:
        with self._locks.hold(execution.execution_id):
            current = self._snapshot(execution.execution_id)
            check_can_start(current)
            self._executions[execution.execution_id] = replace(
                self._executions[execution.execution_id],
                status=ExecutionStatus.STARTED,
                attempt=current.attempt + 1,
                started_at=self._clock.now(),
                ended_at=None,
                exit_description=None,
            )
            return self._snapshot(execution.execution_id)

    def add_step_execution(
        self, execution: JobExecution, step_name: str,
    ) -> StepExecution:
        with self._locks.hold(execution.execution_id):
            current = self._snapshot(execution.execution_id)
            step_execution = next_step_attempt(current, step_name, uuid4())
            self._steps[step_execution.step_execution_id] = step_execution
            self._step_order[execution.execution_id].append(
                step_execution.step_execution_id,
            )
            return step_execution

    def update_step_progress(self, step_execution: StepExecution) -> None:
        with self._locks.hold(step_execution.job_execution_id):
            stored = self._steps.get(step_execution.step_execution_id)
            if stored is None:
                raise RepositoryError(
                    f"Unknown step execution {step_execution.step_execution_id}"
                )
            if stored.status.is_terminal:
                raise ExecutionImmutableError(
                    str(stored.step_execution_id), stored.status.value,
                )
            self._steps[step_execution.step_execution_id] = step_execution

    def mark_terminal(
        self,
        execution: JobExecution | StepExecution,
        status: ExecutionStatus,
        exit_description: str | None = None,
    ) -> JobExecution | StepExecution:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        if isinstance(execution, StepExecution):
            with self._locks.hold(execution.job_execution_id):
                self.update_step_progress(execution)
                final = replace(
                    execution,
                    status=status,
                    exit_description=exit_description,
                    ended_at=self._clock.now(),
                )
                self._steps[execution.step_execution_id] = final
                return final

        with self._locks.hold(execution.execution_id):
            current = self._snapshot(execution.execution_id)
            if current.status is ExecutionStatus.COMPLETED:
                raise ExecutionImmutableError(
                    str(current.execution_id), current.status.value,
                )
            self._executions[execution.execution_id] = replace(
                self._executions[execution.execution_id],
                status=status,
                exit_description=exit_description,
                ended_at=self._clock.now(),
            )
            return self._snapshot(execution.execution_id)
