"""
JobLauncher -- entry point that starts, restarts and stops job runs.

Contract:
    ``launch()`` resolves the run to execute (fresh, restart, or already
    complete), runs it to a terminal status and returns the final
    JobExecution.  ``launch_async()`` does the same on a worker thread and
    returns a LaunchHandle for cooperative stop and result retrieval.

Architecture: stepline_batch/services.

Invariants enforced:
    - Relaunching a COMPLETED run returns it unchanged: nothing is read or
      written and listeners are not notified.
    - A run that is STARTING or STARTED cannot be launched a second time.
    - A FAILED or STOPPED run restarts under the same run id, resuming every
      unfinished step from its last committed chunk.
    - ``after_job`` is delivered exactly once per launch that ran.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Sequence
from uuid import uuid4

from stepline_batch.domain.flow import JobConfig
from stepline_batch.domain.types import (
    ExecutionStatus,
    JobExecution,
    exit_description_for,
)
from stepline_batch.services.chunk_executor import ChunkExecutor
from stepline_batch.services.job_runner import JobRunner
from stepline_batch.services.listeners import notify_listeners
from stepline_batch.services.repository import JobRepository
from stepline_kernel.domain.clock import Clock, SystemClock
from stepline_kernel.exceptions import (
    JobExecutionAlreadyRunningError,
    JobExecutionNotFoundError,
    JobNotRestartableError,
    RepositoryError,
)
from stepline_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.launcher")

ABANDONED_DESCRIPTION = "Abandoned by operator"


class LaunchHandle:
    """Handle on an asynchronous launch."""

    def __init__(self, future: Future, stop_event: threading.Event):
        self._future = future
        self._stop_event = stop_event

    def stop(self) -> None:
        """Request a stop; the running step ends STOPPED at its next chunk boundary."""
        self._stop_event.set()

    def result(self, timeout: float | None = None) -> JobExecution:
        return self._future.result(timeout)

    def done(self) -> bool:
        return self._future.done()


class JobLauncher:
    """Launches JobConfigs against a JobRepository.

    Non-goals:
        - Does NOT schedule anything; callers decide when to launch.
        - Does NOT run more than one step of a job at a time.
    """

    def __init__(
        self,
        repository: JobRepository,
        clock: Clock | None = None,
        chunk_executor: ChunkExecutor | None = None,
        max_workers: int = 4,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._runner = JobRunner(
            repository, chunk_executor or ChunkExecutor(repository, self._clock),
        )
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Synchronous launch
    # -------------------------------------------------------------------------

    def launch(
        self,
        job: JobConfig,
        run_id: int | None = None,
        listeners: Sequence[Any] = (),
        stop_event: threading.Event | None = None,
    ) -> JobExecution:
        """Run ``job`` to a terminal status and return the final execution.

        Raises:
            JobExecutionAlreadyRunningError: If ``run_id`` is in progress.
            JobNotRestartableError: If ``run_id`` failed and the job is not
                restartable.
            RunIdCollisionError: If a new execution's run id already exists.
        """
        execution = self._resolve_execution(job, run_id)
        if execution.status is ExecutionStatus.COMPLETED:
            logger.info(
                "job_already_complete",
                extra={"job_name": job.name, "run_id": execution.run_id},
            )
            return execution

        execution = self._repository.mark_started(execution)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            job_name=job.name,
            run_id=str(execution.run_id),
            execution_id=str(execution.execution_id),
        ):
            logger.info(
                "job_launched",
                extra={"attempt": execution.attempt, "restart": execution.attempt > 1},
            )
            notify_listeners(listeners, "before_job", execution)

            try:
                final = self._runner.run(job, execution, listeners, stop_event)
            except Exception as exc:
                logger.exception("job_execution_error")
                final = self._record_failure(execution, exc)

            event = {
                ExecutionStatus.COMPLETED: "job_completed",
                ExecutionStatus.FAILED: "job_failed",
                ExecutionStatus.STOPPED: "job_stopped",
            }.get(final.status, "job_finished")
            log = logger.info if final.status is ExecutionStatus.COMPLETED else logger.warning
            log(event, extra=final.summary())

            notify_listeners(listeners, "after_job", final)
        return final

    def _resolve_execution(self, job: JobConfig, run_id: int | None) -> JobExecution:
        if run_id is None:
            return self._repository.create_execution(job.name)

        existing = self._repository.find_execution(job.name, run_id)
        if existing is None:
            return self._repository.create_execution(job.name, run_id)
        if existing.status is ExecutionStatus.COMPLETED:
            return existing
        if not existing.status.is_terminal:
            raise JobExecutionAlreadyRunningError(job.name, run_id)
        if existing.status.is_restartable and not job.restartable:
            raise JobNotRestartableError(job.name, run_id)

        if existing.status.is_restartable:
            logger.info(
                "job_restart",
                extra={
                    "job_name": job.name,
                    "run_id": run_id,
                    "previous_status": existing.status.value,
                    "attempt": existing.attempt + 1,
                },
            )
        return existing

    def _record_failure(self, execution: JobExecution, exc: Exception) -> JobExecution:
        description = exit_description_for(exc)
        try:
            return self._repository.mark_terminal(
                execution, ExecutionStatus.FAILED, description,
            )
        except RepositoryError:
            logger.exception("job_status_not_recorded")
            return replace(
                execution,
                status=ExecutionStatus.FAILED,
                exit_description=description,
                ended_at=self._clock.now(),
            )

    # -------------------------------------------------------------------------
    # Asynchronous launch
    # -------------------------------------------------------------------------

    def launch_async(
        self,
        job: JobConfig,
        run_id: int | None = None,
        listeners: Sequence[Any] = (),
    ) -> LaunchHandle:
        stop_event = threading.Event()
        future = self._executor().submit(
            self.launch, job, run_id, listeners, stop_event,
        )
        return LaunchHandle(future, stop_event)

    def _executor(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="stepline-launch",
                )
            return self._pool

    def shutdown(self, wait: bool = True) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)

    # -------------------------------------------------------------------------
    # Abandon
    # -------------------------------------------------------------------------

    def abandon(self, job_name: str, run_id: int) -> JobExecution:
        """Mark a run left STARTED by a dead process as FAILED so it can restart.

        Raises:
            JobExecutionNotFoundError: If the run does not exist.
        """
        execution = self._repository.find_execution(job_name, run_id)
        if execution is None:
            raise JobExecutionNotFoundError(f"{job_name} run {run_id}")
        if execution.status.is_terminal:
            return execution

        for step_execution in execution.latest_step_executions().values():
            if not step_execution.status.is_terminal:
                self._repository.mark_terminal(
                    step_execution, ExecutionStatus.FAILED, ABANDONED_DESCRIPTION,
                )
        final = self._repository.mark_terminal(
            execution, ExecutionStatus.FAILED, ABANDONED_DESCRIPTION,
        )
        logger.warning(
            "job_abandoned",
            extra={"job_name": job_name, "run_id": run_id},
        )
        return final
