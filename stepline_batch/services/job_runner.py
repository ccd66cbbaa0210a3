"""
JobRunner -- walks a job's step flow for one launch attempt.

Contract:
    ``run()`` starts at the first declared step and follows the edges
    resolved by ``JobConfig.next_step`` until the flow ends, then records the
    job's terminal status.  Steps whose latest attempt already COMPLETED
    (from an earlier attempt of the same run) are not executed again but
    still drive their transitions.

Architecture: stepline_batch/services.

Invariants enforced:
    - Steps run sequentially, never concurrently.
    - The job ends COMPLETED iff the flow ends on a completed path.
    - A failed or stopped job's exit description is that of the first
      step that failed or stopped during this attempt, otherwise the reason
      the flow itself ended.
"""

from __future__ import annotations

import threading
from typing import Any, Sequence

from stepline_batch.domain.flow import JobConfig
from stepline_batch.domain.types import ExecutionStatus, JobExecution, StepExecution
from stepline_batch.services.chunk_executor import ChunkExecutor
from stepline_batch.services.listeners import notify_listeners
from stepline_batch.services.repository import JobRepository
from stepline_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.job_runner")


class JobRunner:
    """Sequential flow interpreter over a ChunkExecutor."""

    def __init__(self, repository: JobRepository, chunk_executor: ChunkExecutor):
        self._repository = repository
        self._chunk_executor = chunk_executor

    def run(
        self,
        job: JobConfig,
        execution: JobExecution,
        listeners: Sequence[Any] = (),
        stop_event: threading.Event | None = None,
    ) -> JobExecution:
        latest = execution.latest_step_executions()
        visited: set[str] = set()
        step = job.first_step
        stop_description: str | None = None
        ran: list[StepExecution] = []

        while True:
            if step.name in visited:
                stop_description = f"Flow returned to step '{step.name}'"
                logger.error("flow_cycle_detected", extra={"step_name": step.name})
                end_status = ExecutionStatus.FAILED
                break
            visited.add(step.name)

            previous = latest.get(step.name)
            if previous is not None and previous.status is ExecutionStatus.COMPLETED:
                logger.info("step_already_complete", extra={"step_name": step.name})
                status = ExecutionStatus.COMPLETED
            elif stop_event is not None and stop_event.is_set():
                stop_description = f"Stopped before step '{step.name}'"
                end_status = ExecutionStatus.STOPPED
                break
            else:
                step_execution = self._repository.add_step_execution(execution, step.name)
                with LogContext.bind(step_name=step.name):
                    result = self._chunk_executor.run_step(
                        step, step_execution, stop_event,
                    )
                ran.append(result)
                notify_listeners(listeners, "after_step", result)
                status = result.status

            transition = job.next_step(step.name, status)
            if transition.to is None:
                end_status = transition.end_status or status
                break
            logger.debug(
                "flow_transition",
                extra={"from_step": step.name, "on": status.value, "to_step": transition.to},
            )
            step = job.step(transition.to)

        refreshed = self._repository.get_execution(execution.execution_id)
        exit_description = None
        if end_status is not ExecutionStatus.COMPLETED:
            failure = next(
                (s for s in ran if s.status in (ExecutionStatus.FAILED, ExecutionStatus.STOPPED)),
                None,
            )
            if failure is not None and failure.exit_description:
                exit_description = failure.exit_description
            else:
                exit_description = stop_description
        return self._repository.mark_terminal(refreshed, end_status, exit_description)
