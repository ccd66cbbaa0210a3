"""
Execution listeners -- callbacks around job and step lifecycle events.

Listeners observe; they never influence the recorded outcome.  A listener
that raises is logged (``listener_failed``) and the run carries on.
"""

from __future__ import annotations

from typing import Any, Sequence

from stepline_batch.domain.types import ExecutionStatus, JobExecution, StepExecution
from stepline_kernel.logging_config import get_logger

logger = get_logger("batch.listeners")


class ExecutionListener:
    """Base listener with no-op hooks; override the ones you need."""

    def before_job(self, execution: JobExecution) -> None:
        pass

    def after_step(self, step_execution: StepExecution) -> None:
        pass

    def after_job(self, execution: JobExecution) -> None:
        pass


class LoggingListener(ExecutionListener):
    """Logs a summary line for every finished step and job."""

    def after_step(self, step_execution: StepExecution) -> None:
        logger.info(
            "step_summary",
            extra={
                "step_name": step_execution.step_name,
                "status": step_execution.status.value,
                "attempt": step_execution.attempt,
                "read_count": step_execution.read_count,
                "write_count": step_execution.write_count,
                "skip_count": step_execution.skip_count,
                "filter_count": step_execution.filter_count,
            },
        )

    def after_job(self, execution: JobExecution) -> None:
        log = logger.info
        if execution.status is not ExecutionStatus.COMPLETED:
            log = logger.warning
        log("job_summary", extra=execution.summary())


def notify_listeners(
    listeners: Sequence[Any],
    hook: str,
    payload: JobExecution | StepExecution,
) -> None:
    """Call ``hook`` on every listener that defines it, isolating failures."""
    for listener in listeners:
        callback = getattr(listener, hook, None)
        if callback is None:
            continue
        try:
            callback(payload)
        except Exception:
            logger.exception(
                "listener_failed",
                extra={"listener": type(listener).__name__, "hook": hook},
            )
