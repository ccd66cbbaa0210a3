"""
stepline_batch.domain.types -- Pure frozen dataclasses for job and step executions.

ZERO I/O.  Repositories hand these snapshots out and accept them back; every
state change produces a new snapshot through ``dataclasses.replace``.

Invariants enforced:
    - Snapshots are frozen dataclasses (immutable).
    - A StepExecution always satisfies
      ``write_count + skip_count + filter_count == read_count``.
    - ``committed_position`` only moves forward, one chunk at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from stepline_kernel.exceptions import SourceError


# =============================================================================
# Status enum
# =============================================================================


class ExecutionStatus(str, Enum):
    """Lifecycle status shared by job and step executions."""

    STARTING = "starting"  # Created, not yet running
    STARTED = "started"  # Running
    COMPLETED = "completed"  # Finished on a completed path
    FAILED = "failed"  # Ended by an unrecoverable fault
    STOPPED = "stopped"  # Ended by a cooperative stop request

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def is_restartable(self) -> bool:
        return self in _RESTARTABLE_STATUSES


_TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.STOPPED}
)
_RESTARTABLE_STATUSES = frozenset({ExecutionStatus.FAILED, ExecutionStatus.STOPPED})


def exit_description_for(exc: BaseException) -> str:
    """Render an exception as the exit description of a failed execution."""
    message = str(exc)
    if not message:
        return type(exc).__name__
    return f"{type(exc).__name__}: {message}"


# =============================================================================
# Fault policy
# =============================================================================


@dataclass(frozen=True)
class FaultPolicy:
    """Per-step rules for item failures.

    ``skippable`` failures are dropped and counted until ``skip_limit`` skips
    have been taken across the whole step.  ``retryable`` failures are retried
    in place up to ``retry_limit`` extra attempts before the skip rules apply.
    A ``SourceError`` flagged ``retryable`` is retryable regardless of type.
    """

    skippable: tuple[type[BaseException], ...] = ()
    skip_limit: int = 0
    retryable: tuple[type[BaseException], ...] = ()
    retry_limit: int = 0

    def __post_init__(self) -> None:
        if self.skip_limit < 0:
            raise ValueError(f"skip_limit must be >= 0, got {self.skip_limit}")
        if self.retry_limit < 0:
            raise ValueError(f"retry_limit must be >= 0, got {self.retry_limit}")

    def is_skippable(self, exc: BaseException) -> bool:
        return bool(self.skippable) and isinstance(exc, self.skippable)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, SourceError) and exc.retryable:
            return True
        return bool(self.retryable) and isinstance(exc, self.retryable)

    def should_skip(self, exc: BaseException, skips_so_far: int) -> bool:
        """True if ``exc`` may be skipped given the skips already taken."""
        return self.is_skippable(exc) and skips_so_far < self.skip_limit

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """True if ``exc`` may be retried after ``attempt`` retries."""
        return self.is_retryable(exc) and attempt < self.retry_limit


NO_FAULT_TOLERANCE = FaultPolicy()


# =============================================================================
# Chunk tally
# =============================================================================


@dataclass
class ChunkOutcome:
    """Read and transform tally of one in-flight chunk.

    Owned by a single ``run_step`` invocation; never shared or persisted.
    ``items`` holds the transformed records waiting for the sink.
    """

    items: list[Any] = field(default_factory=list)
    read_count: int = 0
    filter_count: int = 0
    skip_count: int = 0
    exhausted: bool = False

    @property
    def write_count(self) -> int:
        return len(self.items)


# =============================================================================
# Step execution
# =============================================================================


@dataclass(frozen=True)
class StepExecution:
    """Immutable snapshot of one attempt at running a step.

    Counts are cumulative across restart attempts of the same run, so the
    latest attempt always describes the whole step.
    """

    step_execution_id: UUID
    job_execution_id: UUID
    step_name: str
    run_id: int
    status: ExecutionStatus = ExecutionStatus.STARTING
    attempt: int = 1
    read_count: int = 0
    write_count: int = 0
    skip_count: int = 0
    filter_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0
    committed_position: int = 0
    exit_description: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.write_count > self.read_count:
            raise ValueError(
                f"write_count ({self.write_count}) exceeds "
                f"read_count ({self.read_count})"
            )
        accounted = self.write_count + self.skip_count + self.filter_count
        if accounted != self.read_count:
            raise ValueError(
                f"write + skip + filter ({accounted}) != read ({self.read_count})"
            )
        if self.committed_position < 0:
            raise ValueError("committed_position must be >= 0")

    def with_chunk_committed(
        self,
        read: int,
        written: int,
        filtered: int = 0,
        skipped: int = 0,
    ) -> StepExecution:
        """Snapshot after a chunk's sink write committed."""
        return replace(
            self,
            read_count=self.read_count + read,
            write_count=self.write_count + written,
            filter_count=self.filter_count + filtered,
            skip_count=self.skip_count + skipped,
            commit_count=self.commit_count + 1,
            committed_position=self.committed_position + read,
        )

    @classmethod
    def resume_from(
        cls,
        previous: StepExecution,
        step_execution_id: UUID,
    ) -> StepExecution:
        """New attempt that continues where ``previous`` last committed."""
        return cls(
            step_execution_id=step_execution_id,
            job_execution_id=previous.job_execution_id,
            step_name=previous.step_name,
            run_id=previous.run_id,
            status=ExecutionStatus.STARTING,
            attempt=previous.attempt + 1,
            read_count=previous.read_count,
            write_count=previous.write_count,
            skip_count=previous.skip_count,
            filter_count=previous.filter_count,
            commit_count=previous.commit_count,
            rollback_count=previous.rollback_count,
            committed_position=previous.committed_position,
        )


# =============================================================================
# Job execution
# =============================================================================


@dataclass(frozen=True)
class JobExecution:
    """Immutable snapshot of one run of a job (all of its attempts).

    A restart reuses the execution: ``attempt`` counts launches of the same
    ``run_id`` and ``step_executions`` keeps every step attempt in the order
    they were created.
    """

    execution_id: UUID
    job_name: str
    run_id: int
    status: ExecutionStatus = ExecutionStatus.STARTING
    attempt: int = 0
    created_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_description: str | None = None
    step_executions: tuple[StepExecution, ...] = ()

    def latest_step_executions(self) -> dict[str, StepExecution]:
        """Map each step name to its most recent attempt, in first-run order."""
        latest: dict[str, StepExecution] = {}
        for step_execution in self.step_executions:
            latest[step_execution.step_name] = step_execution
        return latest

    def latest_step_execution(self, step_name: str) -> StepExecution | None:
        return self.latest_step_executions().get(step_name)

    def first_failure(self) -> StepExecution | None:
        """First step (in run order) whose latest attempt did not complete."""
        for step_execution in self.latest_step_executions().values():
            if step_execution.status in (
                ExecutionStatus.FAILED,
                ExecutionStatus.STOPPED,
            ):
                return step_execution
        return None

    @property
    def read_count(self) -> int:
        return sum(s.read_count for s in self.latest_step_executions().values())

    @property
    def write_count(self) -> int:
        return sum(s.write_count for s in self.latest_step_executions().values())

    @property
    def skip_count(self) -> int:
        return sum(s.skip_count for s in self.latest_step_executions().values())

    def summary(self) -> dict[str, Any]:
        """Flat dict for log payloads and CLI output."""
        return {
            "job_name": self.job_name,
            "run_id": self.run_id,
            "status": self.status.value,
            "attempt": self.attempt,
            "read_count": self.read_count,
            "write_count": self.write_count,
            "skip_count": self.skip_count,
            "exit_description": self.exit_description,
        }
