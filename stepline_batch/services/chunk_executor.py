"""
ChunkExecutor -- runs one step as a sequence of committed chunks.

Contract:
    ``run_step()`` reads up to ``chunk_size`` records from the step's source,
    transforms each, hands the surviving records to the sink in one call and
    only then records the chunk's counts and new restart position through
    ``JobRepository.update_step_progress``.  It returns the terminal
    StepExecution; step-level faults end up in the returned status and exit
    description rather than propagating.

Architecture: stepline_batch/services.  Imports from stepline_batch.domain,
    stepline_batch.services.repository and stepline_kernel.

Invariants enforced:
    - A chunk is atomic: a read, transform or sink fault that the fault
      policy does not absorb aborts the chunk and nothing from it is counted.
    - ``committed_position`` advances only after the sink write returned.
    - Without faults, R records in chunks of N cause ceil(R / N) sink writes.
    - A stop request is honoured at chunk boundaries only.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Iterator

from stepline_batch.domain.flow import StepConfig
from stepline_batch.domain.types import (
    ChunkOutcome,
    ExecutionStatus,
    FaultPolicy,
    StepExecution,
    exit_description_for,
)
from stepline_batch.items.base import ItemSource
from stepline_batch.services.repository import JobRepository
from stepline_kernel.domain.clock import Clock, SystemClock
from stepline_kernel.exceptions import (
    RepositoryError,
    SinkError,
    SkipLimitExceededError,
    SourceError,
)
from stepline_kernel.logging_config import get_logger

logger = get_logger("batch.chunk_executor")

_END = object()


class _SourceCursor:
    """Iterates a source from a position and re-opens it on retryable faults."""

    def __init__(
        self,
        source: ItemSource,
        position: int,
        policy: FaultPolicy,
        step_name: str,
    ):
        self._source = source
        self._policy = policy
        self._step_name = step_name
        self._iterator: Iterator[Any] | None = None
        self.position = position

    def next(self) -> Any:
        attempt = 0
        while True:
            try:
                if self._iterator is None:
                    self._iterator = iter(self._source.read(self.position))
                item = next(self._iterator)
            except StopIteration:
                return _END
            except Exception as exc:
                self.close()
                error = exc
                if not isinstance(exc, SourceError):
                    error = SourceError(
                        exit_description_for(exc), position=self.position,
                    )
                retryable = self._policy.is_retryable(exc) or self._policy.is_retryable(error)
                if retryable and attempt < self._policy.retry_limit:
                    attempt += 1
                    logger.warning(
                        "source_read_retry",
                        extra={
                            "step_name": self._step_name,
                            "position": self.position,
                            "attempt": attempt,
                            "error": str(exc),
                        },
                    )
                    continue
                if error is exc:
                    raise
                raise error from exc
            self.position += 1
            return item

    def close(self) -> None:
        iterator, self._iterator = self._iterator, None
        close = getattr(iterator, "close", None)
        if close is not None:
            close()


class ChunkExecutor:
    """Executes chunk-oriented steps against a JobRepository.

    Non-goals:
        - Does NOT choose the next step -- that is the JobRunner's job.
        - Does NOT create step executions; the caller passes one in.
    """

    def __init__(
        self,
        repository: JobRepository,
        clock: Clock | None = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()

    def run_step(
        self,
        step: StepConfig,
        step_execution: StepExecution,
        stop_event: threading.Event | None = None,
    ) -> StepExecution:
        """Run ``step`` from ``step_execution.committed_position`` to a terminal status."""
        execution = replace(
            step_execution,
            status=ExecutionStatus.STARTED,
            started_at=self._clock.now(),
        )
        try:
            self._repository.update_step_progress(execution)
        except RepositoryError as exc:
            logger.exception("step_start_not_recorded", extra={"step_name": step.name})
            return self._finish(execution, ExecutionStatus.FAILED, exit_description_for(exc))

        logger.info(
            "step_started",
            extra={
                "step_name": step.name,
                "attempt": execution.attempt,
                "position": execution.committed_position,
                "chunk_size": step.chunk_size,
            },
        )

        cursor = _SourceCursor(
            step.source, execution.committed_position, step.fault_policy, step.name,
        )
        try:
            while True:
                if stop_event is not None and stop_event.is_set():
                    return self._finish(
                        execution,
                        ExecutionStatus.STOPPED,
                        f"Stopped at position {execution.committed_position}",
                    )

                try:
                    chunk = self._read_chunk(step, cursor, execution.skip_count)
                except Exception as exc:
                    logger.exception(
                        "chunk_aborted",
                        extra={
                            "step_name": step.name,
                            "position": execution.committed_position,
                        },
                    )
                    return self._finish(
                        execution, ExecutionStatus.FAILED, exit_description_for(exc),
                    )

                if chunk.read_count == 0:
                    break

                if chunk.items:
                    try:
                        self._write_chunk(step, chunk)
                    except SinkError as exc:
                        logger.exception(
                            "chunk_rolled_back",
                            extra={
                                "step_name": step.name,
                                "position": execution.committed_position,
                                "chunk_items": chunk.write_count,
                            },
                        )
                        execution = replace(
                            execution, rollback_count=execution.rollback_count + 1,
                        )
                        return self._finish(
                            execution, ExecutionStatus.FAILED, exit_description_for(exc),
                        )

                execution = execution.with_chunk_committed(
                    read=chunk.read_count,
                    written=chunk.write_count,
                    filtered=chunk.filter_count,
                    skipped=chunk.skip_count,
                )
                try:
                    self._repository.update_step_progress(execution)
                except RepositoryError as exc:
                    logger.exception(
                        "chunk_progress_not_recorded",
                        extra={"step_name": step.name},
                    )
                    return self._finish(
                        execution,
                        ExecutionStatus.FAILED,
                        f"Chunk written but progress not recorded: "
                        f"{exit_description_for(exc)}",
                    )

                logger.info(
                    "chunk_committed",
                    extra={
                        "step_name": step.name,
                        "read": chunk.read_count,
                        "written": chunk.write_count,
                        "filtered": chunk.filter_count,
                        "skipped": chunk.skip_count,
                        "position": execution.committed_position,
                    },
                )

                if chunk.exhausted:
                    break
        finally:
            cursor.close()

        return self._finish(execution, ExecutionStatus.COMPLETED, None)

    # -------------------------------------------------------------------------
    # Chunk phases
    # -------------------------------------------------------------------------

    def _read_chunk(
        self,
        step: StepConfig,
        cursor: _SourceCursor,
        committed_skips: int,
    ) -> ChunkOutcome:
        chunk = ChunkOutcome()
        while chunk.read_count < step.chunk_size:
            item = cursor.next()
            if item is _END:
                chunk.exhausted = True
                break
            chunk.read_count += 1
            self._process_item(step, item, chunk, committed_skips, cursor.position - 1)
        return chunk

    def _process_item(
        self,
        step: StepConfig,
        item: Any,
        chunk: ChunkOutcome,
        committed_skips: int,
        position: int,
    ) -> None:
        policy = step.fault_policy
        attempt = 0
        while True:
            try:
                result = step.transform.process(item)
                break
            except Exception as exc:
                if policy.should_retry(exc, attempt):
                    attempt += 1
                    logger.warning(
                        "item_retry",
                        extra={
                            "step_name": step.name,
                            "position": position,
                            "attempt": attempt,
                            "error": str(exc),
                        },
                    )
                    continue
                if not policy.is_skippable(exc):
                    raise
                skips_so_far = committed_skips + chunk.skip_count
                if not policy.should_skip(exc, skips_so_far):
                    raise SkipLimitExceededError(
                        step.name, policy.skip_limit, exit_description_for(exc),
                    ) from exc
                chunk.skip_count += 1
                logger.warning(
                    "item_skipped",
                    extra={
                        "step_name": step.name,
                        "position": position,
                        "skip_count": skips_so_far + 1,
                        "error": str(exc),
                    },
                )
                return

        if result is None:
            chunk.filter_count += 1
        else:
            chunk.items.append(result)

    def _write_chunk(self, step: StepConfig, chunk: ChunkOutcome) -> None:
        attempts = step.fault_policy.retry_limit + 1
        for attempt in range(1, attempts + 1):
            try:
                step.sink.write(list(chunk.items))
                return
            except Exception as exc:
                if attempt < attempts:
                    logger.warning(
                        "sink_write_retry",
                        extra={
                            "step_name": step.name,
                            "attempt": attempt,
                            "chunk_items": chunk.write_count,
                            "error": str(exc),
                        },
                    )
                    continue
                if isinstance(exc, SinkError):
                    raise
                raise SinkError(
                    exit_description_for(exc), chunk_size=chunk.write_count,
                ) from exc

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def _finish(
        self,
        execution: StepExecution,
        status: ExecutionStatus,
        exit_description: str | None,
    ) -> StepExecution:
        try:
            final = self._repository.mark_terminal(execution, status, exit_description)
        except RepositoryError:
            logger.exception(
                "step_status_not_recorded",
                extra={"step_name": execution.step_name, "status": status.value},
            )
            final = replace(
                execution,
                status=status,
                exit_description=exit_description,
                ended_at=self._clock.now(),
            )

        event = {
            ExecutionStatus.COMPLETED: "step_completed",
            ExecutionStatus.FAILED: "step_failed",
            ExecutionStatus.STOPPED: "step_stopped",
        }[status]
        log = logger.info if status is ExecutionStatus.COMPLETED else logger.warning
        log(
            event,
            extra={
                "step_name": final.step_name,
                "read_count": final.read_count,
                "write_count": final.write_count,
                "skip_count": final.skip_count,
                "filter_count": final.filter_count,
                "commit_count": final.commit_count,
                "exit_description": exit_description,
            },
        )
        return final
