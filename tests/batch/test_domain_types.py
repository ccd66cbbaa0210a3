"""
Tests for stepline_batch.domain.types.

Validates status semantics, fault policy decisions, the StepExecution count
invariants and restart carry-over, and JobExecution aggregation.
"""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from stepline_batch.domain.types import (
    ChunkOutcome,
    ExecutionStatus,
    FaultPolicy,
    JobExecution,
    StepExecution,
    exit_description_for,
)
from stepline_kernel.exceptions import SourceError, TransformError


def _step(name="load", **kwargs) -> StepExecution:
    defaults = dict(
        step_execution_id=uuid4(),
        job_execution_id=uuid4(),
        step_name=name,
        run_id=1,
    )
    defaults.update(kwargs)
    return StepExecution(**defaults)


# =============================================================================
# ExecutionStatus
# =============================================================================


class TestExecutionStatus:
    def test_string_values(self):
        assert [s.value for s in ExecutionStatus] == [
            "starting", "started", "completed", "failed", "stopped",
        ]

    def test_is_str_enum(self):
        assert isinstance(ExecutionStatus.COMPLETED, str)

    @pytest.mark.parametrize(
        "status, terminal, restartable",
        [
            (ExecutionStatus.STARTING, False, False),
            (ExecutionStatus.STARTED, False, False),
            (ExecutionStatus.COMPLETED, True, False),
            (ExecutionStatus.FAILED, True, True),
            (ExecutionStatus.STOPPED, True, True),
        ],
    )
    def test_flags(self, status, terminal, restartable):
        assert status.is_terminal is terminal
        assert status.is_restartable is restartable


# =============================================================================
# FaultPolicy
# =============================================================================


class TestFaultPolicy:
    def test_default_tolerates_nothing(self):
        policy = FaultPolicy()
        assert not policy.should_skip(TransformError("x"), 0)
        assert not policy.should_retry(TransformError("x"), 0)

    def test_skip_respects_limit(self):
        policy = FaultPolicy(skippable=(TransformError,), skip_limit=2)
        assert policy.should_skip(TransformError("x"), 0)
        assert policy.should_skip(TransformError("x"), 1)
        assert not policy.should_skip(TransformError("x"), 2)

    def test_skip_matches_subclasses_only(self):
        policy = FaultPolicy(skippable=(ValueError,), skip_limit=5)
        assert policy.should_skip(UnicodeDecodeError("utf-8", b"", 0, 1, "bad"), 0)
        assert not policy.should_skip(KeyError("k"), 0)

    def test_retry_respects_limit(self):
        policy = FaultPolicy(retryable=(TimeoutError,), retry_limit=2)
        assert policy.should_retry(TimeoutError(), 0)
        assert policy.should_retry(TimeoutError(), 1)
        assert not policy.should_retry(TimeoutError(), 2)
        assert not policy.should_retry(ValueError(), 0)

    def test_retryable_source_error_needs_no_type(self):
        policy = FaultPolicy(retry_limit=1)
        assert policy.should_retry(SourceError("reset", retryable=True), 0)
        assert not policy.should_retry(SourceError("gone", retryable=False), 0)

    def test_negative_limits_rejected(self):
        with pytest.raises(ValueError):
            FaultPolicy(skip_limit=-1)
        with pytest.raises(ValueError):
            FaultPolicy(retry_limit=-1)

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            FaultPolicy().skip_limit = 3  # type: ignore[misc]


# =============================================================================
# StepExecution
# =============================================================================


class TestStepExecution:
    def test_defaults(self):
        step = _step()
        assert step.status is ExecutionStatus.STARTING
        assert step.attempt == 1
        assert step.read_count == step.write_count == step.committed_position == 0

    def test_with_chunk_committed(self):
        step = _step().with_chunk_committed(read=10, written=8, filtered=1, skipped=1)
        step = step.with_chunk_committed(read=2, written=2)
        assert step.read_count == 12
        assert step.write_count == 10
        assert step.filter_count == 1
        assert step.skip_count == 1
        assert step.commit_count == 2
        assert step.committed_position == 12

    def test_counts_must_balance(self):
        with pytest.raises(ValueError, match="write \\+ skip \\+ filter"):
            _step(read_count=5, write_count=3)

    def test_write_cannot_exceed_read(self):
        with pytest.raises(ValueError, match="exceeds"):
            _step(read_count=1, write_count=2)

    def test_resume_from_carries_progress(self):
        previous = _step(
            status=ExecutionStatus.FAILED,
            read_count=10,
            write_count=9,
            skip_count=1,
            commit_count=1,
            rollback_count=1,
            committed_position=10,
            exit_description="SinkError: down",
        )
        new_id = uuid4()
        resumed = StepExecution.resume_from(previous, new_id)

        assert resumed.step_execution_id == new_id
        assert resumed.status is ExecutionStatus.STARTING
        assert resumed.attempt == 2
        assert resumed.committed_position == 10
        assert resumed.read_count == 10
        assert resumed.skip_count == 1
        assert resumed.rollback_count == 1
        assert resumed.exit_description is None
        assert resumed.started_at is None


# =============================================================================
# JobExecution
# =============================================================================


class TestJobExecution:
    def test_latest_step_executions(self):
        job_id = uuid4()
        first = _step("a", job_execution_id=job_id, status=ExecutionStatus.FAILED)
        second = _step("b", job_execution_id=job_id, status=ExecutionStatus.COMPLETED)
        retry = _step("a", job_execution_id=job_id, attempt=2, status=ExecutionStatus.COMPLETED)
        execution = JobExecution(
            execution_id=job_id, job_name="j", run_id=1,
            step_executions=(first, second, retry),
        )

        latest = execution.latest_step_executions()
        assert list(latest) == ["a", "b"]
        assert latest["a"] is retry
        assert execution.first_failure() is None

    def test_first_failure_in_run_order(self):
        failed_a = _step("a", status=ExecutionStatus.FAILED, exit_description="first")
        failed_b = _step("b", status=ExecutionStatus.FAILED, exit_description="second")
        execution = JobExecution(
            execution_id=uuid4(), job_name="j", run_id=1,
            step_executions=(failed_a, failed_b),
        )
        assert execution.first_failure() is failed_a

    def test_totals_use_latest_attempts(self):
        old = _step("a", read_count=5, write_count=5, committed_position=5)
        new = _step("a", attempt=2, read_count=8, write_count=8, committed_position=8)
        other = _step("b", read_count=3, write_count=2, filter_count=1, committed_position=3)
        execution = JobExecution(
            execution_id=uuid4(), job_name="j", run_id=1,
            step_executions=(old, other, new),
        )
        assert execution.read_count == 11
        assert execution.write_count == 10
        assert execution.summary()["read_count"] == 11


class TestChunkOutcome:
    def test_write_count_is_item_count(self):
        outcome = ChunkOutcome(items=[1, 2], read_count=4, filter_count=1, skip_count=1)
        assert outcome.write_count == 2


class TestExitDescription:
    def test_includes_type_and_message(self):
        assert exit_description_for(ValueError("bad")) == "ValueError: bad"

    def test_bare_exception(self):
        assert exit_description_for(RuntimeError()) == "RuntimeError"
