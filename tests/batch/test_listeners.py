"""Tests for execution listeners and failure isolation."""

from uuid import uuid4

from stepline_batch.domain.types import ExecutionStatus, JobExecution, StepExecution
from stepline_batch.services.listeners import (
    ExecutionListener,
    LoggingListener,
    notify_listeners,
)
from tests.fakes import ExplodingListener, RecordingListener


def _job(status=ExecutionStatus.COMPLETED) -> JobExecution:
    return JobExecution(execution_id=uuid4(), job_name="j", run_id=1, status=status)


def _step(status=ExecutionStatus.COMPLETED) -> StepExecution:
    return StepExecution(
        step_execution_id=uuid4(),
        job_execution_id=uuid4(),
        step_name="load",
        run_id=1,
        status=status,
        read_count=3,
        write_count=2,
        filter_count=1,
        committed_position=3,
    )


class TestNotifyListeners:
    def test_calls_hook_on_each_listener(self):
        first, second = RecordingListener(), RecordingListener()
        notify_listeners([first, second], "after_job", _job())
        assert first.events == second.events == [("after_job", "completed")]

    def test_missing_hook_is_ignored(self):
        class OnlyAfterJob:
            def __init__(self):
                self.calls = 0

            def after_job(self, execution):
                self.calls += 1

        listener = OnlyAfterJob()
        notify_listeners([listener], "after_step", _step())
        notify_listeners([listener], "after_job", _job())
        assert listener.calls == 1

    def test_failure_isolated_and_logged(self, captured_logs):
        survivor = RecordingListener()
        notify_listeners([ExplodingListener(), survivor], "before_job", _job())

        assert survivor.events == [("before_job", "completed")]
        record = next(r for r in captured_logs() if r["message"] == "listener_failed")
        assert record["listener"] == "ExplodingListener"
        assert record["hook"] == "before_job"
        assert record["exc_message"] == "before_job boom"


class TestExecutionListener:
    def test_hooks_are_noops(self):
        listener = ExecutionListener()
        assert listener.before_job(_job()) is None
        assert listener.after_step(_step()) is None
        assert listener.after_job(_job()) is None


class TestLoggingListener:
    def test_step_summary(self, captured_logs):
        LoggingListener().after_step(_step())
        record = next(r for r in captured_logs() if r["message"] == "step_summary")
        assert record["step_name"] == "load"
        assert record["read_count"] == 3
        assert record["filter_count"] == 1

    def test_job_summary_level_follows_status(self, captured_logs):
        LoggingListener().after_job(_job(ExecutionStatus.COMPLETED))
        LoggingListener().after_job(_job(ExecutionStatus.FAILED))
        levels = [r["level"] for r in captured_logs() if r["message"] == "job_summary"]
        assert levels == ["INFO", "WARNING"]
