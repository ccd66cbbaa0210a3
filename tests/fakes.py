"""
Test doubles for item sources, transforms, sinks, listeners and repositories.

Each fake records what the engine did to it so tests can assert on sink
calls, transform invocations and listener notifications.
"""

from typing import Any, Iterator, Sequence

from stepline_batch.domain.types import JobExecution, StepExecution
from stepline_kernel.exceptions import RepositoryError, SourceError, TransformError


class CountingSource:
    """Serves ``records`` and remembers every position it was opened at."""

    def __init__(self, records: Sequence[Any]):
        self.records = list(records)
        self.opened_at: list[int] = []

    def read(self, position: int) -> Iterator[Any]:
        self.opened_at.append(position)
        yield from self.records[position:]


class FlakySource:
    """Raises a SourceError once when the read reaches ``fail_at``."""

    def __init__(self, records: Sequence[Any], fail_at: int, retryable: bool = True, times: int = 1):
        self.records = list(records)
        self.fail_at = fail_at
        self.retryable = retryable
        self.remaining_failures = times
        self.opened_at: list[int] = []

    def read(self, position: int) -> Iterator[Any]:
        self.opened_at.append(position)
        for index in range(position, len(self.records)):
            if index == self.fail_at and self.remaining_failures > 0:
                self.remaining_failures -= 1
                raise SourceError("connection reset", position=index, retryable=self.retryable)
            yield self.records[index]


class RecordingSink:
    """Collects written chunks; can fail on chosen write calls (1-based)."""

    def __init__(self, fail_on_calls: Sequence[int] = (), error: Exception | None = None):
        self.calls = 0
        self.chunks: list[list[Any]] = []
        self.fail_on_calls = set(fail_on_calls)
        self.error = error

    def write(self, items: Sequence[Any]) -> None:
        self.calls += 1
        if self.calls in self.fail_on_calls:
            raise self.error or RuntimeError(f"sink down on call {self.calls}")
        self.chunks.append(list(items))

    @property
    def items(self) -> list[Any]:
        return [item for chunk in self.chunks for item in chunk]


class RejectingTransform:
    """Raises ``error_type`` for every record in ``bad``; filters records in ``drop``."""

    def __init__(self, bad=(), drop=(), error_type: type[Exception] = TransformError):
        self.bad = set(bad)
        self.drop = set(drop)
        self.error_type = error_type
        self.seen: list[Any] = []

    def process(self, item: Any) -> Any | None:
        self.seen.append(item)
        if item in self.bad:
            raise self.error_type(f"bad record {item}")
        if item in self.drop:
            return None
        return item


class FlakyTransform:
    """Fails the first ``failures`` times it sees ``item``, then passes it through."""

    def __init__(self, item: Any, failures: int, error_type: type[Exception] = TimeoutError):
        self.item = item
        self.remaining = failures
        self.error_type = error_type
        self.attempts = 0

    def process(self, item: Any) -> Any:
        if item == self.item:
            self.attempts += 1
            if self.remaining > 0:
                self.remaining -= 1
                raise self.error_type("transient")
        return item


class RecordingListener:
    """Records every lifecycle callback as ``(hook, status)``."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.jobs: list[JobExecution] = []
        self.steps: list[StepExecution] = []

    def before_job(self, execution: JobExecution) -> None:
        self.events.append(("before_job", execution.status.value))

    def after_step(self, step_execution: StepExecution) -> None:
        self.steps.append(step_execution)
        self.events.append(("after_step", step_execution.status.value))

    def after_job(self, execution: JobExecution) -> None:
        self.jobs.append(execution)
        self.events.append(("after_job", execution.status.value))


class ExplodingListener:
    """Raises from every hook."""

    def before_job(self, execution: JobExecution) -> None:
        raise RuntimeError("before_job boom")

    def after_step(self, step_execution: StepExecution) -> None:
        raise RuntimeError("after_step boom")

    def after_job(self, execution: JobExecution) -> None:
        raise RuntimeError("after_job boom")


class ProgressFailingRepository:
    """Delegates to ``inner`` but fails ``update_step_progress`` on chosen calls.

    Counts only progress updates that carry a committed chunk, so the
    initial STARTED update never trips it.
    """

    def __init__(self, inner, fail_on_commits: Sequence[int]):
        self._inner = inner
        self.fail_on_commits = set(fail_on_commits)
        self.commit_updates = 0

    def update_step_progress(self, step_execution: StepExecution) -> None:
        if step_execution.commit_count > 0:
            self.commit_updates += 1
            if self.commit_updates in self.fail_on_commits:
                raise RepositoryError("database is locked")
        self._inner.update_step_progress(step_execution)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)
