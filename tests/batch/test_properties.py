"""
Property-based tests for the chunk executor.

For arbitrary record counts, chunk sizes, filter sets and restart points the
executor must keep its counts balanced, write each surviving record exactly
once and call the sink once per non-empty chunk.
"""

import math

from hypothesis import given, settings
from hypothesis import strategies as st

from stepline_batch.domain.flow import JobConfig, StepConfig
from stepline_batch.domain.types import ExecutionStatus, FaultPolicy
from stepline_batch.services.chunk_executor import ChunkExecutor
from stepline_batch.services.launcher import JobLauncher
from stepline_batch.services.repository import InMemoryJobRepository
from stepline_kernel.domain.clock import DeterministicClock
from stepline_kernel.exceptions import TransformError
from tests.fakes import CountingSource, RecordingSink, RejectingTransform


def _run_step(step):
    repository = InMemoryJobRepository(DeterministicClock())
    execution = repository.mark_started(repository.create_execution("job"))
    step_execution = repository.add_step_execution(execution, step.name)
    return ChunkExecutor(repository, DeterministicClock()).run_step(step, step_execution)


class TestChunkingProperties:
    @given(
        record_count=st.integers(min_value=0, max_value=120),
        chunk_size=st.integers(min_value=1, max_value=25),
    )
    @settings(max_examples=60, deadline=None)
    def test_sink_calls_equal_chunk_count(self, record_count, chunk_size):
        sink = RecordingSink()
        step = StepConfig(
            name="load",
            source=CountingSource(range(record_count)),
            sink=sink,
            chunk_size=chunk_size,
        )
        result = _run_step(step)

        assert result.status is ExecutionStatus.COMPLETED
        assert sink.calls == math.ceil(record_count / chunk_size)
        assert sink.items == list(range(record_count))
        assert all(len(chunk) <= chunk_size for chunk in sink.chunks)
        assert result.committed_position == record_count

    @given(
        record_count=st.integers(min_value=0, max_value=80),
        chunk_size=st.integers(min_value=1, max_value=15),
        data=st.data(),
    )
    @settings(max_examples=60, deadline=None)
    def test_counts_balance_with_filters_and_skips(self, record_count, chunk_size, data):
        records = range(record_count)
        drop = data.draw(st.sets(st.sampled_from(records))) if record_count else set()
        bad = data.draw(st.sets(st.sampled_from(records))) if record_count else set()
        bad -= drop
        sink = RecordingSink()
        step = StepConfig(
            name="load",
            source=CountingSource(records),
            sink=sink,
            chunk_size=chunk_size,
            transform=RejectingTransform(bad=bad, drop=drop),
            fault_policy=FaultPolicy(skippable=(TransformError,), skip_limit=len(bad)),
        )
        result = _run_step(step)

        assert result.status is ExecutionStatus.COMPLETED
        assert result.read_count == record_count
        assert result.skip_count == len(bad)
        assert result.filter_count == len(drop)
        assert result.write_count + result.skip_count + result.filter_count == result.read_count
        assert sorted(sink.items) == sorted(set(records) - bad - drop)


class TestRestartProperties:
    @given(
        record_count=st.integers(min_value=1, max_value=60),
        chunk_size=st.integers(min_value=1, max_value=12),
        fail_on_call=st.integers(min_value=1, max_value=6),
    )
    @settings(max_examples=50, deadline=None)
    def test_restart_writes_every_record_exactly_once(
        self, record_count, chunk_size, fail_on_call,
    ):
        sink = RecordingSink(fail_on_calls=(fail_on_call,))
        job = JobConfig(
            name="job",
            steps=(
                StepConfig(
                    name="load",
                    source=CountingSource(range(record_count)),
                    sink=sink,
                    chunk_size=chunk_size,
                ),
            ),
        )
        launcher = JobLauncher(InMemoryJobRepository(DeterministicClock()))
        first = launcher.launch(job)
        final = first
        if first.status is ExecutionStatus.FAILED:
            final = launcher.launch(job, run_id=first.run_id)

        assert final.status is ExecutionStatus.COMPLETED
        assert sink.items == list(range(record_count))
