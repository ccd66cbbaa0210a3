"""
stepline_batch.domain -- Pure types and flow definitions for batch jobs.

ZERO I/O.  Execution snapshots are frozen dataclasses.
"""

from stepline_batch.domain.flow import (
    ANY_STATUS,
    DEFAULT_CHUNK_SIZE,
    JobConfig,
    StepConfig,
    Transition,
)
from stepline_batch.domain.types import (
    NO_FAULT_TOLERANCE,
    ChunkOutcome,
    ExecutionStatus,
    FaultPolicy,
    JobExecution,
    StepExecution,
    exit_description_for,
)

__all__ = [
    "ANY_STATUS",
    "ChunkOutcome",
    "DEFAULT_CHUNK_SIZE",
    "ExecutionStatus",
    "FaultPolicy",
    "JobConfig",
    "JobExecution",
    "NO_FAULT_TOLERANCE",
    "StepConfig",
    "StepExecution",
    "Transition",
    "exit_description_for",
]
