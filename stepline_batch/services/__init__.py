"""
stepline_batch.services -- Execution services of the batch engine.

Chunk executor, job runner, job repositories, launcher and listeners.
"""

from stepline_batch.services.chunk_executor import ChunkExecutor
from stepline_batch.services.job_runner import JobRunner
from stepline_batch.services.launcher import JobLauncher, LaunchHandle
from stepline_batch.services.listeners import (
    ExecutionListener,
    LoggingListener,
    notify_listeners,
)
from stepline_batch.services.repository import InMemoryJobRepository, JobRepository
from stepline_batch.services.sql_repository import SqlJobRepository

__all__ = [
    "ChunkExecutor",
    "ExecutionListener",
    "InMemoryJobRepository",
    "JobLauncher",
    "JobRepository",
    "JobRunner",
    "LaunchHandle",
    "LoggingListener",
    "SqlJobRepository",
    "notify_listeners",
]
