"""
BatchOrchestrator -- DI container for the batch engine.

Contract:
    Composes a JobRepository, a Clock and the ChunkExecutor into
    JobLaunchers.  Single place where the engine's dependencies are wired.

Architecture: stepline_batch (top-level).  The canonical entry point for
    configuring and running jobs from code.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from stepline_batch.services.chunk_executor import ChunkExecutor
from stepline_batch.services.launcher import JobLauncher
from stepline_batch.services.repository import InMemoryJobRepository, JobRepository
from stepline_batch.services.sql_repository import SqlJobRepository
from stepline_kernel.domain.clock import Clock, SystemClock
from stepline_kernel.logging_config import get_logger

logger = get_logger("batch.orchestrator")


class BatchOrchestrator:
    """DI container for the batch engine.

    Contract:
        - ``from_session_factory()`` wires a SQL-backed repository.
        - ``in_memory()`` wires a process-lifetime repository.
        - ``create_launcher()`` returns a JobLauncher sharing the
          orchestrator's repository and clock.

    Non-goals:
        - Does NOT own the engine or session lifecycle -- caller does.
    """

    def __init__(
        self,
        repository: JobRepository,
        clock: Clock | None = None,
        max_workers: int = 4,
    ) -> None:
        self._repository = repository
        self._clock = clock or SystemClock()
        self._max_workers = max_workers

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def from_session_factory(
        cls,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        max_workers: int = 4,
    ) -> BatchOrchestrator:
        """Create an orchestrator persisting executions through SQLAlchemy.

        Args:
            session_factory: Callable returning a new session per repository call.
            clock: Optional clock for deterministic testing.
            max_workers: Thread pool size for asynchronous launches.
        """
        effective_clock = clock or SystemClock()
        return cls(
            repository=SqlJobRepository(session_factory, clock=effective_clock),
            clock=effective_clock,
            max_workers=max_workers,
        )

    @classmethod
    def in_memory(
        cls,
        clock: Clock | None = None,
        max_workers: int = 4,
    ) -> BatchOrchestrator:
        effective_clock = clock or SystemClock()
        return cls(
            repository=InMemoryJobRepository(clock=effective_clock),
            clock=effective_clock,
            max_workers=max_workers,
        )

    # -------------------------------------------------------------------------
    # Launcher
    # -------------------------------------------------------------------------

    def create_launcher(self) -> JobLauncher:
        logger.debug(
            "launcher_created",
            extra={"repository": type(self._repository).__name__},
        )
        return JobLauncher(
            repository=self._repository,
            clock=self._clock,
            chunk_executor=ChunkExecutor(self._repository, self._clock),
            max_workers=self._max_workers,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def repository(self) -> JobRepository:
        return self._repository

    @property
    def clock(self) -> Clock:
        return self._clock
