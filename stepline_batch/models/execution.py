"""
ORM models for job repository persistence.

Contract:
    JobExecutionModel and StepExecutionModel persist job runs and the
    attempts of their steps.  Each has ``to_dto()`` / ``from_dto()``
    round-trip methods; StepExecutionModel also has ``apply_dto()`` for
    in-place progress updates.

Architecture: stepline_batch/models. Imports from stepline_kernel.db.base only.

Invariants enforced:
    - ``(job_name, run_id)`` is UNIQUE on JobExecutionModel.
    - ``(job_execution_id, sequence)`` is UNIQUE on StepExecutionModel; the
      sequence preserves the order step attempts were created in.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stepline_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from stepline_batch.domain.types import JobExecution, StepExecution


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class JobExecutionModel(TimestampedBase):
    """Persistent job run, reused across restart attempts."""

    __tablename__ = "job_executions"

    __table_args__ = (
        UniqueConstraint("job_name", "run_id", name="uq_job_executions_job_run"),
        Index("ix_job_executions_job_name", "job_name"),
        Index("ix_job_executions_status", "status"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    run_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    exit_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    step_executions: Mapped[list["StepExecutionModel"]] = relationship(
        "StepExecutionModel",
        back_populates="job_execution",
        order_by="StepExecutionModel.sequence",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> JobExecution:
        from stepline_batch.domain.types import ExecutionStatus, JobExecution

        return JobExecution(
            execution_id=self.id,
            job_name=self.job_name,
            run_id=self.run_id,
            status=ExecutionStatus(self.status),
            attempt=self.attempt,
            created_at=_as_utc(self.created_at),
            started_at=_as_utc(self.started_at),
            ended_at=_as_utc(self.ended_at),
            exit_description=self.exit_description,
            step_executions=tuple(s.to_dto() for s in self.step_executions),
        )

    @classmethod
    def from_dto(cls, dto: JobExecution) -> JobExecutionModel:
        return cls(
            id=dto.execution_id,
            job_name=dto.job_name,
            run_id=dto.run_id,
            status=dto.status.value,
            attempt=dto.attempt,
            started_at=dto.started_at,
            ended_at=dto.ended_at,
            exit_description=dto.exit_description,
        )


class StepExecutionModel(TimestampedBase):
    """One attempt at a step within a job run."""

    __tablename__ = "step_executions"

    __table_args__ = (
        UniqueConstraint(
            "job_execution_id", "sequence", name="uq_step_executions_job_sequence",
        ),
        Index("ix_step_executions_job_step", "job_execution_id", "step_name"),
    )

    job_execution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    run_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    read_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    write_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skip_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    filter_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    commit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rollback_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    committed_position: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
    )
    exit_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    job_execution: Mapped["JobExecutionModel"] = relationship(
        "JobExecutionModel",
        back_populates="step_executions",
        foreign_keys=[job_execution_id],
    )

    def to_dto(self) -> StepExecution:
        from stepline_batch.domain.types import ExecutionStatus, StepExecution

        return StepExecution(
            step_execution_id=self.id,
            job_execution_id=self.job_execution_id,
            step_name=self.step_name,
            run_id=self.run_id,
            status=ExecutionStatus(self.status),
            attempt=self.attempt,
            read_count=self.read_count,
            write_count=self.write_count,
            skip_count=self.skip_count,
            filter_count=self.filter_count,
            commit_count=self.commit_count,
            rollback_count=self.rollback_count,
            committed_position=self.committed_position,
            exit_description=self.exit_description,
            started_at=_as_utc(self.started_at),
            ended_at=_as_utc(self.ended_at),
        )

    @classmethod
    def from_dto(cls, dto: StepExecution, sequence: int) -> StepExecutionModel:
        model = cls(
            id=dto.step_execution_id,
            job_execution_id=dto.job_execution_id,
            sequence=sequence,
            step_name=dto.step_name,
            run_id=dto.run_id,
            attempt=dto.attempt,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto: StepExecution) -> None:
        """Copy the mutable progress fields of ``dto`` onto this row."""
        self.status = dto.status.value
        self.read_count = dto.read_count
        self.write_count = dto.write_count
        self.skip_count = dto.skip_count
        self.filter_count = dto.filter_count
        self.commit_count = dto.commit_count
        self.rollback_count = dto.rollback_count
        self.committed_position = dto.committed_position
        self.exit_description = dto.exit_description
        self.started_at = dto.started_at
        self.ended_at = dto.ended_at
