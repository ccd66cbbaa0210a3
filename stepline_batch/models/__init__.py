"""
stepline_batch.models -- ORM models for job repository persistence.

Architecture: stepline_batch/models. Imports from stepline_kernel.db.base only.
"""

from stepline_batch.models.execution import (
    JobExecutionModel,
    StepExecutionModel,
)

__all__ = [
    "JobExecutionModel",
    "StepExecutionModel",
]
