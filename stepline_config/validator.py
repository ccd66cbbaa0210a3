"""
Job definition validator (``stepline_config.validator``).

Responsibility
--------------
Checks the structural integrity of parsed job definitions before any
component is created: unique job and step names, positive chunk sizes,
non-negative fault limits, resolvable transition targets and statuses.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the job MUST NOT
  be assembled.
* Validation warnings  -> the job may run but the definition should be
  reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from stepline_batch.domain.flow import ANY_STATUS
from stepline_batch.domain.types import ExecutionStatus
from stepline_config.schema import JobDef, JobDefinitionSet

_STATUS_VALUES = frozenset(status.value for status in ExecutionStatus)
_TERMINAL_VALUES = frozenset(
    status.value for status in ExecutionStatus if status.is_terminal
)


@dataclass
class ConfigValidationResult:
    """
    Result of job definition validation.

    ``is_valid`` is ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_job_def(job: JobDef) -> tuple[str, ...]:
    """Return the validation errors of a single job definition (empty if valid)."""
    result = ConfigValidationResult()
    _validate_job(job, result)
    return tuple(result.errors)


def validate_definition_set(definitions: JobDefinitionSet) -> ConfigValidationResult:
    """Validate every job of a definition set, including job name uniqueness."""
    result = ConfigValidationResult()
    seen: set[str] = set()
    for job in definitions.jobs:
        if job.name in seen:
            result.add_error(f"Duplicate job: '{job.name}' appears more than once")
        seen.add(job.name)
        _validate_job(job, result)
    return result


def _validate_job(job: JobDef, result: ConfigValidationResult) -> None:
    prefix = f"Job '{job.name}'"
    if not job.name:
        result.add_error("Job name must not be empty")
    if not job.steps:
        result.add_error(f"{prefix}: declares no steps")

    step_names = [step.name for step in job.steps]
    seen: set[str] = set()
    for name in step_names:
        if name in seen:
            result.add_error(f"{prefix}: duplicate step name '{name}'")
        seen.add(name)

    for step in job.steps:
        where = f"{prefix} step '{step.name}'"
        if step.chunk_size < 1:
            result.add_error(f"{where}: chunk_size must be >= 1, got {step.chunk_size}")

        policy = step.fault_policy
        if policy.skip_limit < 0:
            result.add_error(f"{where}: skip_limit must be >= 0")
        if policy.retry_limit < 0:
            result.add_error(f"{where}: retry_limit must be >= 0")
        if policy.skippable and policy.skip_limit == 0:
            result.add_warning(f"{where}: skippable exceptions declared with skip_limit 0")
        if policy.retryable and policy.retry_limit == 0:
            result.add_warning(f"{where}: retryable exceptions declared with retry_limit 0")

        for transition in step.transitions:
            on = transition.on.lower()
            if on != ANY_STATUS and on not in _STATUS_VALUES:
                result.add_error(f"{where}: transition on unknown status '{transition.on}'")
            if transition.to is not None and transition.to not in seen:
                result.add_error(f"{where}: transition targets unknown step '{transition.to}'")
            if transition.to is not None and transition.end is not None:
                result.add_error(f"{where}: transition cannot have both 'to' and 'end'")
            if transition.end is not None and transition.end.lower() not in _TERMINAL_VALUES:
                result.add_error(
                    f"{where}: transition end status '{transition.end}' is not terminal"
                )
