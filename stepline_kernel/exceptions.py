"""
Typed exception hierarchy for the stepline batch engine.

Every error has a typed class (catch by type, not message), a ``code`` class
attribute (machine-readable, stable across message wording changes) and
carries its context as attributes so that the structured log formatter can
emit it field by field.

Hierarchy::

    SteplineError (base)
    |
    +-- ItemError                    item-level faults raised by adapters
    |   +-- SourceError              read fault (retryable flag)
    |   +-- TransformError           per-item processing fault
    |   +-- SinkError                batch write fault
    |
    +-- FaultPolicyError
    |   +-- SkipLimitExceededError   skip cap reached inside a step
    |
    +-- RepositoryError              progress persistence fault
    |   +-- JobExecutionNotFoundError
    |   +-- ExecutionImmutableError
    |
    +-- LaunchError
    |   +-- RunIdCollisionError
    |   +-- JobExecutionAlreadyRunningError
    |   +-- JobNotRestartableError
    |
    +-- ConfigurationError
        +-- InvalidJobDefinitionError
        +-- ComponentNotRegisteredError

Propagation:
    Item errors are absorbed by the chunk executor up to the step's fault
    policy and surface only as counts.  Everything else ends the step (and
    from there the job) in a terminal status whose exit description names
    the exception.  A RepositoryError is always fatal to the step because
    the restart position can no longer be trusted.
"""

from typing import Any, Sequence


class SteplineError(Exception):
    """
    Base exception for all stepline errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "STEPLINE_ERROR"


# Item-level errors


class ItemError(SteplineError):
    """Base exception for faults raised by item sources, transforms and sinks."""

    code: str = "ITEM_ERROR"


class SourceError(ItemError):
    """Reading from an item source failed.

    ``retryable`` marks transient faults (dropped connection, locked file)
    that may succeed when the source is re-opened at the same position.
    """

    code: str = "SOURCE_ERROR"

    def __init__(
        self,
        message: str,
        position: int | None = None,
        retryable: bool = False,
    ):
        self.position = position
        self.retryable = retryable
        super().__init__(message)


class TransformError(ItemError):
    """Transforming a single item failed."""

    code: str = "TRANSFORM_ERROR"

    def __init__(self, message: str, item: Any = None):
        self.item = item
        super().__init__(message)


class SinkError(ItemError):
    """Writing a chunk to an item sink failed; nothing from the chunk was kept."""

    code: str = "SINK_ERROR"

    def __init__(self, message: str, chunk_size: int | None = None):
        self.chunk_size = chunk_size
        super().__init__(message)


# Fault policy errors


class FaultPolicyError(SteplineError):
    """Base exception for fault policy violations."""

    code: str = "FAULT_POLICY_ERROR"


class SkipLimitExceededError(FaultPolicyError):
    """A skippable failure arrived after the step used up its skip budget."""

    code: str = "SKIP_LIMIT_EXCEEDED"

    def __init__(self, step_name: str, skip_limit: int, cause: str):
        self.step_name = step_name
        self.skip_limit = skip_limit
        self.cause = cause
        super().__init__(
            f"Skip limit {skip_limit} exceeded in step '{step_name}': {cause}"
        )


# Repository errors


class RepositoryError(SteplineError):
    """Persisting or loading execution records failed."""

    code: str = "REPOSITORY_ERROR"


class JobExecutionNotFoundError(RepositoryError):
    """No job execution exists with the given id."""

    code: str = "JOB_EXECUTION_NOT_FOUND"

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Job execution not found: {execution_id}")


class ExecutionImmutableError(RepositoryError):
    """An update targeted an execution record that is already terminal."""

    code: str = "EXECUTION_IMMUTABLE"

    def __init__(self, execution_id: str, status: str):
        self.execution_id = execution_id
        self.status = status
        super().__init__(
            f"Execution {execution_id} is already {status} and cannot change"
        )


# Launch errors


class LaunchError(SteplineError):
    """Base exception for job launch failures."""

    code: str = "LAUNCH_ERROR"


class RunIdCollisionError(LaunchError):
    """A new execution was requested for a run id that already exists."""

    code: str = "RUN_ID_COLLISION"

    def __init__(self, job_name: str, run_id: int):
        self.job_name = job_name
        self.run_id = run_id
        super().__init__(
            f"Run id {run_id} already exists for job '{job_name}'"
        )


class JobExecutionAlreadyRunningError(LaunchError):
    """The requested run is still in progress."""

    code: str = "JOB_EXECUTION_ALREADY_RUNNING"

    def __init__(self, job_name: str, run_id: int):
        self.job_name = job_name
        self.run_id = run_id
        super().__init__(
            f"Job '{job_name}' run {run_id} is already running"
        )


class JobNotRestartableError(LaunchError):
    """A failed run was relaunched for a job configured as not restartable."""

    code: str = "JOB_NOT_RESTARTABLE"

    def __init__(self, job_name: str, run_id: int):
        self.job_name = job_name
        self.run_id = run_id
        super().__init__(
            f"Job '{job_name}' is not restartable (run {run_id})"
        )


# Configuration errors


class ConfigurationError(SteplineError):
    """Base exception for invalid job or component configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidJobDefinitionError(ConfigurationError):
    """A job definition failed validation."""

    code: str = "INVALID_JOB_DEFINITION"

    def __init__(self, job_name: str, errors: Sequence[str]):
        self.job_name = job_name
        self.errors = tuple(errors)
        super().__init__(
            f"Invalid job definition '{job_name}': " + "; ".join(self.errors)
        )


class ComponentNotRegisteredError(ConfigurationError):
    """A job definition referenced an unknown component type."""

    code: str = "COMPONENT_NOT_REGISTERED"

    def __init__(self, component_type: str, available: Sequence[str]):
        self.component_type = component_type
        self.available = tuple(available)
        super().__init__(
            f"No component registered for type '{component_type}'. "
            f"Available: {list(self.available)}"
        )
