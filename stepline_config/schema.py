"""
Job definition schema.

Defines the human-authored, reviewable job definitions.  YAML files are
parsed into these types by the loader, checked by the validator and turned
into runnable ``JobConfig`` objects by the assembler.

Key distinction:
  JobDef     = source artifact (declarative, component types as strings)
  JobConfig  = runtime artifact (live sources, transforms and sinks)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ComponentDef:
    """Reference to a registered component type plus its options."""

    type: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FaultPolicyDef:
    """Fault tolerance settings of a step.

    Exception names are resolved by the assembler: a built-in exception
    name (``ValueError``), a stepline exception name (``TransformError``) or
    a dotted path (``package.module:ClassName``).
    """

    skippable: tuple[str, ...] = ()
    skip_limit: int = 0
    retryable: tuple[str, ...] = ()
    retry_limit: int = 0


@dataclass(frozen=True)
class TransitionDef:
    """Status-conditioned edge leaving a step."""

    on: str
    to: str | None = None
    end: str | None = None  # Job status when the flow ends here


@dataclass(frozen=True)
class StepDef:
    """Declarative chunk-oriented step."""

    name: str
    reader: ComponentDef
    writer: ComponentDef
    processor: ComponentDef | None = None
    chunk_size: int = 10
    fault_policy: FaultPolicyDef = field(default_factory=FaultPolicyDef)
    transitions: tuple[TransitionDef, ...] = ()


@dataclass(frozen=True)
class JobDef:
    """Declarative job: ordered steps, listeners and setup statements."""

    name: str
    steps: tuple[StepDef, ...]
    restartable: bool = True
    description: str = ""
    listeners: tuple[ComponentDef, ...] = ()
    setup_sql: tuple[str, ...] = ()


@dataclass(frozen=True)
class JobDefinitionSet:
    """All jobs parsed from one definition file."""

    jobs: tuple[JobDef, ...]
    source_path: str | None = None
    checksum: str = ""

    def get(self, name: str) -> JobDef:
        """Return the job named ``name``.

        Raises:
            KeyError: If no job has that name.
        """
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(
            f"No job named '{name}'. Available: {sorted(j.name for j in self.jobs)}"
        )

    @property
    def job_names(self) -> tuple[str, ...]:
        return tuple(job.name for job in self.jobs)
