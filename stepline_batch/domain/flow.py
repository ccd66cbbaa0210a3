"""
Job and step definitions plus flow-edge resolution.

Pure data: a ``JobConfig`` names its steps in declaration order and maps step
names to status-conditioned ``Transition`` edges.  ``JobRunner`` asks
``JobConfig.next_step`` where to go after each step finishes.

Edge resolution for a finished step:
    1. an explicit transition whose ``on`` equals the step status;
    2. an explicit transition with ``on == "*"``;
    3. the default edge: on COMPLETED, the next declared step;
    4. otherwise the flow ends with the step's own status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from stepline_batch.domain.types import (
    NO_FAULT_TOLERANCE,
    ExecutionStatus,
    FaultPolicy,
)
from stepline_batch.items.base import (
    ItemSink,
    ItemSource,
    ItemTransform,
    PassThroughTransform,
)
from stepline_kernel.exceptions import InvalidJobDefinitionError

ANY_STATUS = "*"

DEFAULT_CHUNK_SIZE = 10


@dataclass(frozen=True)
class StepConfig:
    """One chunk-oriented step: source -> transform -> sink."""

    name: str
    source: ItemSource
    sink: ItemSink
    transform: ItemTransform = field(default_factory=PassThroughTransform)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    fault_policy: FaultPolicy = NO_FAULT_TOLERANCE


@dataclass(frozen=True)
class Transition:
    """Status-conditioned edge leaving a step.

    ``to=None`` ends the flow; the job then takes ``end_status`` if given,
    else the status of the step that ended it.
    """

    on: str
    to: str | None = None
    end_status: ExecutionStatus | None = None

    def matches(self, status: ExecutionStatus) -> bool:
        return self.on.lower() == status.value


@dataclass(frozen=True)
class JobConfig:
    """A named job: ordered steps plus optional explicit transitions.

    Raises:
        InvalidJobDefinitionError: on construction, if the steps or
            transitions are inconsistent.
    """

    name: str
    steps: tuple[StepConfig, ...]
    transitions: Mapping[str, tuple[Transition, ...]] = field(default_factory=dict)
    restartable: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(
            self,
            "transitions",
            {name: tuple(edges) for name, edges in self.transitions.items()},
        )
        errors = self.validate()
        if errors:
            raise InvalidJobDefinitionError(self.name, errors)

    def validate(self) -> tuple[str, ...]:
        errors: list[str] = []
        if not self.steps:
            errors.append("job declares no steps")

        seen: set[str] = set()
        for step in self.steps:
            if step.name in seen:
                errors.append(f"duplicate step name '{step.name}'")
            seen.add(step.name)
            if step.chunk_size < 1:
                errors.append(
                    f"step '{step.name}' chunk_size must be >= 1, got {step.chunk_size}"
                )

        valid_on = {status.value for status in ExecutionStatus} | {ANY_STATUS}
        for source_name, edges in self.transitions.items():
            if source_name not in seen:
                errors.append(f"transitions declared for unknown step '{source_name}'")
            for edge in edges:
                if edge.on.lower() not in valid_on:
                    errors.append(
                        f"step '{source_name}' transition on unknown status '{edge.on}'"
                    )
                if edge.to is not None and edge.to not in seen:
                    errors.append(
                        f"step '{source_name}' transition targets unknown step '{edge.to}'"
                    )
                if edge.end_status is not None and not edge.end_status.is_terminal:
                    errors.append(
                        f"step '{source_name}' transition ends with non-terminal "
                        f"status '{edge.end_status.value}'"
                    )
        return tuple(errors)

    @property
    def first_step(self) -> StepConfig:
        return self.steps[0]

    def step(self, name: str) -> StepConfig:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f"Job '{self.name}' has no step '{name}'")

    def next_step(self, step_name: str, status: ExecutionStatus) -> Transition:
        """Resolve the edge taken when ``step_name`` finishes with ``status``."""
        edges = self.transitions.get(step_name, ())
        for edge in edges:
            if edge.matches(status):
                return edge
        for edge in edges:
            if edge.on == ANY_STATUS:
                return edge

        if status is ExecutionStatus.COMPLETED:
            names = [step.name for step in self.steps]
            index = names.index(step_name)
            if index + 1 < len(names):
                return Transition(on=status.value, to=names[index + 1])
        return Transition(on=status.value)
