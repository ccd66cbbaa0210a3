"""
Job assembler (``stepline_config.assembler``).

Responsibility
--------------
Turns a validated ``JobDef`` into a runnable ``JobConfig`` by creating every
reader, processor and writer through a ``ComponentRegistry`` and resolving
the exception names of each fault policy into classes.

Failure modes
-------------
* Unknown component type  -> ``ComponentNotRegisteredError``.
* Invalid definition or unresolvable exception name  ->
  ``InvalidJobDefinitionError``.
* A component factory rejecting its options  -> ``InvalidJobDefinitionError``
  naming the step and component.
"""

from __future__ import annotations

import builtins
import importlib
from typing import Any

from stepline_batch.domain.flow import JobConfig, StepConfig, Transition
from stepline_batch.domain.types import ExecutionStatus, FaultPolicy
from stepline_batch.items.base import PassThroughTransform
from stepline_batch.registry import ComponentContext, ComponentRegistry
from stepline_config.schema import ComponentDef, FaultPolicyDef, JobDef, StepDef
from stepline_config.validator import validate_job_def
from stepline_kernel import exceptions as stepline_exceptions
from stepline_kernel.exceptions import ConfigurationError, InvalidJobDefinitionError
from stepline_kernel.logging_config import get_logger

logger = get_logger("config.assembler")


def resolve_exception_type(name: str) -> type[BaseException]:
    """
    Resolve an exception class from its configured name.

    Accepted forms: a built-in name (``ValueError``), a stepline exception
    name (``TransformError``), ``package.module:ClassName`` or
    ``package.module.ClassName``.

    Raises:
        ConfigurationError: if the name does not resolve to an exception class.
    """
    candidate: Any = None
    if ":" in name or "." in name:
        module_name, _, attr = name.replace(":", ".").rpartition(".")
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise ConfigurationError(
                f"Cannot import module '{module_name}' for exception '{name}'"
            ) from exc
        candidate = getattr(module, attr, None)
    else:
        candidate = getattr(stepline_exceptions, name, None)
        if candidate is None:
            candidate = getattr(builtins, name, None)

    if not (isinstance(candidate, type) and issubclass(candidate, BaseException)):
        raise ConfigurationError(f"'{name}' is not an exception class")
    return candidate


def build_fault_policy(definition: FaultPolicyDef) -> FaultPolicy:
    return FaultPolicy(
        skippable=tuple(resolve_exception_type(n) for n in definition.skippable),
        skip_limit=definition.skip_limit,
        retryable=tuple(resolve_exception_type(n) for n in definition.retryable),
        retry_limit=definition.retry_limit,
    )


def _create(
    registry: ComponentRegistry,
    kind: str,
    component: ComponentDef,
    context: ComponentContext,
    job_name: str,
    where: str,
) -> Any:
    try:
        return registry.create(kind, component.type, component.options, context)
    except (TypeError, ValueError) as exc:
        raise InvalidJobDefinitionError(
            job_name, [f"{where} {kind} '{component.type}': {exc}"],
        ) from exc


def assemble_step(
    step: StepDef,
    registry: ComponentRegistry,
    context: ComponentContext,
    job_name: str,
) -> StepConfig:
    where = f"step '{step.name}'"
    try:
        fault_policy = build_fault_policy(step.fault_policy)
    except (ConfigurationError, ValueError) as exc:
        raise InvalidJobDefinitionError(job_name, [f"{where} fault_policy: {exc}"]) from exc

    transform = (
        _create(registry, "transform", step.processor, context, job_name, where)
        if step.processor is not None
        else PassThroughTransform()
    )
    return StepConfig(
        name=step.name,
        source=_create(registry, "source", step.reader, context, job_name, where),
        sink=_create(registry, "sink", step.writer, context, job_name, where),
        transform=transform,
        chunk_size=step.chunk_size,
        fault_policy=fault_policy,
    )


def assemble_job(
    job: JobDef,
    registry: ComponentRegistry,
    context: ComponentContext | None = None,
) -> JobConfig:
    """
    Build a runnable JobConfig from a job definition.

    Raises:
        InvalidJobDefinitionError: if the definition fails validation.
        ComponentNotRegisteredError: if a component type is unknown.
    """
    errors = validate_job_def(job)
    if errors:
        raise InvalidJobDefinitionError(job.name, errors)

    context = context or ComponentContext()
    steps = tuple(assemble_step(s, registry, context, job.name) for s in job.steps)
    transitions = {
        s.name: tuple(
            Transition(
                on=t.on.lower(),
                to=t.to,
                end_status=ExecutionStatus(t.end.lower()) if t.end else None,
            )
            for t in s.transitions
        )
        for s in job.steps
        if s.transitions
    }

    config = JobConfig(
        name=job.name,
        steps=steps,
        transitions=transitions,
        restartable=job.restartable,
    )
    logger.info(
        "job_assembled",
        extra={"job_name": job.name, "steps": [s.name for s in steps]},
    )
    return config


def assemble_listeners(
    job: JobDef,
    registry: ComponentRegistry,
    context: ComponentContext | None = None,
) -> tuple[Any, ...]:
    """Create the listeners declared by a job definition."""
    context = context or ComponentContext()
    return tuple(
        _create(registry, "listener", listener, context, job.name, "job")
        for listener in job.listeners
    )
