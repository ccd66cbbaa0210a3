"""
ComponentRegistry -- named factories for sources, transforms, sinks and listeners.

Job definitions refer to components by ``type`` string; the assembler looks
the type up here and calls the factory with the definition's options.

Contract:
    - ``register()`` adds a factory; raises ValueError on duplicate.
    - ``get()`` retrieves a factory; raises ComponentNotRegisteredError if
      missing.
    - ``create()`` calls the factory with ``(options, context)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from sqlalchemy.engine import Engine

from stepline_kernel.exceptions import ComponentNotRegisteredError

COMPONENT_KINDS = ("source", "transform", "sink", "listener")


@dataclass(frozen=True)
class ComponentContext:
    """Runtime resources that component factories may need.

    ``engine`` is required by the SQL adapters; ``base_path`` anchors
    relative file paths (the directory of the job definition file).
    """

    engine: Engine | None = None
    base_path: Path | None = None

    def resolve_path(self, path: str | Path) -> Path:
        candidate = Path(path)
        if candidate.is_absolute() or self.base_path is None:
            return candidate
        return self.base_path / candidate


ComponentFactory = Callable[[Mapping[str, Any], ComponentContext], Any]


class ComponentRegistry:
    """Registry mapping ``(kind, type)`` to component factories."""

    def __init__(self) -> None:
        self._factories: dict[str, dict[str, ComponentFactory]] = {
            kind: {} for kind in COMPONENT_KINDS
        }

    def _kind(self, kind: str) -> dict[str, ComponentFactory]:
        try:
            return self._factories[kind]
        except KeyError:
            raise ValueError(
                f"Unknown component kind '{kind}'. Expected one of {COMPONENT_KINDS}"
            ) from None

    def register(self, kind: str, component_type: str, factory: ComponentFactory) -> None:
        """Register a factory.

        Raises:
            ValueError: If ``component_type`` is already registered for ``kind``.
        """
        factories = self._kind(kind)
        if component_type in factories:
            raise ValueError(
                f"Component type '{component_type}' is already registered as a {kind}"
            )
        factories[component_type] = factory

    def get(self, kind: str, component_type: str) -> ComponentFactory:
        """Retrieve a factory.

        Raises:
            ComponentNotRegisteredError: If nothing is registered for the type.
        """
        factories = self._kind(kind)
        try:
            return factories[component_type]
        except KeyError:
            raise ComponentNotRegisteredError(
                f"{kind}:{component_type}", sorted(factories),
            ) from None

    def create(
        self,
        kind: str,
        component_type: str,
        options: Mapping[str, Any] | None = None,
        context: ComponentContext | None = None,
    ) -> Any:
        factory = self.get(kind, component_type)
        return factory(options or {}, context or ComponentContext())

    def list_components(self, kind: str) -> tuple[str, ...]:
        return tuple(sorted(self._kind(kind)))

    def __contains__(self, key: tuple[str, str]) -> bool:
        kind, component_type = key
        return component_type in self._factories.get(kind, {})
