"""
Item protocols -- the three pluggable capabilities of a chunk-oriented step.

A step reads records from an ``ItemSource``, passes each through an
``ItemTransform`` and hands each chunk of results to an ``ItemSink``.  The
chunk executor never looks inside a record.

Contract:
    - ``ItemSource.read(position)`` yields records starting at ordinal
      ``position`` (0 is the beginning).  The executor re-opens the source
      with a new position after a restart or a retryable read fault, so a
      source must be able to start anywhere.
    - ``ItemTransform.process(item)`` returns the transformed record, or
      ``None`` to filter the record out.  Raising signals a per-item failure.
    - ``ItemSink.write(items)`` is all-or-nothing for the whole chunk.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Protocol, Sequence, runtime_checkable


@runtime_checkable
class ItemSource(Protocol):
    """Produces records in a stable order."""

    def read(self, position: int) -> Iterator[Any]: ...


@runtime_checkable
class ItemTransform(Protocol):
    """Maps one record to one record, or to ``None`` to filter it."""

    def process(self, item: Any) -> Any | None: ...


@runtime_checkable
class ItemSink(Protocol):
    """Persists a chunk of records atomically."""

    def write(self, items: Sequence[Any]) -> None: ...


class PassThroughTransform:
    """Identity transform, used when a step declares none."""

    def process(self, item: Any) -> Any:
        return item

    def __repr__(self) -> str:
        return "PassThroughTransform()"


class FunctionTransform:
    """Adapts a plain callable to the ``ItemTransform`` protocol."""

    def __init__(self, func: Callable[[Any], Any | None], name: str | None = None):
        self._func = func
        self.name = name or getattr(func, "__name__", "function")

    def process(self, item: Any) -> Any | None:
        return self._func(item)

    def __repr__(self) -> str:
        return f"FunctionTransform({self.name!r})"


class CompositeTransform:
    """Chains transforms; a ``None`` from any link filters the record."""

    def __init__(self, transforms: Sequence[ItemTransform]):
        self._transforms = tuple(transforms)

    def process(self, item: Any) -> Any | None:
        for transform in self._transforms:
            item = transform.process(item)
            if item is None:
                return None
        return item
