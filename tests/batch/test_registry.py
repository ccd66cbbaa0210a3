"""Tests for the component registry and the item protocol helpers."""

from pathlib import Path

import pytest

from stepline_batch.items.base import (
    CompositeTransform,
    FunctionTransform,
    ItemSink,
    ItemSource,
    ItemTransform,
    PassThroughTransform,
)
from stepline_batch.registry import ComponentContext, ComponentRegistry
from stepline_io.sinks import ListItemSink
from stepline_io.sources import IterableItemSource
from stepline_kernel.exceptions import ComponentNotRegisteredError


class TestComponentRegistry:
    def test_register_and_create(self):
        registry = ComponentRegistry()
        registry.register("source", "numbers", lambda opts, ctx: IterableItemSource(range(opts["n"])))
        source = registry.create("source", "numbers", {"n": 3})
        assert list(source.read(0)) == [0, 1, 2]
        assert ("source", "numbers") in registry

    def test_duplicate_registration_rejected(self):
        registry = ComponentRegistry()
        registry.register("sink", "list", lambda o, c: ListItemSink())
        with pytest.raises(ValueError, match="already registered"):
            registry.register("sink", "list", lambda o, c: ListItemSink())

    def test_same_type_name_in_different_kinds(self):
        registry = ComponentRegistry()
        registry.register("source", "memory", lambda o, c: IterableItemSource([]))
        registry.register("sink", "memory", lambda o, c: ListItemSink())
        assert registry.list_components("source") == ("memory",)
        assert registry.list_components("sink") == ("memory",)

    def test_missing_component_lists_available(self):
        registry = ComponentRegistry()
        registry.register("source", "b", lambda o, c: None)
        registry.register("source", "a", lambda o, c: None)
        with pytest.raises(ComponentNotRegisteredError) as info:
            registry.get("source", "xml")
        assert info.value.available == ("a", "b")
        assert "source:xml" in str(info.value)

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Unknown component kind"):
            ComponentRegistry().register("reader", "csv", lambda o, c: None)

    def test_factory_receives_context(self):
        seen = {}

        def factory(options, context):
            seen["context"] = context
            return ListItemSink()

        registry = ComponentRegistry()
        registry.register("sink", "list", factory)
        context = ComponentContext(base_path=Path("/jobs"))
        registry.create("sink", "list", None, context)
        assert seen["context"] is context


class TestComponentContext:
    def test_relative_path_resolved_against_base(self):
        context = ComponentContext(base_path=Path("/jobs"))
        assert context.resolve_path("data.csv") == Path("/jobs/data.csv")

    def test_absolute_path_unchanged(self):
        context = ComponentContext(base_path=Path("/jobs"))
        assert context.resolve_path("/srv/data.csv") == Path("/srv/data.csv")

    def test_no_base_path(self):
        assert ComponentContext().resolve_path("data.csv") == Path("data.csv")


class TestItemProtocols:
    def test_builtin_adapters_satisfy_protocols(self):
        assert isinstance(IterableItemSource([]), ItemSource)
        assert isinstance(PassThroughTransform(), ItemTransform)
        assert isinstance(ListItemSink(), ItemSink)

    def test_function_transform(self):
        transform = FunctionTransform(str.strip)
        assert transform.process("  x ") == "x"
        assert transform.name == "strip"

    def test_composite_short_circuits_on_none(self):
        calls = []

        def record(item):
            calls.append(item)
            return item

        composite = CompositeTransform([
            FunctionTransform(lambda n: None if n % 2 else n),
            FunctionTransform(record),
        ])
        assert composite.process(4) == 4
        assert composite.process(3) is None
        assert calls == [4]
