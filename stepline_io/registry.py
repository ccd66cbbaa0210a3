"""
Default component registry: the built-in adapters under their YAML type names.

| kind      | type          | component                 |
|-----------|---------------|---------------------------|
| source    | iterable      | IterableItemSource        |
| source    | csv           | CsvItemSource             |
| source    | sql_query     | SqlQueryItemSource        |
| transform | passthrough   | PassThroughTransform      |
| transform | uppercase     | FieldCaseTransform upper  |
| transform | lowercase     | FieldCaseTransform lower  |
| sink      | list          | ListItemSink              |
| sink      | sql_insert    | SqlInsertItemSink         |
| listener  | logging       | LoggingListener           |
| listener  | table_report  | TableReportListener       |

Unknown option names surface as ``TypeError`` from the constructor, which
the assembler reports as an invalid job definition.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.engine import Engine

from stepline_batch.items.base import PassThroughTransform
from stepline_batch.registry import ComponentContext, ComponentRegistry
from stepline_batch.services.listeners import LoggingListener
from stepline_io.listeners import TableReportListener
from stepline_io.sinks import ListItemSink, SqlInsertItemSink
from stepline_io.sources import CsvItemSource, IterableItemSource, SqlQueryItemSource
from stepline_io.transforms import lowercase, uppercase


def _require_engine(context: ComponentContext, component_type: str) -> Engine:
    if context.engine is None:
        raise ValueError(f"'{component_type}' needs a database engine")
    return context.engine


def _csv(options: Mapping[str, Any], context: ComponentContext) -> CsvItemSource:
    opts = dict(options)
    path = opts.pop("path")
    return CsvItemSource(context.resolve_path(path), **opts)


def _sql_query(options: Mapping[str, Any], context: ComponentContext) -> SqlQueryItemSource:
    return SqlQueryItemSource(_require_engine(context, "sql_query"), **options)


def _sql_insert(options: Mapping[str, Any], context: ComponentContext) -> SqlInsertItemSink:
    return SqlInsertItemSink(_require_engine(context, "sql_insert"), **options)


def _table_report(
    options: Mapping[str, Any], context: ComponentContext,
) -> TableReportListener:
    return TableReportListener(_require_engine(context, "table_report"), **options)


def default_component_registry() -> ComponentRegistry:
    """Create a ComponentRegistry pre-loaded with every built-in adapter."""
    registry = ComponentRegistry()

    registry.register("source", "iterable", lambda o, c: IterableItemSource(**o))
    registry.register("source", "csv", _csv)
    registry.register("source", "sql_query", _sql_query)

    registry.register("transform", "passthrough", lambda o, c: PassThroughTransform(**o))
    registry.register("transform", "uppercase", lambda o, c: uppercase(**o))
    registry.register("transform", "lowercase", lambda o, c: lowercase(**o))

    registry.register("sink", "list", lambda o, c: ListItemSink(**o))
    registry.register("sink", "sql_insert", _sql_insert)

    registry.register("listener", "logging", lambda o, c: LoggingListener(**o))
    registry.register("listener", "table_report", _table_report)
    return registry
