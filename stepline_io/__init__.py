"""
stepline_io -- Built-in item adapters for the batch engine.

Sources (in-memory, CSV, SQL query), sinks (in-memory list, SQL insert),
case transforms, the table report listener and the default component
registry used by YAML job definitions.

Architecture: depends on stepline_batch and stepline_kernel; the engine
never imports from stepline_io.
"""

from stepline_io.listeners import TableReportListener
from stepline_io.registry import default_component_registry
from stepline_io.sinks import ListItemSink, SqlInsertItemSink
from stepline_io.sources import CsvItemSource, IterableItemSource, SqlQueryItemSource
from stepline_io.transforms import FieldCaseTransform, lowercase, uppercase

__all__ = [
    "CsvItemSource",
    "FieldCaseTransform",
    "IterableItemSource",
    "ListItemSink",
    "SqlInsertItemSink",
    "SqlQueryItemSource",
    "TableReportListener",
    "default_component_registry",
    "lowercase",
    "uppercase",
]
