"""
Item sinks: in-memory list and SQL table insert.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Sequence

from sqlalchemy import MetaData, Table, insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from stepline_kernel.exceptions import SinkError
from stepline_kernel.logging_config import get_logger

logger = get_logger("io.sinks")

ON_CONFLICT_MODES = ("error", "ignore")


class ListItemSink:
    """Keeps every written chunk in memory."""

    def __init__(self) -> None:
        self.chunks: list[list[Any]] = []

    def write(self, items: Sequence[Any]) -> None:
        self.chunks.append(list(items))

    @property
    def items(self) -> list[Any]:
        return [item for chunk in self.chunks for item in chunk]


def record_to_row(item: Any) -> dict[str, Any]:
    """Convert a record (mapping, dataclass or named tuple) to a column dict."""
    if isinstance(item, Mapping):
        return dict(item)
    if dataclasses.is_dataclass(item) and not isinstance(item, type):
        return dataclasses.asdict(item)
    as_dict = getattr(item, "_asdict", None)
    if as_dict is not None:
        return dict(as_dict())
    raise TypeError(f"Cannot map {type(item).__name__} to table columns")


class SqlInsertItemSink:
    """Inserts each chunk into a table with one executemany in one transaction.

    ``on_conflict="ignore"`` skips rows that violate the table's unique
    constraints (SQLite / PostgreSQL ``ON CONFLICT DO NOTHING``, MySQL
    ``INSERT IGNORE``).  Record keys that are not table columns are dropped;
    ``columns`` restricts the insert further.
    """

    def __init__(
        self,
        engine: Engine,
        table: str,
        columns: Sequence[str] | None = None,
        on_conflict: str = "error",
    ):
        if on_conflict not in ON_CONFLICT_MODES:
            raise ValueError(
                f"on_conflict must be one of {ON_CONFLICT_MODES}, got '{on_conflict}'"
            )
        self._engine = engine
        self.table_name = table
        self._columns = tuple(columns) if columns else None
        self._on_conflict = on_conflict
        self._table: Table | None = None

    def _reflect(self, conn: Connection) -> Table:
        if self._table is None:
            self._table = Table(self.table_name, MetaData(), autoload_with=conn)
        return self._table

    def _statement(self, table: Table, dialect: str) -> Any:
        if self._on_conflict == "error":
            return insert(table)
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as sqlite_insert

            return sqlite_insert(table).on_conflict_do_nothing()
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as pg_insert

            return pg_insert(table).on_conflict_do_nothing()
        return insert(table).prefix_with("IGNORE")

    def _rows(self, items: Sequence[Any], table: Table) -> list[dict[str, Any]]:
        allowed = set(self._columns or table.c.keys())
        rows = []
        for item in items:
            try:
                row = record_to_row(item)
            except TypeError as exc:
                raise SinkError(str(exc), chunk_size=len(items)) from exc
            rows.append({k: v for k, v in row.items() if k in allowed})
        return rows

    def write(self, items: Sequence[Any]) -> None:
        if not items:
            return
        try:
            with self._engine.begin() as conn:
                table = self._reflect(conn)
                rows = self._rows(items, table)
                result = conn.execute(self._statement(table, conn.dialect.name), rows)
        except SQLAlchemyError as exc:
            raise SinkError(
                f"Insert into '{self.table_name}' failed: {exc}", chunk_size=len(items),
            ) from exc
        logger.debug(
            "rows_inserted",
            extra={
                "table": self.table_name,
                "rows": len(items),
                "inserted": result.rowcount,
            },
        )
