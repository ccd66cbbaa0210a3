"""
Item sources: in-memory, CSV file and SQL query.

Every source yields one record per item and can start at any ordinal
position, which is how the chunk executor resumes a restarted step.  CSV and
SQL records are plain dicts keyed by column name.
"""

from __future__ import annotations

import csv
from itertools import islice
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from stepline_kernel.exceptions import SourceError
from stepline_kernel.logging_config import get_logger

logger = get_logger("io.sources")


class IterableItemSource:
    """Serves records from an in-memory sequence."""

    def __init__(self, records: Iterable[Any]):
        self._records = tuple(records)

    def read(self, position: int) -> Iterator[Any]:
        return iter(self._records[position:])

    def __len__(self) -> int:
        return len(self._records)


_QUOTING = {
    "minimal": csv.QUOTE_MINIMAL,
    "all": csv.QUOTE_ALL,
    "nonnumeric": csv.QUOTE_NONNUMERIC,
    "none": csv.QUOTE_NONE,
}


def _encoding(encoding: str) -> str:
    if encoding.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return encoding


class CsvItemSource:
    """Streams a delimited file as one dict per row.

    ``names`` labels the columns of a headerless file; with ``has_header``
    the first row supplies them.  Without either, columns are named
    ``field_0``, ``field_1``, ...  Restarting at ``position`` skips that many
    data rows.
    """

    def __init__(
        self,
        path: str | Path,
        names: Sequence[str] | None = None,
        delimiter: str = ",",
        has_header: bool = False,
        encoding: str = "utf-8",
        skip_rows: int = 0,
        quoting: str = "minimal",
    ):
        if quoting not in _QUOTING:
            raise ValueError(f"Unknown quoting '{quoting}'. Expected one of {sorted(_QUOTING)}")
        if skip_rows < 0:
            raise ValueError("skip_rows must be >= 0")
        self.path = Path(path)
        self._names = tuple(names) if names else None
        self._delimiter = delimiter
        self._has_header = has_header
        self._encoding = _encoding(encoding)
        self._skip_rows = skip_rows
        self._quoting = _QUOTING[quoting]

    def _rows(self, f: Any) -> Iterator[dict[str, Any]]:
        for _ in range(self._skip_rows):
            next(f, None)
        if self._has_header:
            reader = csv.DictReader(
                f,
                fieldnames=self._names,
                delimiter=self._delimiter,
                quoting=self._quoting,
            )
            if self._names is not None:
                next(reader, None)  # Header row replaced by the configured names
            yield from reader
            return

        reader = csv.reader(f, delimiter=self._delimiter, quoting=self._quoting)
        for row in reader:
            if not row:
                continue
            names = self._names or tuple(f"field_{i}" for i in range(len(row)))
            yield dict(zip(names, row))

    def read(self, position: int) -> Iterator[dict[str, Any]]:
        try:
            with self.path.open("r", encoding=self._encoding, newline="") as f:
                yield from islice(self._rows(f), position, None)
        except (OSError, csv.Error, UnicodeDecodeError) as exc:
            raise SourceError(
                f"Cannot read {self.path}: {exc}", position=position,
            ) from exc


class SqlQueryItemSource:
    """Pages through the rows of a SELECT statement.

    Each page is fetched with its own short-lived connection by wrapping the
    query as ``SELECT * FROM (<query>) LIMIT :limit OFFSET :offset``, so no
    cursor stays open while a chunk is being written.  The query must return
    rows in a stable order for restarts to be exact.
    """

    def __init__(
        self,
        engine: Engine,
        query: str,
        params: Mapping[str, Any] | None = None,
        page_size: int = 100,
    ):
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        self._engine = engine
        self._query = query.strip().rstrip(";")
        self._params = dict(params or {})
        self._page_size = page_size
        self._page_sql = text(
            f"SELECT * FROM ({self._query}) AS stepline_page "
            "LIMIT :_stepline_limit OFFSET :_stepline_offset"
        )

    def _fetch_page(self, offset: int) -> list[dict[str, Any]]:
        params = {
            **self._params,
            "_stepline_limit": self._page_size,
            "_stepline_offset": offset,
        }
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(self._page_sql, params).mappings().all()
        except SQLAlchemyError as exc:
            raise SourceError(
                f"Query page at offset {offset} failed: {exc}",
                position=offset,
                retryable=isinstance(exc, OperationalError),
            ) from exc
        logger.debug("query_page_fetched", extra={"offset": offset, "rows": len(rows)})
        return [dict(row) for row in rows]

    def read(self, position: int) -> Iterator[dict[str, Any]]:
        offset = position
        while True:
            page = self._fetch_page(offset)
            yield from page
            if len(page) < self._page_size:
                return
            offset += len(page)
