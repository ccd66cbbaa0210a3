"""
TableReportListener -- logs the contents of a table once a job completes.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import MetaData, Table, select
from sqlalchemy.engine import Engine

from stepline_batch.domain.types import ExecutionStatus, JobExecution
from stepline_batch.services.listeners import ExecutionListener
from stepline_kernel.logging_config import get_logger

logger = get_logger("io.report")


class TableReportListener(ExecutionListener):
    """After a COMPLETED job, logs one ``table_row`` event per row of ``table``."""

    def __init__(
        self,
        engine: Engine,
        table: str,
        columns: Sequence[str] | None = None,
        limit: int | None = None,
    ):
        self._engine = engine
        self.table_name = table
        self._columns = tuple(columns) if columns else None
        self._limit = limit

    def after_job(self, execution: JobExecution) -> None:
        if execution.status is not ExecutionStatus.COMPLETED:
            return

        logger.info("job_finished_verifying", extra={"table": self.table_name})
        with self._engine.connect() as conn:
            table = Table(self.table_name, MetaData(), autoload_with=conn)
            columns = (
                [table.c[name] for name in self._columns]
                if self._columns
                else list(table.c)
            )
            stmt = select(*columns)
            if self._limit is not None:
                stmt = stmt.limit(self._limit)
            rows = conn.execute(stmt).mappings().all()

        for row in rows:
            logger.info("table_row", extra={"table": self.table_name, "row": dict(row)})
        logger.info(
            "table_report_complete",
            extra={"table": self.table_name, "row_count": len(rows)},
        )
