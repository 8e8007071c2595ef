from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import duckdb
import pandas as pd

from ..errors import ExecutionError

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Records returned by one capped query."""

    records: List[Dict[str, Any]]
    row_count: int
    truncated: bool
    columns: List[str] = field(default_factory=list)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, row_cap: int) -> "QueryResult":
        truncated = len(df) > row_cap
        df = df.head(row_cap)
        # to_json handles NaN/NaT/timestamps; nullable dtypes keep ints as ints
        records = json.loads(
            df.convert_dtypes().to_json(orient="records", date_format="iso")
        )
        return cls(
            records=records,
            row_count=len(records),
            truncated=truncated,
            columns=[str(c) for c in df.columns],
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "records": self.records,
            "row_count": self.row_count,
            "truncated": self.truncated,
        }


def _connect(path: Path, read_only: bool = True) -> duckdb.DuckDBPyConnection:
    if not path.exists():
        raise FileNotFoundError(
            f"DuckDB database not found at: {path}. "
            "Set NEST_DB_PATH or run scripts/create_sample_db.py"
        )
    return duckdb.connect(str(path), read_only=read_only)


def execute_sql_query(
    sql: str, params: Optional[Sequence[Any]] = None, db_path: Path | None = None
) -> pd.DataFrame:
    """Execute one query against a DuckDB file (read-only) and return a DataFrame."""
    path = Path(db_path) if db_path is not None else Path("data") / "nest_mcp.db"
    with _connect(path) as conn:
        return conn.execute(sql, list(params or [])).df()


class CompanyDatabase:
    """
    Shared, read-only handle on the company dataset.

    One connection is opened at startup; each query gets its own cursor and
    runs in a worker thread, so concurrent sessions never share a cursor.
    """

    def __init__(self, db_path: Path, query_timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.query_timeout = query_timeout
        self._conn = _connect(self.db_path)
        logger.info("Opened %s (read-only)", self.db_path)

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _run(cursor: duckdb.DuckDBPyConnection, sql: str, params: List[Any]) -> pd.DataFrame:
        try:
            return cursor.execute(sql, params).df()
        finally:
            cursor.close()

    async def fetch_frame(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """Run a statement off the event loop. Engine failures become ExecutionError."""
        cursor = self._conn.cursor()
        task = asyncio.ensure_future(asyncio.to_thread(self._run, cursor, sql, list(params or [])))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.query_timeout)
            if not done:
                cursor.interrupt()
                # the worker thread unwinds on the interrupt; wait so the cursor is released
                await asyncio.gather(task, return_exceptions=True)
                logger.warning("Query interrupted after %.1fs: %s", self.query_timeout, sql)
                raise ExecutionError("query timed out")
            return task.result()
        except duckdb.Error as e:
            # Engine diagnostics can describe internals; keep them in the log only.
            logger.error("Query failed: %s | sql=%s | params=%r", e, sql, params)
            raise ExecutionError("query failed") from e

    async def fetch(
        self, sql: str, params: Optional[Sequence[Any]] = None, *, row_cap: int
    ) -> QueryResult:
        """Run a statement already limited to row_cap + 1 rows and trim it to the cap."""
        df = await self.fetch_frame(sql, params)
        return QueryResult.from_frame(df, row_cap)

    async def describe_table(self, table: str) -> QueryResult:
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        df = await self.fetch_frame(f"DESCRIBE {table}")
        df = df[["column_name", "column_type", "null"]]
        return QueryResult.from_frame(df, row_cap=len(df))
