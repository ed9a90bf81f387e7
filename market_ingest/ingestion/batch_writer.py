"""
Chunked writes of projected rows through one prepared INSERT ... ON CONFLICT per table.
The writer never commits; the caller's transaction decides durability.
"""
from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import Any

from sqlalchemy import Table, func
from sqlalchemy.engine import Connection

from market_ingest.core.database import dialect_insert
from market_ingest.core.logging_config import get_logger
from market_ingest.db.models import Base
from market_ingest.ingestion.projection import ConflictPolicy, ProjectionSchema
from market_ingest.ingestion.projector import ProjectedRow

logger = get_logger("batch_writer")


def table_for(schema: ProjectionSchema) -> Table:
    return Base.metadata.tables[schema.table]


@lru_cache(maxsize=None)
def insert_statement(schema: ProjectionSchema, dialect_name: str):
    """Build the conflict-aware INSERT for a table once per dialect."""
    table = table_for(schema)
    stmt = dialect_insert(dialect_name)(table)
    if schema.conflict_policy is ConflictPolicy.IGNORE_ON_CONFLICT:
        # No conflict target: a duplicate on any unique constraint is skipped
        return stmt.on_conflict_do_nothing()

    updates: dict[str, Any] = {
        column: stmt.excluded[column]
        for column in schema.write_columns
        if column not in schema.conflict_keys
    }
    if schema.touch_updated_at:
        updates["updated_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=list(schema.conflict_keys), set_=updates)


def ingest_key(prefix: str, table: str, ordinal: int) -> str:
    return hashlib.sha1(f"{prefix}:{table}:{ordinal}".encode("utf-8")).hexdigest()


class BatchWriter:
    def __init__(self, conn: Connection, schema: ProjectionSchema, chunk_size: int, key_prefix: str = ""):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.conn = conn
        self.schema = schema
        self.chunk_size = chunk_size
        self.key_prefix = key_prefix
        self.statement = insert_statement(schema, conn.dialect.name)
        self.rows_written = 0
        self.flushes = 0
        self._pending: list[dict[str, Any]] = []

    def add(self, row: ProjectedRow) -> None:
        params = dict(zip(self.schema.columns, row))
        if self.schema.synthetic_key:
            params["ingest_key"] = ingest_key(self.key_prefix, self.schema.table, self.rows_written + len(self._pending))
        self._pending.append(params)
        if len(self._pending) >= self.chunk_size:
            self.flush()

    def extend(self, rows: list[ProjectedRow]) -> None:
        for row in rows:
            self.add(row)

    def flush(self) -> int:
        if not self._pending:
            return 0
        pending, self._pending = self._pending, []
        self.conn.execute(self.statement, pending)
        self.rows_written += len(pending)
        self.flushes += 1
        logger.debug("chunk_flushed", table=self.schema.table, rows=len(pending))
        return len(pending)
