"""
Applies one batch of decoded records and the stream offset that follows it in a single
database transaction. Either every valid row of the batch becomes visible together with
the new offset, or nothing does and the stored offset stays where it was.
"""
import time
from collections import Counter
from contextlib import contextmanager
from enum import Enum
from typing import Iterable, Mapping

from prometheus_client import Counter as MetricCounter, Gauge, Histogram
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from market_ingest.core import database
from market_ingest.core.config import get_settings
from market_ingest.core.exceptions import PersistenceError
from market_ingest.core.logging_config import get_logger
from market_ingest.ingestion import offset_store
from market_ingest.ingestion.batch_writer import BatchWriter
from market_ingest.ingestion.projection import SCHEMAS, ProjectionSchema
from market_ingest.ingestion.projector import project
from market_ingest.ingestion.validator import Malformed, validate
from market_ingest.schemas.records import Record

logger = get_logger("ingestion_coordinator")

# --- Metrics ---
INGEST_ROWS_WRITTEN = MetricCounter('ingest_rows_written_total', 'Rows committed per target table', ['table'])
INGEST_RECORDS_MALFORMED = MetricCounter('ingest_records_malformed_total', 'Records dropped by validation', ['table'])
INGEST_BATCH_DURATION = Histogram('ingest_batch_duration_seconds', 'Batch transaction duration', ['stream'])
INGEST_BATCH_STATUS = Gauge('ingest_batch_status', 'Last batch status (1=Committed, 0=RolledBack)', ['stream'])
STREAM_COMMITTED_OFFSET = Gauge('stream_committed_offset', 'Last committed offset', ['stream'])


class TransactionState(str, Enum):
    IDLE = "idle"
    TRANSACTION_OPEN = "transaction_open"
    WRITING = "writing"
    OFFSET_WRITING = "offset_writing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _isolation_level(conn: Connection) -> str:
    # Not every driver reports AUTOCOMMIT back; the execution option wins when present
    level = conn.get_execution_options().get("isolation_level")
    if level:
        return level
    dbapi_error = conn.dialect.loaded_dbapi.Error
    try:
        return conn.get_isolation_level()
    except dbapi_error as e:
        raise DBAPIError.instance(None, None, e, dbapi_error) from e


@contextmanager
def manual_commit(conn: Connection):
    """Take a pooled connection out of AUTOCOMMIT for the batch and put it back afterwards."""
    original = _isolation_level(conn)
    switched = original == "AUTOCOMMIT"
    if switched:
        conn.execution_options(isolation_level=conn.default_isolation_level)
    try:
        yield conn
    finally:
        if switched and not conn.invalidated:
            conn.execution_options(isolation_level=original)


def _check_arguments(stream_name: str, target_offset: int) -> None:
    if not stream_name:
        raise ValueError("stream_name must be a non-empty string")
    if isinstance(target_offset, bool) or not isinstance(target_offset, int) or target_offset < 0:
        raise ValueError(f"target_offset must be a non-negative integer, got {target_offset!r}")


class IngestionCoordinator:
    def __init__(
        self,
        db: database.Database | None = None,
        chunk_size: int | None = None,
        schemas: Mapping[str, ProjectionSchema] = SCHEMAS,
    ):
        self._db = db or database.db_manager
        self._chunk_size = chunk_size or get_settings().INGEST_CHUNK_SIZE
        self._schemas = schemas

    def ingest(self, stream_name: str, records: Iterable[Record], target_offset: int) -> int:
        """
        Persist the valid records of a batch and advance the stream offset atomically.
        Returns the number of rows handed to the store (order-book snapshots count once per level).
        """
        _check_arguments(stream_name, target_offset)
        log = logger.bind(stream=stream_name, target_offset=target_offset)
        start_time = time.perf_counter()
        state = TransactionState.IDLE
        writers: dict[str, BatchWriter] = {}

        try:
            with self._db.connect() as conn, manual_commit(conn):
                trans = conn.begin()
                state = TransactionState.TRANSACTION_OPEN
                try:
                    state = TransactionState.WRITING
                    writers = self._write_batch(conn, stream_name, records, target_offset, log)

                    state = TransactionState.OFFSET_WRITING
                    offset_store.upsert(conn, stream_name, target_offset)

                    trans.commit()
                    state = TransactionState.COMMITTED
                except BaseException as e:
                    failed_in = state
                    state = TransactionState.ROLLED_BACK
                    self._rollback(trans, log)
                    log.error("ingest_rolled_back", failed_in=failed_in.value, error=str(e))
                    raise
        except SQLAlchemyError as e:
            INGEST_BATCH_STATUS.labels(stream=stream_name).set(0)
            raise PersistenceError(
                f"Failed to persist batch for stream {stream_name!r} at offset {target_offset}: {e}",
                stream_name=stream_name,
                target_offset=target_offset,
            ) from e
        except Exception:
            INGEST_BATCH_STATUS.labels(stream=stream_name).set(0)
            raise
        finally:
            INGEST_BATCH_DURATION.labels(stream=stream_name).observe(time.perf_counter() - start_time)

        rows_written = sum(w.rows_written for w in writers.values())
        for table, writer in writers.items():
            INGEST_ROWS_WRITTEN.labels(table=table).inc(writer.rows_written)
        INGEST_BATCH_STATUS.labels(stream=stream_name).set(1)
        STREAM_COMMITTED_OFFSET.labels(stream=stream_name).set(target_offset)
        log.info(
            "ingest_committed",
            rows=rows_written,
            tables=sorted(writers),
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return rows_written

    def _write_batch(self, conn, stream_name, records, target_offset, log) -> dict[str, BatchWriter]:
        writers: dict[str, BatchWriter] = {}
        malformed: Counter = Counter()
        key_prefix = f"{stream_name}:{target_offset}"

        for record in records:
            result = validate(record, self._schemas.get(record.table))
            if isinstance(result, Malformed):
                malformed[result.table] += 1
                log.debug("record_malformed", table=result.table, reason=result.reason, missing=list(result.missing))
                continue

            writer = writers.get(result.schema.table)
            if writer is None:
                writer = BatchWriter(conn, result.schema, self._chunk_size, key_prefix)
                writers[result.schema.table] = writer
            writer.extend(project(result))

        for writer in writers.values():
            writer.flush()

        if malformed:
            for table, count in malformed.items():
                INGEST_RECORDS_MALFORMED.labels(table=table).inc(count)
            log.warning("records_malformed", counts=dict(malformed))
        return writers

    @staticmethod
    def _rollback(trans, log) -> None:
        if not trans.is_active:
            return
        try:
            trans.rollback()
        except SQLAlchemyError as e:
            # Only logged; the batch error is re-raised by the caller
            log.error("rollback_failed", error=str(e))

    def get_offset(self, stream_name: str) -> int | None:
        try:
            with self._db.connect() as conn:
                return offset_store.get(conn, stream_name)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read offset for stream {stream_name!r}: {e}", stream_name=stream_name) from e

    def set_offset(self, stream_name: str, offset: int) -> None:
        """Store an offset outside of any batch, e.g. to skip a stream ahead."""
        _check_arguments(stream_name, offset)
        try:
            with self._db.connect() as conn, manual_commit(conn):
                with conn.begin():
                    offset_store.upsert(conn, stream_name, offset)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to store offset for stream {stream_name!r}: {e}",
                stream_name=stream_name,
                target_offset=offset,
            ) from e
        STREAM_COMMITTED_OFFSET.labels(stream=stream_name).set(offset)
        logger.info("offset_stored", stream=stream_name, offset=offset)

    def list_offsets(self) -> list[dict]:
        try:
            with self._db.connect() as conn:
                return offset_store.list_offsets(conn)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list stream offsets: {e}") from e


_default_coordinator: IngestionCoordinator | None = None


def _coordinator() -> IngestionCoordinator:
    global _default_coordinator
    if _default_coordinator is None:
        _default_coordinator = IngestionCoordinator()
    return _default_coordinator


def ingest(stream_name: str, records: Iterable[Record], target_offset: int) -> int:
    return _coordinator().ingest(stream_name, records, target_offset)


def get_offset(stream_name: str) -> int | None:
    return _coordinator().get_offset(stream_name)
