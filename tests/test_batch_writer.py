from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from market_ingest.ingestion.batch_writer import BatchWriter, ingest_key, insert_statement
from market_ingest.ingestion.projection import schema_for

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _conn():
    conn = MagicMock()
    conn.dialect.name = "sqlite"
    return conn


def _kline_row(i):
    return ("BTCUSDT", NOW, NOW, Decimal(i), Decimal(i), Decimal(i), Decimal(i), Decimal(1), Decimal(1))


def test_rows_are_flushed_in_chunks():
    conn = _conn()
    writer = BatchWriter(conn, schema_for("spot_kline_1m"), chunk_size=3)

    writer.extend([_kline_row(i) for i in range(3 * 3 + 1)])
    assert conn.execute.call_count == 3
    writer.flush()

    sizes = [len(call.args[1]) for call in conn.execute.call_args_list]
    assert sizes == [3, 3, 3, 1]
    assert writer.rows_written == 10
    assert writer.flushes == 4


def test_flush_without_pending_rows_is_a_noop():
    conn = _conn()
    writer = BatchWriter(conn, schema_for("spot_kline_1m"), chunk_size=10)

    assert writer.flush() == 0
    conn.execute.assert_not_called()


def test_rows_are_bound_by_column_name():
    conn = _conn()
    writer = BatchWriter(conn, schema_for("spot_kline_1m"), chunk_size=10)
    writer.add(_kline_row(5))
    writer.flush()

    (params,) = conn.execute.call_args.args[1]
    assert params["symbol"] == "BTCUSDT"
    assert params["open_price"] == Decimal(5)
    assert "ingest_key" not in params


def test_append_only_rows_get_deterministic_ingest_keys():
    schema = schema_for("linear_all_liquidation")
    row = ("BTCUSDT", NOW, "Buy", Decimal("0.5"), Decimal("36000"))

    keys = []
    for _ in range(2):
        conn = _conn()
        writer = BatchWriter(conn, schema, chunk_size=2, key_prefix="liq:7")
        writer.extend([row, row, row])
        writer.flush()
        keys.append([p["ingest_key"] for call in conn.execute.call_args_list for p in call.args[1]])

    assert keys[0] == keys[1]
    assert len(set(keys[0])) == 3
    assert keys[0][2] == ingest_key("liq:7", "linear_all_liquidation", 2)


def test_invalid_chunk_size():
    with pytest.raises(ValueError):
        BatchWriter(_conn(), schema_for("spot_kline_1m"), chunk_size=0)


def test_unsupported_dialect():
    conn = MagicMock()
    conn.dialect.name = "mysql"
    with pytest.raises(ValueError):
        BatchWriter(conn, schema_for("spot_kline_1m"), chunk_size=10)


def test_ignore_policy_skips_duplicates_on_any_unique_constraint():
    stmt = insert_statement(schema_for("spot_public_trade"), "sqlite")

    sql = str(stmt.compile(dialect=sqlite.dialect()))
    assert sql.endswith("ON CONFLICT DO NOTHING")


def test_update_policy_targets_the_natural_key():
    stmt = insert_statement(schema_for("indicators"), "postgresql")

    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "ON CONFLICT (symbol, " in sql
    assert "DO UPDATE SET" in sql
