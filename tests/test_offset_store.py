from market_ingest.core import database
from market_ingest.ingestion import offset_store


def test_unknown_stream_has_no_offset():
    with database.db_manager.connect() as conn:
        assert offset_store.get(conn, "spot.kline") is None


def test_upsert_inserts_then_overwrites():
    with database.db_manager.connect() as conn:
        with conn.begin():
            offset_store.upsert(conn, "spot.kline", 10)
        with conn.begin():
            offset_store.upsert(conn, "spot.kline", 11)

        assert offset_store.get(conn, "spot.kline") == 11


def test_upsert_does_not_guard_against_regression():
    with database.db_manager.connect() as conn:
        with conn.begin():
            offset_store.upsert(conn, "s", 50)
            offset_store.upsert(conn, "s", 5)

        assert offset_store.get(conn, "s") == 5


def test_list_offsets_is_sorted_by_stream():
    with database.db_manager.connect() as conn:
        with conn.begin():
            offset_store.upsert(conn, "b", 2)
            offset_store.upsert(conn, "a", 1)

        rows = offset_store.list_offsets(conn)

    assert [(r["stream_name"], r["offset"]) for r in rows] == [("a", 1), ("b", 2)]
    assert all(r["updated_at"] is not None for r in rows)
