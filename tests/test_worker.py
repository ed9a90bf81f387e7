import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from market_ingest.core.exceptions import PersistenceError
from market_ingest.ingestion.coordinator import IngestionCoordinator
from market_ingest.ingestion.worker import ReplayPosition, StreamWorkerPool
from market_ingest.schemas.records import Record


def kline(start):
    return Record(table="spot_kline_1m", data={
        "symbol": "BTCUSDT", "start": start, "end": start + 59_999,
        "open": "1", "close": "1", "high": "1", "low": "1", "volume": "1", "turnover": "1",
    })


@pytest.fixture
def pool():
    pool = StreamWorkerPool(IngestionCoordinator(chunk_size=10), max_workers=4)
    yield pool
    pool.shutdown()


async def test_submit_commits_and_resumes_after_offset(pool):
    assert await pool.resume_position("klines") == ReplayPosition.first()

    written = await pool.submit("klines", [kline(0), kline(60_000)], 7)

    assert written == 2
    assert await pool.get_offset("klines") == 7
    assert await pool.resume_position("klines") == ReplayPosition.at(8)


async def test_streams_are_applied_in_order_and_in_parallel(pool):
    results = await asyncio.gather(*[
        pool.submit(stream, [kline(i * 60_000)], i)
        for i in range(1, 6)
        for stream in ("a", "b")
    ])

    assert results == [1] * 10
    assert await pool.get_offset("a") == 5
    assert await pool.get_offset("b") == 5


async def test_batches_of_one_stream_never_overlap():
    active = {"now": 0, "max": 0}
    guard = threading.Lock()
    applied = []

    def ingest(stream_name, records, target_offset):
        with guard:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
        time.sleep(0.01)
        applied.append(target_offset)
        with guard:
            active["now"] -= 1
        return len(records)

    coordinator = MagicMock()
    coordinator.ingest.side_effect = ingest
    pool = StreamWorkerPool(coordinator, max_workers=4)
    try:
        await asyncio.gather(*[pool.submit("s", [], offset) for offset in range(5)])
    finally:
        pool.shutdown()

    assert active["max"] == 1
    assert applied == [0, 1, 2, 3, 4]


async def test_resume_falls_back_to_first_when_lookup_fails():
    coordinator = MagicMock()
    coordinator.get_offset.side_effect = PersistenceError("store down", stream_name="s")
    pool = StreamWorkerPool(coordinator, max_workers=1)
    try:
        position = await pool.resume_position("s")
    finally:
        pool.shutdown()

    assert position.is_first


async def test_persistence_errors_reach_the_caller():
    coordinator = MagicMock()
    coordinator.ingest.side_effect = PersistenceError("store down", stream_name="s", target_offset=3)
    pool = StreamWorkerPool(coordinator, max_workers=1)
    try:
        with pytest.raises(PersistenceError):
            await pool.submit("s", [], 3)
    finally:
        pool.shutdown()


def test_replay_position():
    assert ReplayPosition.first().is_first
    assert ReplayPosition.at(0).offset == 0
    assert not ReplayPosition.at(0).is_first
    with pytest.raises(ValueError):
        ReplayPosition.at(-1)
