"""
Async boundary around the synchronous coordinator.
Batches of one stream are applied strictly in submission order; distinct streams run
in parallel on a bounded thread pool.
"""
import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Optional, Sequence

from market_ingest.core.config import get_settings
from market_ingest.core.logging_config import get_logger
from market_ingest.ingestion.coordinator import IngestionCoordinator
from market_ingest.schemas.records import Record

logger = get_logger("stream_worker")


@dataclass(frozen=True)
class ReplayPosition:
    """Where the transport consumer should start reading: the first retained message or a concrete offset."""

    offset: Optional[int] = None

    @classmethod
    def first(cls) -> "ReplayPosition":
        return cls()

    @classmethod
    def at(cls, offset: int) -> "ReplayPosition":
        if offset < 0:
            raise ValueError("offset must be non-negative")
        return cls(offset)

    @property
    def is_first(self) -> bool:
        return self.offset is None


class StreamWorkerPool:
    def __init__(self, coordinator: IngestionCoordinator | None = None, max_workers: int | None = None):
        self.coordinator = coordinator or IngestionCoordinator()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or get_settings().INGEST_WORKERS,
            thread_name_prefix="ingest",
        )
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, stream_name: str) -> asyncio.Lock:
        lock = self._locks.get(stream_name)
        if lock is None:
            lock = self._locks[stream_name] = asyncio.Lock()
        return lock

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

    async def submit(self, stream_name: str, records: Sequence[Record], target_offset: int) -> int:
        async with self._lock_for(stream_name):
            return await self._run(self.coordinator.ingest, stream_name, list(records), target_offset)

    async def get_offset(self, stream_name: str) -> int | None:
        return await self._run(self.coordinator.get_offset, stream_name)

    async def resume_position(self, stream_name: str) -> ReplayPosition:
        try:
            offset = await self.get_offset(stream_name)
        except Exception as e:
            logger.warning("offset_lookup_failed", stream=stream_name, error=str(e))
            return ReplayPosition.first()

        if offset is None:
            logger.info("resume_from_first", stream=stream_name)
            return ReplayPosition.first()
        logger.info("resume_from_offset", stream=stream_name, offset=offset + 1)
        return ReplayPosition.at(offset + 1)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
