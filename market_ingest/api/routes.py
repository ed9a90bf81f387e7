"""
Read-only operational endpoints over the stream offsets.
Lets an operator see how far each stream has been committed without touching the store directly.
"""
import time
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.engine import Connection

from market_ingest.core.database import get_connection
from market_ingest.ingestion import offset_store
from market_ingest.schemas.data import ListResponse, MetaData, StreamOffsetResponse

router = APIRouter()


@router.get("/offsets", response_model=ListResponse[StreamOffsetResponse])
def list_offsets(conn: Connection = Depends(get_connection)):
    start_time = time.time()
    rows = offset_store.list_offsets(conn)
    latency = (time.time() - start_time) * 1000

    return ListResponse(
        meta=MetaData(request_id=str(uuid.uuid4()), latency_ms=latency),
        data=[StreamOffsetResponse(**row) for row in rows],
    )


@router.get("/offsets/{stream_name}", response_model=StreamOffsetResponse)
def get_stream_offset(stream_name: str, conn: Connection = Depends(get_connection)):
    offset = offset_store.get(conn, stream_name)
    if offset is None:
        raise HTTPException(status_code=404, detail=f"No offset stored for stream {stream_name}")
    return StreamOffsetResponse(stream_name=stream_name, offset=offset)
