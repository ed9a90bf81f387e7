from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar('T')


class StreamOffsetResponse(BaseModel):
    stream_name: str
    offset: int
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MetaData(BaseModel):
    request_id: str
    latency_ms: float


class ListResponse(BaseModel, Generic[T]):
    meta: MetaData
    data: List[T]
