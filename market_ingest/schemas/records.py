"""
Generic decoded record handed over by the stream consumer.
The payload stays a loose key/value bag; typing happens in the coercion layer so that
one bad field never rejects the batch at the model boundary.
"""
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Record(BaseModel):
    table: str = Field(..., description="Target table, e.g. spot_kline_1m, linear_tickers")
    data: Dict[str, Any] = Field(default_factory=dict, description="Decoded key/value payload")

    model_config = ConfigDict(frozen=True)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)
