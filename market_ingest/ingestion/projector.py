"""Maps validated records onto the positional row layout of their target table."""

from __future__ import annotations

from typing import Any, Iterable

from market_ingest.ingestion.coercion import to_decimal
from market_ingest.ingestion.projection import SIDE_ASK, SIDE_BID, Expansion
from market_ingest.ingestion.validator import ValidRecord

ProjectedRow = tuple[Any, ...]


def project(valid: ValidRecord) -> list[ProjectedRow]:
    schema = valid.schema
    if schema.expansion is Expansion.BOOK_LEVELS:
        return _project_book_levels(valid)
    return [tuple(valid.values[column] for column in schema.columns)]


def _project_book_levels(valid: ValidRecord) -> list[ProjectedRow]:
    values = valid.values
    rows: list[ProjectedRow] = []
    for side, key in ((SIDE_BID, "bids"), (SIDE_ASK, "asks")):
        for price, size in _levels(valid.source.get(key)):
            level = dict(values, side=side, price=price, size=size)
            rows.append(tuple(level[column] for column in valid.schema.columns))
    return rows


def _levels(raw: Any) -> Iterable[tuple[Any, Any]]:
    # A missing side is an empty book side
    if not isinstance(raw, (list, tuple)):
        return
    for level in raw:
        if not isinstance(level, (list, tuple)) or len(level) < 2:
            continue
        price, size = to_decimal(level[0]), to_decimal(level[1])
        if price is None or size is None:
            continue
        yield price, size
