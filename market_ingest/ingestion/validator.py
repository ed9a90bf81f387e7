"""Required-field checks that classify a record as valid or malformed without raising."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from market_ingest.ingestion.coercion import coerce
from market_ingest.ingestion.projection import ProjectionSchema
from market_ingest.schemas.records import Record


@dataclass(frozen=True)
class ValidRecord:
    """A record whose fields have been coerced and whose required fields are all present."""

    schema: ProjectionSchema
    values: dict[str, Any]
    source: Record


@dataclass(frozen=True)
class Malformed:
    table: str
    missing: tuple[str, ...]
    reason: str = "missing_required_fields"


ValidationResult = Union[ValidRecord, Malformed]


def validate(record: Record, schema: ProjectionSchema | None) -> ValidationResult:
    if schema is None:
        return Malformed(table=record.table, missing=(), reason="unknown_table")

    values: dict[str, Any] = {}
    missing: list[str] = []
    for spec in schema.fields:
        value = coerce(record.get(spec.key), spec.type)
        if value is None and spec.required:
            missing.append(spec.key)
        values[spec.column] = value

    if missing:
        return Malformed(table=schema.table, missing=tuple(missing))
    return ValidRecord(schema=schema, values=values, source=record)
