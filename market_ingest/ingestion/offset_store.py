"""
Per-stream offset persistence.
All functions take an open connection so the coordinator can write the offset inside
the same transaction as the batch rows.
"""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from market_ingest.core.database import dialect_insert
from market_ingest.db.models import StreamOffset

_offsets = StreamOffset.__table__


def get(conn: Connection, stream_name: str) -> int | None:
    row = conn.execute(
        select(_offsets.c.offset).where(_offsets.c.stream_name == stream_name)
    ).first()
    if row is None or row[0] is None:
        return None
    return int(row[0])


def upsert(conn: Connection, stream_name: str, offset: int) -> None:
    stmt = dialect_insert(conn.dialect.name)(_offsets).values(stream_name=stream_name, offset=offset)
    stmt = stmt.on_conflict_do_update(
        index_elements=[_offsets.c.stream_name],
        set_={"offset": stmt.excluded["offset"], "updated_at": func.now()},
    )
    conn.execute(stmt)


def list_offsets(conn: Connection) -> list[dict]:
    rows = conn.execute(
        select(_offsets.c.stream_name, _offsets.c.offset, _offsets.c.updated_at).order_by(_offsets.c.stream_name)
    ).all()
    return [
        {"stream_name": name, "offset": int(offset), "updated_at": updated_at}
        for name, offset, updated_at in rows
    ]
