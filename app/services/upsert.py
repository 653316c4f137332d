from __future__ import annotations

import uuid
from typing import Dict, Iterable, List, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func


def dialect_insert(session: AsyncSession, model):
    """INSERT construct of the session's backend, so ON CONFLICT is available."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)


async def upsert_many(
    session: AsyncSession,
    model,
    rows: Iterable[dict],
    conflict_columns: Sequence[str],
    insert_only: Sequence[str] = (),
) -> int:
    """Bulk upsert rows keyed on a natural-key unique constraint.

    Existing rows keep their primary key and any ``insert_only`` column;
    every other supplied column is overwritten. Does not commit.
    """
    # One statement may not touch the same conflict key twice; last row wins
    deduped: Dict[tuple, Dict] = {}
    for row in rows:
        deduped[tuple(row[name] for name in conflict_columns)] = dict(row)
    values: List[Dict] = list(deduped.values())
    if not values:
        return 0
    for row in values:
        row.setdefault("id", uuid.uuid4())

    stmt = dialect_insert(session, model).values(values)
    update_cols = {
        name: stmt.excluded[name]
        for name in values[0]
        if name != "id" and name not in conflict_columns and name not in insert_only
    }
    if "updated_at" in model.__table__.c:
        update_cols["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=update_cols)

    await session.execute(stmt)
    return len(values)
