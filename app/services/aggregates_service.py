"""
Period aggregation.

Walks calendar buckets over an owner's mirrored data and upserts one metric
row per (owner, period type, period start). Subclasses pick the metric table,
the mirror columns that bound the walk, and how one bucket is computed.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.periods import PERIOD_TYPES, iter_periods
from app.services.upsert import upsert_many

logger = logging.getLogger(__name__)

BUCKET_KEY = ("user_id", "period_type", "period_start")


class AggregatesService:
    metric_model: Any = None
    family: str = ""

    def __init__(self, session_factory: async_sessionmaker, clock) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def timestamp_columns(self) -> Sequence[Any]:
        """Mirror columns whose earliest value starts the walk."""
        raise NotImplementedError

    async def compute_bucket(
        self, session: AsyncSession, user_id: UUID, start: dt.datetime, end: dt.datetime
    ) -> Dict[str, Any]:
        raise NotImplementedError

    async def earliest_timestamp(self, session: AsyncSession, user_id: UUID) -> Optional[dt.datetime]:
        earliest = None
        for column in self.timestamp_columns():
            model = column.class_
            result = await session.execute(
                select(func.min(column)).where(model.user_id == user_id)
            )
            value = result.scalar()
            if value is not None and (earliest is None or value < earliest):
                earliest = value
        return earliest

    async def calculate_metrics_for_user(self, user_id: UUID, period_type: str) -> int:
        """Recompute every bucket from the earliest mirrored record up to now."""
        if period_type not in PERIOD_TYPES:
            raise ValueError(f"Unknown period type: {period_type}")

        async with self.session_factory() as session:
            earliest = await self.earliest_timestamp(session, user_id)
            if earliest is None:
                logger.debug(f"No {self.family} data for {user_id}; nothing to aggregate")
                return 0

            written = 0
            for start, end in iter_periods(earliest, self.clock.now(), period_type):
                await self._write_bucket(session, user_id, start, end, period_type)
                written += 1
            await session.commit()

        logger.info(f"Calculated {written} {period_type} {self.family} buckets for {user_id}")
        return written

    async def calculate_metrics(
        self, user_id: UUID, start: dt.datetime, end: dt.datetime, period_type: str
    ) -> Dict[str, Any]:
        """Compute and upsert a single [start, end) bucket."""
        async with self.session_factory() as session:
            values = await self._write_bucket(session, user_id, start, end, period_type)
            await session.commit()
        return values

    async def recalculate_for_user(self, user_id: UUID) -> None:
        """Drop every bucket of this family for the owner and rebuild day, week and month."""
        async with self.session_factory() as session:
            await session.execute(
                delete(self.metric_model).where(self.metric_model.user_id == user_id)
            )
            await session.commit()

        for period_type in PERIOD_TYPES:
            await self.calculate_metrics_for_user(user_id, period_type)

    async def get_metrics(self, user_id: UUID, period_type: str, limit: int = 12) -> List[Any]:
        """Most recent buckets first."""
        model = self.metric_model
        async with self.session_factory() as session:
            result = await session.execute(
                select(model)
                .where(model.user_id == user_id, model.period_type == period_type)
                .order_by(model.period_start.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def _write_bucket(
        self,
        session: AsyncSession,
        user_id: UUID,
        start: dt.datetime,
        end: dt.datetime,
        period_type: str,
    ) -> Dict[str, Any]:
        values = await self.compute_bucket(session, user_id, start, end)
        row = {
            "user_id": user_id,
            "period_type": period_type,
            "period_start": start,
            "period_end": end,
            **values,
        }
        await upsert_many(session, self.metric_model, [row], BUCKET_KEY)
        return values
