from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Sequence
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.crm_metric import CRMMetric
from app.models.ghl_appointment import GHLAppointment
from app.models.ghl_contact import GHLContact
from app.models.ghl_opportunity import GHLOpportunity
from app.services.aggregates_service import AggregatesService

SHOWED_STATUSES = ("completed", "done", "showed")
NO_SHOW_STATUSES = ("no-show", "cancelled", "missed")


class CRMAggregatesService(AggregatesService):
    """GoHighLevel buckets: leads, appointments and opportunities."""

    metric_model = CRMMetric
    family = "crm"

    def timestamp_columns(self) -> Sequence[Any]:
        return (
            GHLContact.ghl_created_at,
            GHLOpportunity.ghl_created_at,
            GHLAppointment.ghl_created_at,
            GHLAppointment.start_time,
        )

    async def compute_bucket(
        self, session: AsyncSession, user_id: UUID, start: dt.datetime, end: dt.datetime
    ) -> Dict[str, Any]:
        leads = await session.execute(
            select(
                func.count(
                    case(
                        (
                            (GHLContact.ghl_created_at >= start)
                            & (GHLContact.ghl_created_at < end),
                            1,
                        )
                    )
                ),
                func.count(GHLContact.id),
            ).where(GHLContact.user_id == user_id, GHLContact.ghl_created_at < end)
        )
        new_leads, total_leads = leads.one()

        appointments = await session.execute(
            select(
                func.count(GHLAppointment.id),
                func.count(case((GHLAppointment.status.in_(SHOWED_STATUSES), 1))),
                func.count(case((GHLAppointment.status.in_(NO_SHOW_STATUSES), 1))),
            ).where(
                GHLAppointment.user_id == user_id,
                GHLAppointment.start_time >= start,
                GHLAppointment.start_time < end,
            )
        )
        booked, showed, no_show = appointments.one()

        closed = await session.execute(
            select(
                func.count(case((GHLOpportunity.status == "won", 1))),
                func.count(case((GHLOpportunity.status == "lost", 1))),
                func.coalesce(
                    func.sum(
                        case(
                            (GHLOpportunity.status == "won", GHLOpportunity.monetary_value),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(
                GHLOpportunity.user_id == user_id,
                GHLOpportunity.closed_at >= start,
                GHLOpportunity.closed_at < end,
            )
        )
        won, lost, won_value = closed.one()

        # Point-in-time snapshot, not bounded by the bucket
        pipeline = await session.execute(
            select(func.coalesce(func.sum(GHLOpportunity.monetary_value), 0)).where(
                GHLOpportunity.user_id == user_id,
                GHLOpportunity.status == "open",
            )
        )

        booked = int(booked)
        showed = int(showed)
        return {
            "new_leads": int(new_leads),
            "total_leads": int(total_leads),
            "appointments_booked": booked,
            "appointments_showed": showed,
            "appointments_no_show": int(no_show),
            "show_rate": showed / booked if booked else 0.0,
            "opportunities_won": int(won),
            "opportunities_lost": int(lost),
            "pipeline_value": int(pipeline.scalar() or 0),
            "won_value": int(won_value or 0),
        }
