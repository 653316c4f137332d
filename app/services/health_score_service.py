from __future__ import annotations

import datetime as dt
import logging
from fractions import Fraction
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.crm_metric import CRMMetric
from app.models.revenue_metric import RevenueMetric
from app.schemas.health import HealthScoreResult, HealthSignalOut
from app.services.health_signals import (
    GREEN,
    RED,
    UNKNOWN,
    YELLOW,
    CRMMetricInput,
    HealthScoreInput,
    HealthSignal,
    MetricPeriod,
    RevenueMetricInput,
    evaluate_signals,
)

logger = logging.getLogger(__name__)

GREEN_THRESHOLD = Fraction(8, 5)
YELLOW_THRESHOLD = Fraction(4, 5)

CONNECT_MESSAGE = "Connect Stripe or GoHighLevel to start tracking your business health."
NO_HISTORY_MESSAGE = "Not enough history yet. Check back next week."
NO_SIGNALS_MESSAGE = "Connect an integration to get started."
HEALTHY_MESSAGE = "Things look good. Stay consistent and keep nurturing your pipeline."

# signal name -> (RED phrasing, YELLOW phrasing)
RECOMMENDATIONS = {
    "Revenue": (
        "Review your pricing or client retention. A 30-day revenue recovery plan may help.",
        "Keep an eye on revenue this week. Make sure your pipeline is healthy.",
    ),
    "Leads": (
        "Lead generation needs attention. Consider outreach or referral campaigns this week.",
        "Leads are slowing. Review your top-of-funnel activities.",
    ),
    "Show Rate": (
        "Too many no-shows. Try sending reminders 24 hours before appointments.",
        "Show rate could improve. Follow up with unconfirmed bookings.",
    ),
    "Refund Rate": (
        "High refunds need investigation. Review recent client complaints.",
        "Refund rate is slightly elevated. Check if a specific service is underperforming.",
    ),
}


def weighted_score(signals: List[HealthSignal]) -> Fraction:
    """Average status score with weights renormalized over the active signals."""
    total_weight = sum(s.weight for s in signals)
    return Fraction(sum(s.score * s.weight for s in signals), total_weight)


def overall_status(score: Fraction) -> str:
    if score >= GREEN_THRESHOLD:
        return GREEN
    if score >= YELLOW_THRESHOLD:
        return YELLOW
    return RED


def recommendation_for(signals: List[HealthSignal]) -> str:
    worst = signals[0]
    for signal in signals[1:]:
        # strict comparison: the earliest of equally bad signals wins
        if signal.score < worst.score:
            worst = signal

    if worst.status == GREEN:
        return HEALTHY_MESSAGE
    urgent, cautionary = RECOMMENDATIONS.get(
        worst.name,
        ("Monitor your key metrics and take action where needed.",) * 2,
    )
    return urgent if worst.status == RED else cautionary


def compute_health_score(
    data: HealthScoreInput, computed_at: Optional[dt.datetime] = None
) -> HealthScoreResult:
    """Score the current bucket against the previous one. Pure and deterministic."""
    if computed_at is None:
        computed_at = dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)

    def unknown(message: str) -> HealthScoreResult:
        return HealthScoreResult(
            status=UNKNOWN,
            reasons=[],
            recommendation=message,
            signals=[],
            period_type=data.period_type,
            computed_at=computed_at,
        )

    if data.current.empty:
        return unknown(CONNECT_MESSAGE)
    if data.previous.empty:
        return unknown(NO_HISTORY_MESSAGE)

    signals = evaluate_signals(data)
    if not signals:
        return unknown(NO_SIGNALS_MESSAGE)

    score = weighted_score(signals)
    reasons = [s.reason for s in signals if s.status != GREEN][:2]
    if not reasons:
        reasons = ["All metrics healthy"]

    return HealthScoreResult(
        status=overall_status(score),
        reasons=reasons,
        recommendation=recommendation_for(signals),
        signals=[HealthSignalOut.model_validate(s) for s in signals],
        period_type=data.period_type,
        weighted_score=float(score),
        computed_at=computed_at,
    )


def revenue_input(row: Optional[RevenueMetric]) -> Optional[RevenueMetricInput]:
    if row is None:
        return None
    return RevenueMetricInput(
        net_revenue=row.net_revenue,
        total_revenue=row.total_revenue,
        refunded_revenue=row.refunded_revenue,
        charge_count=row.charge_count,
        refund_count=row.refund_count,
        customer_count=row.customer_count,
        new_customer_count=row.new_customer_count,
        active_subscriptions=row.active_subscriptions,
    )


def crm_input(row: Optional[CRMMetric]) -> Optional[CRMMetricInput]:
    if row is None:
        return None
    return CRMMetricInput(
        new_leads=row.new_leads,
        appointments_booked=row.appointments_booked,
        appointments_showed=row.appointments_showed,
        show_rate=row.show_rate,
        opportunities_won=row.opportunities_won,
        opportunities_lost=row.opportunities_lost,
    )


class HealthScoreService:
    """Loads the two most recent buckets for an owner and scores them."""

    def __init__(self, session_factory: async_sessionmaker, clock) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def get_health_score(self, user_id: UUID, period_type: str = "week") -> HealthScoreResult:
        if period_type not in ("week", "month"):
            raise ValueError(f"Unsupported period type for health score: {period_type}")

        async with self.session_factory() as session:
            revenue = await self._latest(session, RevenueMetric, user_id, period_type)
            crm = await self._latest(session, CRMMetric, user_id, period_type)

        data = HealthScoreInput(
            period_type=period_type,
            current=MetricPeriod(
                revenue=revenue_input(revenue[0] if revenue else None),
                crm=crm_input(crm[0] if crm else None),
            ),
            previous=MetricPeriod(
                revenue=revenue_input(revenue[1] if len(revenue) > 1 else None),
                crm=crm_input(crm[1] if len(crm) > 1 else None),
            ),
        )
        result = compute_health_score(data, computed_at=self.clock.now())
        logger.info(f"Health score for {user_id} ({period_type}): {result.status}")
        return result

    @staticmethod
    async def _latest(session, model, user_id: UUID, period_type: str) -> list:
        stmt = (
            select(model)
            .where(model.user_id == user_id, model.period_type == period_type)
            .order_by(model.period_start.desc())
            .limit(2)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
