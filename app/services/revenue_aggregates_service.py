from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Sequence
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.revenue_metric import RevenueMetric
from app.models.stripe_charge import StripeCharge
from app.models.stripe_customer import StripeCustomer
from app.models.stripe_invoice import StripeInvoice
from app.models.stripe_subscription import StripeSubscription
from app.services.aggregates_service import AggregatesService


class RevenueAggregatesService(AggregatesService):
    """Stripe buckets: revenue, refunds, customers and active subscriptions."""

    metric_model = RevenueMetric
    family = "revenue"

    def timestamp_columns(self) -> Sequence[Any]:
        return (
            StripeCharge.stripe_created_at,
            StripeCustomer.stripe_created_at,
            StripeInvoice.stripe_created_at,
            StripeSubscription.stripe_created_at,
        )

    async def compute_bucket(
        self, session: AsyncSession, user_id: UUID, start: dt.datetime, end: dt.datetime
    ) -> Dict[str, Any]:
        charges = await session.execute(
            select(
                func.count(StripeCharge.id),
                func.coalesce(
                    func.sum(
                        case((StripeCharge.status == "succeeded", StripeCharge.amount), else_=0)
                    ),
                    0,
                ),
                # refunds count regardless of the charge's status
                func.coalesce(func.sum(StripeCharge.refund_amount), 0),
                func.count(case((StripeCharge.refund_amount > 0, 1))),
                func.count(StripeCharge.customer_id.distinct()),
            ).where(
                StripeCharge.user_id == user_id,
                StripeCharge.stripe_created_at >= start,
                StripeCharge.stripe_created_at < end,
            )
        )
        charge_count, total, refunded, refund_count, customer_count = charges.one()

        new_customers = await session.execute(
            select(func.count(StripeCustomer.id)).where(
                StripeCustomer.user_id == user_id,
                StripeCustomer.stripe_created_at >= start,
                StripeCustomer.stripe_created_at < end,
            )
        )

        # Still active as of the end of the bucket
        active = await session.execute(
            select(func.count(StripeSubscription.id)).where(
                StripeSubscription.user_id == user_id,
                or_(
                    StripeSubscription.status == "active",
                    and_(
                        StripeSubscription.status == "canceled",
                        StripeSubscription.canceled_at >= end,
                    ),
                ),
            )
        )

        total_revenue = int(total)
        refunded_revenue = int(refunded)
        return {
            "total_revenue": total_revenue,
            "refunded_revenue": refunded_revenue,
            "net_revenue": total_revenue - refunded_revenue,
            "charge_count": int(charge_count),
            "refund_count": int(refund_count),
            "customer_count": int(customer_count),
            "new_customer_count": int(new_customers.scalar() or 0),
            "active_subscriptions": int(active.scalar() or 0),
        }
