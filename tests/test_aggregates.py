from __future__ import annotations

import datetime as dt
import uuid

import pytest
from sqlalchemy import func, select

from app.models.crm_metric import CRMMetric
from app.models.ghl_appointment import GHLAppointment
from app.models.ghl_contact import GHLContact
from app.models.ghl_opportunity import GHLOpportunity
from app.models.revenue_metric import RevenueMetric
from app.models.stripe_charge import StripeCharge
from app.models.stripe_customer import StripeCustomer
from app.models.stripe_subscription import StripeSubscription
from app.services.crm_aggregates_service import CRMAggregatesService
from app.services.periods import iter_periods, next_period_start, period_bounds, period_start
from app.services.revenue_aggregates_service import RevenueAggregatesService

# Week of Monday 2024-03-11; the clock sits on Friday 2024-03-15 12:00
WEEK_START = dt.datetime(2024, 3, 11)
WEEK_END = dt.datetime(2024, 3, 18)


def at(day: int, hour: int = 10) -> dt.datetime:
    return dt.datetime(2024, 3, day, hour, 0, 0)


class TestPeriods:
    def test_week_starts_on_monday(self):
        assert period_start(dt.datetime(2024, 3, 17, 23, 59), "week") == WEEK_START
        assert period_start(WEEK_START, "week") == WEEK_START

    def test_day_and_month(self):
        assert period_bounds(at(15, 12), "day") == (dt.datetime(2024, 3, 15), dt.datetime(2024, 3, 16))
        assert period_bounds(at(15, 12), "month") == (dt.datetime(2024, 3, 1), dt.datetime(2024, 4, 1))

    def test_month_rolls_over_year(self):
        assert next_period_start(dt.datetime(2023, 12, 1), "month") == dt.datetime(2024, 1, 1)

    def test_iter_periods_covers_earliest_through_now(self):
        buckets = list(iter_periods(at(4), at(15, 12), "week"))

        assert buckets == [
            (dt.datetime(2024, 3, 4), WEEK_START),
            (WEEK_START, WEEK_END),
        ]

    def test_unknown_period_type(self):
        with pytest.raises(ValueError):
            period_start(at(15), "quarter")


@pytest.fixture
def revenue_service(session_factory, clock):
    return RevenueAggregatesService(session_factory, clock)


@pytest.fixture
def crm_service(session_factory, clock):
    return CRMAggregatesService(session_factory, clock)


async def seed_stripe(session_factory, user_id):
    cus_a = StripeCustomer(id=uuid.uuid4(), user_id=user_id, external_id="cus_a", stripe_created_at=at(11))
    cus_b = StripeCustomer(id=uuid.uuid4(), user_id=user_id, external_id="cus_b", stripe_created_at=at(4))
    charges = [
        StripeCharge(
            user_id=user_id, external_id="ch_1", customer_id=cus_a.id, amount=10000,
            currency="usd", status="succeeded", stripe_created_at=at(12),
        ),
        StripeCharge(
            user_id=user_id, external_id="ch_2", customer_id=cus_a.id, amount=5000,
            currency="usd", status="succeeded", refunded=True, refund_amount=2000,
            stripe_created_at=at(13),
        ),
        StripeCharge(
            user_id=user_id, external_id="ch_3", customer_id=cus_b.id, amount=3000,
            currency="usd", status="failed", stripe_created_at=at(14),
        ),
        # previous week
        StripeCharge(
            user_id=user_id, external_id="ch_0", customer_id=cus_b.id, amount=7000,
            currency="usd", status="succeeded", stripe_created_at=at(5),
        ),
    ]
    subscriptions = [
        StripeSubscription(
            user_id=user_id, external_id="sub_active", customer_id=cus_a.id,
            status="active", stripe_created_at=at(11),
        ),
        StripeSubscription(
            user_id=user_id, external_id="sub_later", customer_id=cus_b.id,
            status="canceled", canceled_at=dt.datetime(2024, 3, 20), stripe_created_at=at(4),
        ),
        StripeSubscription(
            user_id=user_id, external_id="sub_gone", customer_id=cus_b.id,
            status="canceled", canceled_at=at(12), stripe_created_at=at(4),
        ),
    ]
    async with session_factory() as session:
        session.add_all([cus_a, cus_b])
        await session.flush()
        session.add_all(charges + subscriptions)
        await session.commit()


async def seed_ghl(session_factory, user_id):
    contacts = [
        GHLContact(id=uuid.uuid4(), user_id=user_id, external_id=f"c{day}", ghl_created_at=at(day))
        for day in (5, 12, 13)
    ]
    appointments = [
        GHLAppointment(
            user_id=user_id, external_id=f"a{i}", status=status,
            start_time=at(12 + i % 3), ghl_created_at=at(11),
        )
        for i, status in enumerate(("showed", "completed", "no-show", "confirmed"))
    ]
    opportunities = [
        GHLOpportunity(
            user_id=user_id, external_id="o_won", status="won", monetary_value=100000,
            ghl_created_at=at(5), closed_at=at(12),
        ),
        GHLOpportunity(
            user_id=user_id, external_id="o_won_old", status="won", monetary_value=50000,
            ghl_created_at=at(4), closed_at=at(6),
        ),
        GHLOpportunity(
            user_id=user_id, external_id="o_lost", status="lost", monetary_value=20000,
            ghl_created_at=at(5), closed_at=at(13),
        ),
        GHLOpportunity(
            user_id=user_id, external_id="o_open_1", status="open", monetary_value=70000,
            ghl_created_at=at(6),
        ),
        GHLOpportunity(
            user_id=user_id, external_id="o_open_2", status="open", monetary_value=30000,
            ghl_created_at=at(13),
        ),
    ]
    async with session_factory() as session:
        session.add_all(contacts + appointments + opportunities)
        await session.commit()


class TestRevenueAggregates:
    """Stripe mirror rolled up into revenue buckets."""

    @pytest.mark.asyncio
    async def test_bucket_values(self, revenue_service, session_factory, user_id):
        await seed_stripe(session_factory, user_id)

        values = await revenue_service.calculate_metrics(user_id, WEEK_START, WEEK_END, "week")

        assert values == {
            "total_revenue": 15000,
            "refunded_revenue": 2000,
            "net_revenue": 13000,
            "charge_count": 3,
            "refund_count": 1,
            "customer_count": 2,
            "new_customer_count": 1,
            "active_subscriptions": 2,
        }

    @pytest.mark.asyncio
    async def test_walks_every_bucket_since_earliest_record(
        self, revenue_service, session_factory, user_id
    ):
        await seed_stripe(session_factory, user_id)

        written = await revenue_service.calculate_metrics_for_user(user_id, "week")
        metrics = await revenue_service.get_metrics(user_id, "week")

        assert written == 2
        assert [m.period_start for m in metrics] == [WEEK_START, dt.datetime(2024, 3, 4)]
        assert metrics[1].total_revenue == 7000
        assert metrics[1].period_end == WEEK_START

    @pytest.mark.asyncio
    async def test_recompute_is_idempotent(self, revenue_service, session_factory, user_id):
        await seed_stripe(session_factory, user_id)
        await revenue_service.calculate_metrics_for_user(user_id, "week")

        async with session_factory() as session:
            session.add(
                StripeCharge(
                    user_id=user_id, external_id="ch_4", amount=1000, currency="usd",
                    status="succeeded", stripe_created_at=at(15),
                )
            )
            await session.commit()
        await revenue_service.calculate_metrics_for_user(user_id, "week")

        async with session_factory() as session:
            count = (await session.execute(select(func.count(RevenueMetric.id)))).scalar()
        [current, _] = await revenue_service.get_metrics(user_id, "week")
        assert count == 2
        assert current.total_revenue == 16000

    @pytest.mark.asyncio
    async def test_no_data_writes_nothing(self, revenue_service, user_id):
        assert await revenue_service.calculate_metrics_for_user(user_id, "month") == 0
        assert await revenue_service.get_metrics(user_id, "month") == []

    @pytest.mark.asyncio
    async def test_recalculate_rebuilds_all_period_types(
        self, revenue_service, session_factory, user_id
    ):
        await seed_stripe(session_factory, user_id)
        await revenue_service.calculate_metrics(
            user_id, dt.datetime(2023, 1, 2), dt.datetime(2023, 1, 9), "week"
        )

        await revenue_service.recalculate_for_user(user_id)

        weeks = await revenue_service.get_metrics(user_id, "week", limit=50)
        days = await revenue_service.get_metrics(user_id, "day", limit=50)
        months = await revenue_service.get_metrics(user_id, "month")
        # the stale 2023 bucket is gone
        assert [w.period_start for w in weeks] == [WEEK_START, dt.datetime(2024, 3, 4)]
        assert len(days) == 12
        assert [m.period_start for m in months] == [dt.datetime(2024, 3, 1)]
        assert months[0].total_revenue == 22000

    @pytest.mark.asyncio
    async def test_other_owner_data_is_ignored(self, revenue_service, session_factory, user_id):
        await seed_stripe(session_factory, uuid.uuid4())

        values = await revenue_service.calculate_metrics(user_id, WEEK_START, WEEK_END, "week")

        assert values["total_revenue"] == 0
        assert values["active_subscriptions"] == 0


class TestCRMAggregates:
    """GoHighLevel mirror rolled up into CRM buckets."""

    @pytest.mark.asyncio
    async def test_bucket_values(self, crm_service, session_factory, user_id):
        await seed_ghl(session_factory, user_id)

        values = await crm_service.calculate_metrics(user_id, WEEK_START, WEEK_END, "week")

        assert values == {
            "new_leads": 2,
            "total_leads": 3,
            "appointments_booked": 4,
            "appointments_showed": 2,
            "appointments_no_show": 1,
            "show_rate": 0.5,
            "opportunities_won": 1,
            "opportunities_lost": 1,
            "pipeline_value": 100000,
            "won_value": 100000,
        }

    @pytest.mark.asyncio
    async def test_empty_bucket_has_zero_show_rate(self, crm_service, session_factory, user_id):
        await seed_ghl(session_factory, user_id)

        values = await crm_service.calculate_metrics(
            user_id, dt.datetime(2024, 3, 4), WEEK_START, "week"
        )

        assert values["appointments_booked"] == 0
        assert values["show_rate"] == 0.0
        assert values["new_leads"] == 1
        assert values["total_leads"] == 1
        assert values["won_value"] == 50000

    @pytest.mark.asyncio
    async def test_month_bucket_is_stored(self, crm_service, session_factory, user_id):
        await seed_ghl(session_factory, user_id)

        written = await crm_service.calculate_metrics_for_user(user_id, "month")

        async with session_factory() as session:
            [metric] = (await session.execute(select(CRMMetric))).scalars().all()
        assert written == 1
        assert metric.period_start == dt.datetime(2024, 3, 1)
        assert metric.period_end == dt.datetime(2024, 4, 1)
        assert metric.new_leads == 3
        assert metric.opportunities_won == 2
