from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, UUID4

PeriodType = Literal["day", "week", "month"]


class MetricBucketBase(BaseModel):
    user_id: UUID4
    period_type: str
    period_start: datetime
    period_end: datetime


class RevenueMetricOut(MetricBucketBase):
    total_revenue: int
    refunded_revenue: int
    net_revenue: int
    charge_count: int
    refund_count: int
    customer_count: int
    new_customer_count: int
    active_subscriptions: int

    class Config:
        from_attributes = True


class CRMMetricOut(MetricBucketBase):
    new_leads: int
    total_leads: int
    appointments_booked: int
    appointments_showed: int
    appointments_no_show: int
    show_rate: float
    opportunities_won: int
    opportunities_lost: int
    pipeline_value: int
    won_value: int

    class Config:
        from_attributes = True
