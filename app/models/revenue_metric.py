from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class RevenueMetric(Base):
    """Stripe aggregate for one [period_start, period_end) bucket."""

    __tablename__ = "revenue_metrics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    period_type = Column(String(10), nullable=False)  # 'day', 'week', 'month'
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    # Minor units
    total_revenue = Column(BigInteger, nullable=False, default=0)
    refunded_revenue = Column(BigInteger, nullable=False, default=0)
    net_revenue = Column(BigInteger, nullable=False, default=0)

    charge_count = Column(Integer, nullable=False, default=0)
    refund_count = Column(Integer, nullable=False, default=0)
    customer_count = Column(Integer, nullable=False, default=0)
    new_customer_count = Column(Integer, nullable=False, default=0)
    active_subscriptions = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "user_id", "period_type", "period_start", name="uq_revenue_metrics_user_period"
        ),
    )
