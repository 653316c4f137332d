from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class CRMMetric(Base):
    """GoHighLevel aggregate for one [period_start, period_end) bucket."""

    __tablename__ = "crm_metrics"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    period_type = Column(String(10), nullable=False)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    new_leads = Column(Integer, nullable=False, default=0)
    total_leads = Column(Integer, nullable=False, default=0)
    appointments_booked = Column(Integer, nullable=False, default=0)
    appointments_showed = Column(Integer, nullable=False, default=0)
    appointments_no_show = Column(Integer, nullable=False, default=0)
    show_rate = Column(Float, nullable=False, default=0.0)  # 0-1 fraction
    opportunities_won = Column(Integer, nullable=False, default=0)
    opportunities_lost = Column(Integer, nullable=False, default=0)

    # Minor units
    pipeline_value = Column(BigInteger, nullable=False, default=0)
    won_value = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "period_type", "period_start", name="uq_crm_metrics_user_period"),
    )
