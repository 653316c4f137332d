from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class StripeCharge(Base):
    __tablename__ = "stripe_charges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("stripe_customers.id"), nullable=True)

    # Minor units (cents)
    amount = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(10), nullable=False)
    status = Column(String(32), nullable=False)
    refunded = Column(Boolean, nullable=False, default=False)
    refund_amount = Column(BigInteger, nullable=False, default=0)
    stripe_created_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_stripe_charges_user_external"),
        Index("ix_stripe_charges_user_created", "user_id", "stripe_created_at"),
    )
