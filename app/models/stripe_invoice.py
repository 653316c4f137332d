from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class StripeInvoice(Base):
    __tablename__ = "stripe_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("stripe_customers.id"), nullable=True)

    amount_due = Column(BigInteger, nullable=False, default=0)
    amount_paid = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(10), nullable=False)
    status = Column(String(32), nullable=False, default="unknown")
    stripe_created_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_stripe_invoices_user_external"),
    )
