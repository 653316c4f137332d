from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class GHLAppointment(Base):
    __tablename__ = "ghl_appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)
    contact_id = Column(UUID(as_uuid=True), ForeignKey("ghl_contacts.id"), nullable=True)

    title = Column(String(255), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    status = Column(String(32), nullable=False)
    ghl_created_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_ghl_appointments_user_external"),
    )
