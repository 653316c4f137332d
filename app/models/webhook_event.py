from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base

# Owner placeholder for events whose provider account maps to no user
UNKNOWN_OWNER_ID = uuid.UUID(int=0)


class WebhookEvent(Base):
    """Received provider webhook; (provider, external_id) is the replay guard."""

    __tablename__ = "webhook_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    external_id = Column(String(255), nullable=False)
    event_type = Column(String(128), nullable=False)
    payload = Column(JSON, nullable=True)

    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("provider", "external_id", name="uq_webhook_events_provider_external"),
        Index("ix_webhook_events_processed", "provider", "processed"),
    )
