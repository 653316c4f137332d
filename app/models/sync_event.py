from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class SyncEvent(Base):
    __tablename__ = "sync_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    provider = Column(String(32), nullable=False)

    # Event details
    trigger = Column(String(32), nullable=False)  # 'schedule', 'webhook', 'manual', 'backfill'
    status = Column(String(32), nullable=False)  # 'running', 'success', 'failed'
    backfill_days = Column(Integer, nullable=True)

    # Change tracking
    items_processed = Column(Integer, default=0)
    entity_counts = Column(JSON, nullable=True)  # {"customers": 12, ...}

    # Timing
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)

    # Error tracking
    error_kind = Column(String(32), nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("ix_sync_events_user_provider", "user_id", "provider"),)
