from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base

PROVIDER_STRIPE = "STRIPE"
PROVIDER_GHL = "GOHIGHLEVEL"
PROVIDERS = (PROVIDER_STRIPE, PROVIDER_GHL)

STATUS_DISCONNECTED = "DISCONNECTED"
STATUS_CONNECTED = "CONNECTED"
STATUS_ERROR = "ERROR"


class Integration(Base):
    """One provider connection per (user, provider)."""

    __tablename__ = "integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    provider = Column(String(32), nullable=False)  # 'STRIPE', 'GOHIGHLEVEL'
    status = Column(String(32), nullable=False, default=STATUS_DISCONNECTED)

    # Credentials (encrypted at rest, opaque to the sync engine)
    encrypted_api_key = Column(Text, nullable=True)
    oauth_access_token = Column(Text, nullable=True)
    oauth_refresh_token = Column(Text, nullable=True)

    # Stripe account id or GoHighLevel location id
    account_id = Column(String(255), nullable=True, index=True)

    # Sync tracking
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_integrations_user_provider"),
    )
