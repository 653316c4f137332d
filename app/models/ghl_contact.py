from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.db import Base


class GHLContact(Base):
    __tablename__ = "ghl_contacts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    external_id = Column(String(255), nullable=False)

    email = Column(String(320), nullable=True)
    phone = Column(String(64), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    source = Column(String(255), nullable=True)
    ghl_created_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uq_ghl_contacts_user_external"),
        Index("ix_ghl_contacts_user_created", "user_id", "ghl_created_at"),
    )
