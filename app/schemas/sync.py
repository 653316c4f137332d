from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, UUID4


class SyncResult(BaseModel):
    provider: str
    counts: Dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncEventOut(BaseModel):
    id: UUID4
    user_id: UUID4
    provider: str
    trigger: str
    status: str
    backfill_days: Optional[int] = None
    items_processed: Optional[int] = 0
    entity_counts: Optional[Dict[str, int]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class SyncTriggerResponse(BaseModel):
    status: str
    provider: str
    user_id: UUID4
    sync_type: str
