from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class HealthSignalOut(BaseModel):
    name: str
    status: str
    weight: int
    reason: str

    class Config:
        from_attributes = True


class HealthScoreResult(BaseModel):
    status: str
    reasons: List[str] = Field(default_factory=list)
    recommendation: str
    signals: List[HealthSignalOut] = Field(default_factory=list)
    period_type: str
    # Renormalized GREEN=2/YELLOW=1/RED=0 average; None when no signal was active
    weighted_score: Optional[float] = None
    computed_at: datetime
