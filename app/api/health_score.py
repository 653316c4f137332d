from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_container
from app.container import ServiceContainer
from app.schemas.health import HealthScoreResult

router = APIRouter(prefix="/api/health-score", tags=["Health Score"])


@router.get("/{user_id}", response_model=HealthScoreResult)
async def get_health_score(
    user_id: UUID,
    period_type: Literal["week", "month"] = Query("week"),
    container: ServiceContainer = Depends(get_container),
) -> HealthScoreResult:
    """Business health from the two most recent buckets of the given period type."""
    return await container.health_scores.get_health_score(user_id, period_type)
