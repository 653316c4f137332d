from __future__ import annotations

from typing import Any, Dict, List, Union
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from app.api.deps import get_container
from app.container import ServiceContainer
from app.schemas.metrics import CRMMetricOut, PeriodType, RevenueMetricOut

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])

SCHEMAS = {"revenue": RevenueMetricOut, "crm": CRMMetricOut}


def _aggregates(family: str, container: ServiceContainer):
    if family == "revenue":
        return container.revenue_aggregates
    if family == "crm":
        return container.crm_aggregates
    raise HTTPException(status_code=404, detail=f"Unknown metric family: {family}")


@router.get("/{family}/{user_id}")
async def get_metrics(
    family: str,
    user_id: UUID,
    period_type: PeriodType = Query("week"),
    limit: int = Query(12, ge=1, le=366),
    container: ServiceContainer = Depends(get_container),
) -> List[Union[RevenueMetricOut, CRMMetricOut]]:
    """Most recent aggregate buckets, newest first."""
    service = _aggregates(family, container)
    rows = await service.get_metrics(user_id, period_type, limit)
    schema = SCHEMAS[family]
    return [schema.model_validate(row) for row in rows]


@router.post("/{family}/{user_id}/recalculate")
async def recalculate_metrics(
    family: str,
    user_id: UUID,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Delete and rebuild every bucket of the family, after the response is sent."""
    service = _aggregates(family, container)
    background_tasks.add_task(service.recalculate_for_user, user_id)
    return {"success": True, "message": f"Recalculating {family} metrics for user {user_id}"}
