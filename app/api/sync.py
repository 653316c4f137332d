from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query

from app.api.deps import get_container, resolve_provider
from app.container import ServiceContainer
from app.schemas.sync import SyncEventOut
from app.services.sync_service import get_sync_events

router = APIRouter(prefix="/api/sync", tags=["Sync"])


@router.get("/status")
async def get_sync_status(
    user_id: Optional[UUID] = Query(None, description="Filter by user ID"),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Get current sync status for all integrations or a specific user."""
    return await container.scheduler.get_sync_status(user_id)


@router.get("/history/{user_id}", response_model=List[SyncEventOut])
async def get_sync_history(
    user_id: UUID = Path(..., description="User ID"),
    provider: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    container: ServiceContainer = Depends(get_container),
):
    """Recent sync runs for a user, newest first."""
    async with container.session_factory() as session:
        return await get_sync_events(
            session,
            user_id=user_id,
            provider=resolve_provider(provider) if provider else None,
            limit=limit,
        )


@router.post("/start")
async def start_scheduler(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Start the daily sync scheduler."""
    await container.scheduler.start()
    return {"success": True, "message": "Scheduler started"}


@router.post("/stop")
async def stop_scheduler(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Stop the daily sync scheduler."""
    await container.scheduler.stop()
    return {"success": True, "message": "Scheduler stopped"}


@router.post("/{provider}/{user_id}")
async def trigger_sync(
    provider: str,
    user_id: UUID,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Incremental sync for one user, run after the response is sent."""
    resolved = resolve_provider(provider)
    background_tasks.add_task(
        container.scheduler.trigger_manual_sync, user_id, resolved, "incremental"
    )
    return {"success": True, "message": f"Sync triggered for user {user_id}, {resolved}"}


@router.post("/{provider}/{user_id}/backfill")
async def trigger_backfill(
    provider: str,
    user_id: UUID,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """90 day backfill for one user, run after the response is sent."""
    resolved = resolve_provider(provider)
    background_tasks.add_task(container.scheduler.trigger_manual_sync, user_id, resolved, "full")
    return {"success": True, "message": f"Backfill triggered for user {user_id}, {resolved}"}
