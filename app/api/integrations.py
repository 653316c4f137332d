from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import get_container, resolve_provider
from app.container import ServiceContainer
from app.models.integration import PROVIDER_STRIPE

router = APIRouter(prefix="/api/integrations", tags=["Integrations"])


class ConnectRequest(BaseModel):
    api_key: str
    location_id: Optional[str] = None  # GoHighLevel only


@router.post("/{provider}/{user_id}/connect")
async def connect_integration(
    provider: str,
    user_id: UUID,
    request: ConnectRequest,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """Validate and store a provider API key, then backfill in the background."""
    resolved = resolve_provider(provider)
    try:
        if resolved == PROVIDER_STRIPE:
            return await container.connections.connect_stripe(user_id, request.api_key)
        return await container.connections.connect_ghl(
            user_id, request.api_key, request.location_id or ""
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{provider}/{user_id}/disconnect")
async def disconnect_integration(
    provider: str, user_id: UUID, container: ServiceContainer = Depends(get_container)
) -> Dict[str, Any]:
    return await container.connections.disconnect(user_id, resolve_provider(provider))


@router.get("/{provider}/{user_id}/status")
async def integration_status(
    provider: str, user_id: UUID, container: ServiceContainer = Depends(get_container)
) -> Dict[str, Any]:
    return await container.connections.get_status(user_id, resolve_provider(provider))
