from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from app.api.deps import get_container, resolve_provider
from app.container import ServiceContainer
from app.models.integration import PROVIDER_STRIPE
from app.services.errors import WebhookVerificationError

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, bool]:
    """Stripe event delivery; the raw body is needed for signature verification."""
    body = await request.body()
    try:
        return await container.stripe_webhooks.handle_webhook(body, stripe_signature)
    except WebhookVerificationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/gohighlevel")
async def gohighlevel_webhook(
    request: Request,
    x_ghl_signature: Optional[str] = Header(None),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, bool]:
    """GoHighLevel event delivery (HMAC-SHA256 of the raw body)."""
    body = await request.body()
    try:
        return await container.ghl_webhooks.handle_webhook(body, x_ghl_signature)
    except WebhookVerificationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{provider}/unprocessed")
async def list_unprocessed_events(
    provider: str,
    limit: int = Query(100, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
) -> List[Dict[str, Any]]:
    """Events stored without a resolvable owner."""
    gateway = (
        container.stripe_webhooks
        if resolve_provider(provider) == PROVIDER_STRIPE
        else container.ghl_webhooks
    )
    events = await gateway.list_unprocessed(limit)
    return [
        {
            "id": str(event.id),
            "external_id": event.external_id,
            "event_type": event.event_type,
            "created_at": event.created_at.isoformat() if event.created_at else None,
        }
        for event in events
    ]
