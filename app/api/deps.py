from __future__ import annotations

from fastapi import HTTPException, Request

from app.container import ServiceContainer
from app.models.integration import PROVIDER_GHL, PROVIDER_STRIPE

PROVIDER_ALIASES = {
    "stripe": PROVIDER_STRIPE,
    "gohighlevel": PROVIDER_GHL,
    "ghl": PROVIDER_GHL,
}


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the process-wide service container."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Services not initialised")
    return container


def resolve_provider(provider: str) -> str:
    """Path segment (``stripe``, ``gohighlevel``) to the stored provider name."""
    resolved = PROVIDER_ALIASES.get(provider.lower())
    if resolved is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    return resolved
