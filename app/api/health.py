from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_container, resolve_provider
from app.container import ServiceContainer
from app.models.integration import PROVIDERS

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/")
@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "message": "Service is running"}


@router.get("/connections/{user_id}")
async def test_connections(user_id: UUID, container: ServiceContainer = Depends(get_container)):
    """Check every stored provider credential for a user."""
    results = [
        (await container.connections.test_connection(user_id, provider)).to_dict()
        for provider in PROVIDERS
    ]
    successful = sum(1 for r in results if r["success"])
    return JSONResponse(
        content={
            "total_tests": len(results),
            "successful_tests": successful,
            "failed_tests": len(results) - successful,
            "results": results,
        },
        status_code=200 if successful == len(results) else 503,
    )


@router.get("/connections/{user_id}/{provider}")
async def test_provider_connection(
    user_id: UUID, provider: str, container: ServiceContainer = Depends(get_container)
):
    """Check one provider credential."""
    result = await container.connections.test_connection(user_id, resolve_provider(provider))
    return JSONResponse(content=result.to_dict(), status_code=200 if result.success else 503)
