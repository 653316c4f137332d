from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import Settings
from app.models.integration import PROVIDER_GHL, PROVIDER_STRIPE, STATUS_DISCONNECTED
from app.services.background_tasks import BackgroundTaskRunner
from app.services.credential_store import CredentialStore, get_integration
from app.services.errors import ProviderRequestError, SyncError
from app.services.ghl_client import GHLListAPI
from app.services.http_client import ResilientHttpClient
from app.services.stripe_client import StripeListAPI

logger = logging.getLogger(__name__)


class ConnectionTestResult:
    """Result of probing a stored provider credential."""

    def __init__(self, provider: str, success: bool, response_time: float, error: Optional[str] = None):
        self.provider = provider
        self.success = success
        self.response_time = response_time
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "success": self.success,
            "response_time": self.response_time,
            "error": self.error,
        }


class ConnectionService:
    """Connects and disconnects provider accounts for a user."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        credential_store: CredentialStore,
        http_client: ResilientHttpClient,
        task_runner: BackgroundTaskRunner,
        sync_services: Dict[str, Any],
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.credential_store = credential_store
        self.http_client = http_client
        self.task_runner = task_runner
        self.sync_services = sync_services
        self.settings = settings

    async def connect_stripe(self, user_id: UUID, api_key: str) -> Dict[str, Any]:
        """Validate a secret key against the Stripe account endpoint and store it."""
        api = StripeListAPI(self.http_client, api_key, self.settings.stripe_api_base)
        try:
            account = await api.retrieve_account()
        except ProviderRequestError as e:
            raise ValueError(f"Stripe rejected the API key: {e.message}") from e

        account_id = account.get("id") if isinstance(account, dict) else None
        await self.credential_store.set(user_id, PROVIDER_STRIPE, api_key, account_id)
        logger.info(f"Connected Stripe account {account_id} for {user_id}")
        self._schedule_backfill(user_id, PROVIDER_STRIPE)
        return await self.get_status(user_id, PROVIDER_STRIPE)

    async def connect_ghl(self, user_id: UUID, api_key: str, location_id: str) -> Dict[str, Any]:
        """Validate a GoHighLevel key by searching locations, then store it with the location."""
        if not location_id:
            raise ValueError("GoHighLevel location id is required")
        api = GHLListAPI(self.http_client, api_key, location_id, self.settings.ghl_api_base)
        try:
            await api.search_locations()
        except ProviderRequestError as e:
            raise ValueError(f"GoHighLevel rejected the API key: {e.message}") from e

        await self.credential_store.set(user_id, PROVIDER_GHL, api_key, location_id)
        logger.info(f"Connected GoHighLevel location {location_id} for {user_id}")
        self._schedule_backfill(user_id, PROVIDER_GHL)
        return await self.get_status(user_id, PROVIDER_GHL)

    async def disconnect(self, user_id: UUID, provider: str) -> Dict[str, Any]:
        await self.credential_store.clear(user_id, provider)
        logger.info(f"Disconnected {provider} for {user_id}")
        return await self.get_status(user_id, provider)

    async def get_status(self, user_id: UUID, provider: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            integration = await get_integration(session, user_id, provider)
        if integration is None:
            return {
                "provider": provider,
                "status": STATUS_DISCONNECTED,
                "account_id": None,
                "last_sync_at": None,
                "last_sync_error": None,
            }
        return {
            "provider": provider,
            "status": integration.status,
            "account_id": integration.account_id,
            "last_sync_at": integration.last_sync_at,
            "last_sync_error": integration.last_sync_error,
        }

    async def test_connection(self, user_id: UUID, provider: str) -> ConnectionTestResult:
        """Check the stored credential with the same call used when connecting."""
        start_time = time.time()
        try:
            secret = await self.credential_store.get(user_id, provider)
            if secret is None:
                raise ValueError(f"{provider} is not connected")
            if provider == PROVIDER_STRIPE:
                await StripeListAPI(
                    self.http_client, secret, self.settings.stripe_api_base
                ).retrieve_account()
            else:
                async with self.session_factory() as session:
                    integration = await get_integration(session, user_id, provider)
                await GHLListAPI(
                    self.http_client, secret, integration.account_id or "", self.settings.ghl_api_base
                ).search_locations()
            return ConnectionTestResult(provider, True, time.time() - start_time)
        except (ValueError, SyncError) as e:
            return ConnectionTestResult(provider, False, time.time() - start_time, str(e))

    def _schedule_backfill(self, user_id: UUID, provider: str) -> None:
        sync_service = self.sync_services.get(provider)
        if sync_service is None:
            return
        self.task_runner.submit(
            sync_service.backfill_user(user_id),
            name=f"{provider.lower()}-backfill-{user_id}",
        )
