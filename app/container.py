from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import Settings, load_settings
from app.models.integration import PROVIDER_GHL, PROVIDER_STRIPE
from app.services.background_tasks import BackgroundTaskRunner
from app.services.clock import SystemClock
from app.services.connection_service import ConnectionService
from app.services.credential_store import CredentialStore
from app.services.crm_aggregates_service import CRMAggregatesService
from app.services.encryption import CredentialCipher
from app.services.ghl_sync_service import GHLSyncService
from app.services.health_score_service import HealthScoreService
from app.services.http_client import ResilientHttpClient, RetryConfig
from app.services.revenue_aggregates_service import RevenueAggregatesService
from app.services.scheduler_service import SchedulerService
from app.services.stripe_sync_service import StripeSyncService
from app.services.webhook_service import GHLWebhookGateway, StripeWebhookGateway

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Every long-lived service, built once per process."""

    settings: Settings
    session_factory: async_sessionmaker
    clock: Any
    http_client: ResilientHttpClient
    task_runner: BackgroundTaskRunner
    credential_store: CredentialStore
    revenue_aggregates: RevenueAggregatesService
    crm_aggregates: CRMAggregatesService
    stripe_sync: StripeSyncService
    ghl_sync: GHLSyncService
    stripe_webhooks: StripeWebhookGateway
    ghl_webhooks: GHLWebhookGateway
    scheduler: SchedulerService
    health_scores: HealthScoreService
    connections: ConnectionService

    @property
    def sync_services(self) -> Dict[str, Any]:
        return {PROVIDER_STRIPE: self.stripe_sync, PROVIDER_GHL: self.ghl_sync}

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.task_runner.drain()
        await self.http_client.close()


def build_container(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    clock: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> ServiceContainer:
    settings = settings or load_settings()
    if session_factory is None:
        from app.db import AsyncSessionLocal

        session_factory = AsyncSessionLocal
    clock = clock or SystemClock()

    http_client = ResilientHttpClient(
        RetryConfig(
            max_retries=settings.http_max_retries,
            base_delay_ms=settings.http_base_delay_ms,
            timeout_seconds=settings.http_timeout_seconds,
        ),
        transport=transport,
        sleep=sleep,
    )
    task_runner = BackgroundTaskRunner()
    credential_store = CredentialStore(session_factory, CredentialCipher(settings.encryption_key))

    revenue_aggregates = RevenueAggregatesService(session_factory, clock)
    crm_aggregates = CRMAggregatesService(session_factory, clock)

    sync_args = (session_factory, credential_store, http_client)
    stripe_sync = StripeSyncService(
        *sync_args, revenue_aggregates, task_runner, clock, settings
    )
    ghl_sync = GHLSyncService(*sync_args, crm_aggregates, task_runner, clock, settings)
    sync_services = {PROVIDER_STRIPE: stripe_sync, PROVIDER_GHL: ghl_sync}

    return ServiceContainer(
        settings=settings,
        session_factory=session_factory,
        clock=clock,
        http_client=http_client,
        task_runner=task_runner,
        credential_store=credential_store,
        revenue_aggregates=revenue_aggregates,
        crm_aggregates=crm_aggregates,
        stripe_sync=stripe_sync,
        ghl_sync=ghl_sync,
        stripe_webhooks=StripeWebhookGateway(
            session_factory, stripe_sync, task_runner, clock, settings.stripe_webhook_secret
        ),
        ghl_webhooks=GHLWebhookGateway(
            session_factory, ghl_sync, task_runner, clock, settings.ghl_webhook_secret
        ),
        scheduler=SchedulerService(
            session_factory, sync_services, clock, settings.sync_hour_utc, sleep=sleep
        ),
        health_scores=HealthScoreService(session_factory, clock),
        connections=ConnectionService(
            session_factory, credential_store, http_client, task_runner, sync_services, settings
        ),
    )
