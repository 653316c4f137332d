"""
Provider sync engine.

Mirrors one provider's entities for one owner into local tables: resolve the
credential, page through every entity in a fixed order, upsert each page by
natural key and commit it, then record the outcome on the Integration and in
a SyncEvent row. Aggregation for the synced owner is kicked off in the
background once the mirror is up to date.
"""
from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.models.integration import STATUS_CONNECTED, STATUS_ERROR, Integration
from app.models.sync_event import SyncEvent
from app.schemas.sync import SyncResult
from app.services.background_tasks import BackgroundTaskRunner
from app.services.credential_store import CredentialStore, get_integration
from app.services.errors import (
    CredentialError,
    NotConnectedError,
    SyncError,
    SyncErrorKind,
)
from app.services.http_client import ResilientHttpClient

logger = logging.getLogger(__name__)

BACKFILL_DAYS = 90
INCREMENTAL_DAYS = 7
PAGE_SIZE = 100


class ProviderSyncService:
    """Base class; subclasses name the provider, its entities and how a page is stored."""

    provider: str = ""
    entities: Tuple[str, ...] = ()
    page_size: int = PAGE_SIZE

    def __init__(
        self,
        session_factory: async_sessionmaker,
        credential_store: CredentialStore,
        http_client: ResilientHttpClient,
        aggregates_service,
        task_runner: BackgroundTaskRunner,
        clock,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.credential_store = credential_store
        self.http_client = http_client
        self.aggregates_service = aggregates_service
        self.task_runner = task_runner
        self.clock = clock
        self.settings = settings

    # ------------------------------------------------------------------
    # Provider hooks
    # ------------------------------------------------------------------

    def create_list_api(self, secret: str, integration: Integration):
        raise NotImplementedError

    async def store_page(
        self, session: AsyncSession, user_id: UUID, entity: str, records: List[Any]
    ) -> int:
        """Upsert one page of normalized records; returns how many rows were written."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def backfill_user(self, user_id: UUID) -> SyncResult:
        return await self.sync_user(user_id, backfill_days=BACKFILL_DAYS, trigger="backfill")

    async def sync_user(
        self,
        user_id: UUID,
        backfill_days: Optional[int] = None,
        trigger: str = "manual",
    ) -> SyncResult:
        counts: Dict[str, int] = {entity: 0 for entity in self.entities}

        not_connected = NotConnectedError(f"{self.provider} is not connected for user {user_id}")
        credential_error: Optional[CredentialError] = None
        try:
            secret = await self.credential_store.get(user_id, self.provider)
        except CredentialError as e:
            secret, credential_error = None, e
        if secret is None and credential_error is None:
            return self._not_connected(user_id, counts, not_connected)

        async with self.session_factory() as session:
            integration = await get_integration(session, user_id, self.provider)
            list_api = None
            try:
                if integration is None:
                    raise not_connected
                if credential_error is None:
                    list_api = self.create_list_api(secret, integration)
            except NotConnectedError as e:
                return self._not_connected(user_id, counts, e)

            integration_id = integration.id
            if backfill_days is not None:
                days = backfill_days
            else:
                days = BACKFILL_DAYS if integration.last_sync_at is None else INCREMENTAL_DAYS

            started_at = self.clock.now()
            sync_event_id = uuid.uuid4()

            try:
                session.add(
                    SyncEvent(
                        id=sync_event_id,
                        user_id=user_id,
                        provider=self.provider,
                        trigger=trigger,
                        status="running",
                        backfill_days=days,
                        started_at=started_at,
                    )
                )
                await session.commit()
                if credential_error is not None:
                    raise credential_error

                logger.info(
                    f"Starting {self.provider} sync for {user_id} (trigger={trigger}, lookback={days}d)"
                )
                created_after = started_at - dt.timedelta(days=days)
                created_after_epoch = int(
                    created_after.replace(tzinfo=dt.timezone.utc).timestamp()
                )
                for entity in self.entities:
                    await self._sync_entity(
                        session, list_api, user_id, entity, created_after_epoch, counts
                    )

                completed_at = self.clock.now()
                await session.execute(
                    update(Integration)
                    .where(Integration.id == integration_id)
                    .values(last_sync_at=completed_at, last_sync_error=None)
                )
                await session.execute(
                    update(Integration)
                    .where(Integration.id == integration_id, Integration.status == STATUS_ERROR)
                    .values(status=STATUS_CONNECTED)
                )
                await self._finish_sync_event(
                    session, sync_event_id, "success", counts, started_at, completed_at
                )
                await session.commit()
            except Exception as e:
                await session.rollback()
                if isinstance(e, SyncError):
                    kind, message = e.kind, e.message
                else:
                    kind, message = SyncErrorKind.INTERNAL, str(e) or e.__class__.__name__
                logger.error(
                    f"{self.provider} sync failed for {user_id} ({kind.value}): {message}; "
                    f"partial counts {counts}"
                )
                await self._record_failure(
                    session, integration_id, sync_event_id, kind, message, counts, started_at
                )
                return SyncResult(
                    provider=self.provider,
                    counts=dict(counts),
                    error=message,
                    error_kind=kind.value,
                )

        logger.info(f"Finished {self.provider} sync for {user_id}: {counts}")
        for period_type in ("week", "month"):
            self.task_runner.submit(
                self.aggregates_service.calculate_metrics_for_user(user_id, period_type),
                name=f"{self.provider.lower()}-aggregate-{period_type}-{user_id}",
            )
        return SyncResult(provider=self.provider, counts=dict(counts))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _not_connected(
        self, user_id: UUID, counts: Dict[str, int], error: NotConnectedError
    ) -> SyncResult:
        logger.warning(f"Skipping {self.provider} sync for {user_id}: {error.message}")
        return SyncResult(
            provider=self.provider, counts=counts, error=error.message, error_kind=error.kind.value
        )

    async def _sync_entity(
        self,
        session: AsyncSession,
        list_api,
        user_id: UUID,
        entity: str,
        created_after: int,
        counts: Dict[str, int],
    ) -> None:
        cursor: Optional[str] = None
        while True:
            page = await list_api.list(entity, cursor, created_after, self.page_size)
            if page.items:
                counts[entity] += await self.store_page(session, user_id, entity, page.items)
                await session.commit()
            if len(page.items) < self.page_size or not page.has_more or not page.next_cursor:
                break
            cursor = page.next_cursor

    async def _finish_sync_event(
        self,
        session: AsyncSession,
        sync_event_id: UUID,
        status: str,
        counts: Dict[str, int],
        started_at: dt.datetime,
        completed_at: dt.datetime,
        error_kind: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        await session.execute(
            update(SyncEvent)
            .where(SyncEvent.id == sync_event_id)
            .values(
                status=status,
                items_processed=sum(counts.values()),
                entity_counts=dict(counts),
                completed_at=completed_at,
                duration_seconds=int((completed_at - started_at).total_seconds()),
                error_kind=error_kind,
                error_message=error_message,
            )
        )

    async def _record_failure(
        self,
        session: AsyncSession,
        integration_id: UUID,
        sync_event_id: UUID,
        kind: SyncErrorKind,
        message: str,
        counts: Dict[str, int],
        started_at: dt.datetime,
    ) -> None:
        try:
            await session.execute(
                update(Integration)
                .where(Integration.id == integration_id)
                .values(status=STATUS_ERROR, last_sync_error=message)
            )
            await self._finish_sync_event(
                session,
                sync_event_id,
                "failed",
                counts,
                started_at,
                self.clock.now(),
                error_kind=kind.value,
                error_message=message,
            )
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.exception(f"Could not record {self.provider} sync failure: {e}")

    @staticmethod
    async def local_ids(
        session: AsyncSession, model, user_id: UUID, external_ids: Iterable[Optional[str]]
    ) -> Dict[str, UUID]:
        """Map provider ids to local primary keys for already-mirrored parents."""
        wanted = {external_id for external_id in external_ids if external_id}
        if not wanted:
            return {}
        stmt = select(model.external_id, model.id).where(
            model.user_id == user_id, model.external_id.in_(wanted)
        )
        result = await session.execute(stmt)
        return {external_id: local_id for external_id, local_id in result.all()}


async def get_sync_events(
    session: AsyncSession,
    user_id: Optional[UUID] = None,
    provider: Optional[str] = None,
    limit: int = 20,
) -> List[SyncEvent]:
    """Most recent sync runs, newest first."""
    stmt = select(SyncEvent)
    if user_id is not None:
        stmt = stmt.where(SyncEvent.user_id == user_id)
    if provider is not None:
        stmt = stmt.where(SyncEvent.provider == provider)
    stmt = stmt.order_by(SyncEvent.started_at.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
