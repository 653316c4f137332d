from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.integration import STATUS_CONNECTED, Integration
from app.services.sync_service import INCREMENTAL_DAYS, get_sync_events

logger = logging.getLogger(__name__)


class SchedulerService:
    """Runs the daily sync for every connected integration and exposes manual triggers."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        sync_services: Dict[str, Any],
        clock,
        sync_hour_utc: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.sync_services = sync_services
        self.clock = clock
        self.sync_hour_utc = sync_hour_utc
        self.sleep = sleep
        self.running = False
        self.last_run_at: Optional[dt.datetime] = None
        self.last_summary: Optional[Dict[str, Dict[str, int]]] = None
        self._loop_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self.running:
            return

        self.running = True
        logger.info(f"Starting scheduler service (daily sync at {self.sync_hour_utc:02d}:00 UTC)")
        self._loop_task = asyncio.create_task(self._run_scheduler(), name="daily-sync-scheduler")

    async def stop(self) -> None:
        """Stop the scheduler loop."""
        self.running = False

        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._loop_task = None

        logger.info("Stopped scheduler service")

    def seconds_until_next_run(self, now: dt.datetime) -> float:
        target = now.replace(hour=self.sync_hour_utc, minute=0, second=0, microsecond=0)
        if target <= now:
            target += dt.timedelta(days=1)
        return (target - now).total_seconds()

    async def _run_scheduler(self) -> None:
        """Main scheduler loop."""
        while self.running:
            await self.sleep(self.seconds_until_next_run(self.clock.now()))
            if not self.running:
                break
            try:
                await self.run_daily_sync()
            except Exception as e:
                logger.exception(f"Scheduler error: {e}")

    async def run_daily_sync(self) -> Dict[str, Dict[str, int]]:
        """Sync every CONNECTED integration; providers run concurrently, users one at a time."""
        started_at = self.clock.now()
        users: Dict[str, List[UUID]] = {}
        for provider in self.sync_services:
            users[provider] = await self._connected_users(provider)

        providers = list(self.sync_services)
        results = await asyncio.gather(
            *(self._sync_provider(provider, users[provider]) for provider in providers)
        )
        summary = dict(zip(providers, results))

        self.last_run_at = started_at
        self.last_summary = summary
        logger.info(f"Daily sync finished: {summary}")
        return summary

    async def _connected_users(self, provider: str) -> List[UUID]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Integration.user_id).where(
                    Integration.provider == provider,
                    Integration.status == STATUS_CONNECTED,
                )
            )
            return list(result.scalars().all())

    async def _sync_provider(self, provider: str, user_ids: List[UUID]) -> Dict[str, int]:
        service = self.sync_services[provider]
        summary = {"total": len(user_ids), "succeeded": 0, "failed": 0}

        for user_id in user_ids:
            try:
                result = await service.sync_user(
                    user_id, backfill_days=INCREMENTAL_DAYS, trigger="schedule"
                )
            except Exception as e:
                summary["failed"] += 1
                logger.exception(f"Scheduled {provider} sync crashed for {user_id}: {e}")
                continue

            if result.error:
                summary["failed"] += 1
                logger.warning(f"Scheduled {provider} sync failed for {user_id}: {result.error}")
            else:
                summary["succeeded"] += 1
                logger.info(f"Scheduled {provider} sync for {user_id}: {result.counts}")

        return summary

    async def trigger_manual_sync(
        self, user_id: UUID, provider: str, sync_type: str = "incremental"
    ) -> Dict[str, Any]:
        """Run one sync now; "full" re-runs the 90 day backfill."""
        service = self.sync_services.get(provider)
        if service is None:
            return {"success": False, "error": f"Unknown provider: {provider}"}

        if sync_type == "full":
            result = await service.backfill_user(user_id)
        else:
            result = await service.sync_user(user_id, trigger="manual")

        return {
            "success": result.error is None,
            "provider": provider,
            "sync_type": sync_type,
            "result": result.model_dump(),
        }

    async def get_sync_status(self, user_id: Optional[UUID] = None) -> Dict[str, Any]:
        """Integration sync state plus recent runs, for everyone or one user."""
        async with self.session_factory() as session:
            stmt = select(Integration)
            if user_id:
                stmt = stmt.where(Integration.user_id == user_id)
            result = await session.execute(stmt)
            integrations = result.scalars().all()
            recent = await get_sync_events(session, user_id=user_id, limit=10)

        return {
            "scheduler_running": self.running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_summary": self.last_summary,
            "integrations": [
                {
                    "id": str(integration.id),
                    "user_id": str(integration.user_id),
                    "provider": integration.provider,
                    "status": integration.status,
                    "last_sync_at": (
                        integration.last_sync_at.isoformat() if integration.last_sync_at else None
                    ),
                    "last_sync_error": integration.last_sync_error,
                }
                for integration in integrations
            ],
            "recent_syncs": [
                {
                    "provider": event.provider,
                    "user_id": str(event.user_id),
                    "trigger": event.trigger,
                    "status": event.status,
                    "items_processed": event.items_processed,
                    "started_at": event.started_at.isoformat(),
                    "error_message": event.error_message,
                }
                for event in recent
            ],
        }
