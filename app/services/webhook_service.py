"""
Webhook ingestion.

Each gateway verifies the provider signature on the raw body, records the
event once per (provider, event id), resolves the owning user from the
provider account and hands handled event types to a bounded incremental
sync in the background. Events whose owner cannot be resolved are stored
unprocessed under UNKNOWN_OWNER_ID.
"""
from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

import stripe
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.integration import PROVIDER_GHL, PROVIDER_STRIPE, Integration
from app.models.stripe_customer import StripeCustomer
from app.models.webhook_event import UNKNOWN_OWNER_ID, WebhookEvent
from app.services.background_tasks import BackgroundTaskRunner
from app.services.errors import WebhookVerificationError

logger = logging.getLogger(__name__)

WEBHOOK_SYNC_DAYS = 7

STRIPE_SYNC_EVENTS: FrozenSet[str] = frozenset(
    {
        "charge.created",
        "charge.succeeded",
        "charge.refunded",
        "customer.created",
        "customer.subscription.created",
        "customer.subscription.updated",
        "invoice.paid",
    }
)

GHL_SYNC_EVENTS: FrozenSet[str] = frozenset(
    {
        "contact.create",
        "contact.update",
        "opportunity.create",
        "opportunity.update",
        "appointment.create",
        "appointment.update",
    }
)


def parse_event(payload: bytes) -> Dict[str, Any]:
    try:
        event = json.loads(payload)
    except ValueError as e:
        raise WebhookVerificationError(f"Invalid webhook payload: {e}", status_code=400) from e
    if not isinstance(event, dict):
        raise WebhookVerificationError("Webhook payload must be a JSON object", status_code=400)
    return event


class WebhookGateway:
    provider: str = ""
    sync_events: FrozenSet[str] = frozenset()

    def __init__(
        self,
        session_factory: async_sessionmaker,
        sync_service,
        task_runner: BackgroundTaskRunner,
        clock,
        secret: str,
    ) -> None:
        self.session_factory = session_factory
        self.sync_service = sync_service
        self.task_runner = task_runner
        self.clock = clock
        self.secret = secret

    def verify(self, raw_body: bytes, signature: str) -> Dict[str, Any]:
        """Check the signature and return the decoded event."""
        raise NotImplementedError

    async def resolve_owner(self, session: AsyncSession, event: Dict[str, Any]) -> Optional[UUID]:
        raise NotImplementedError

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, bool]:
        if not self.secret or not signature:
            raise WebhookVerificationError("Missing signature or webhook secret", status_code=400)

        event = self.verify(raw_body, signature)
        event_type = str(event.get("type") or "unknown")
        now = self.clock.now()
        external_id = str(event.get("id") or f"{event_type}-{self._epoch_millis(now)}")

        async with self.session_factory() as session:
            existing = await session.execute(
                select(WebhookEvent.id).where(
                    WebhookEvent.provider == self.provider,
                    WebhookEvent.external_id == external_id,
                )
            )
            if existing.first() is not None:
                logger.info(f"Ignoring replayed {self.provider} webhook {external_id}")
                return {"received": True}

            owner = await self.resolve_owner(session, event)
            record = WebhookEvent(
                user_id=owner or UNKNOWN_OWNER_ID,
                provider=self.provider,
                external_id=external_id,
                event_type=event_type,
                payload=event,
                processed=False,
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                # Lost the insert race against a concurrent delivery of the same event
                await session.rollback()
                logger.info(f"Ignoring concurrent {self.provider} webhook {external_id}")
                return {"received": True}

            if owner is None:
                logger.warning(
                    f"Quarantined {self.provider} webhook {external_id} ({event_type}): "
                    "owner could not be resolved"
                )
                return {"received": True}

            if event_type in self.sync_events:
                self.task_runner.submit(
                    self.sync_service.sync_user(owner, WEBHOOK_SYNC_DAYS, trigger="webhook"),
                    name=f"{self.provider.lower()}-webhook-sync-{owner}",
                )
            else:
                logger.debug(f"{self.provider} webhook type {event_type} recorded only")

            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == record.id)
                .values(processed=True, processed_at=now)
            )
            await session.commit()

        return {"received": True}

    async def list_unprocessed(self, limit: int = 100) -> List[WebhookEvent]:
        """Quarantined events for this provider, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookEvent)
                .where(
                    WebhookEvent.provider == self.provider,
                    WebhookEvent.processed.is_(False),
                )
                .order_by(WebhookEvent.created_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def _owner_by_account(self, session: AsyncSession, account_id: Any) -> Optional[UUID]:
        if not account_id:
            return None
        result = await session.execute(
            select(Integration.user_id).where(
                Integration.provider == self.provider,
                Integration.account_id == str(account_id),
            )
        )
        return result.scalars().first()

    @staticmethod
    def _epoch_millis(moment: dt.datetime) -> int:
        return int(moment.replace(tzinfo=dt.timezone.utc).timestamp() * 1000)


class StripeWebhookGateway(WebhookGateway):
    provider = PROVIDER_STRIPE
    sync_events = STRIPE_SYNC_EVENTS

    def verify(self, raw_body: bytes, signature: str) -> Dict[str, Any]:
        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookVerificationError(f"Invalid webhook payload: {e}", status_code=400) from e
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature, self.secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Invalid signature: {e}", status_code=401) from e
        return parse_event(raw_body)

    async def resolve_owner(self, session: AsyncSession, event: Dict[str, Any]) -> Optional[UUID]:
        owner = await self._owner_by_account(session, event.get("account"))
        if owner is not None:
            return owner

        obj = (event.get("data") or {}).get("object") or {}
        customer = obj.get("customer") if isinstance(obj, dict) else None
        if isinstance(customer, dict):
            customer = customer.get("id")
        if not customer:
            return None
        result = await session.execute(
            select(StripeCustomer.user_id).where(StripeCustomer.external_id == str(customer))
        )
        return result.scalars().first()


class GHLWebhookGateway(WebhookGateway):
    provider = PROVIDER_GHL
    sync_events = GHL_SYNC_EVENTS

    def verify(self, raw_body: bytes, signature: str) -> Dict[str, Any]:
        expected = hmac.new(self.secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        provided = signature.strip().lower().encode("utf-8")
        if not hmac.compare_digest(expected.encode("utf-8"), provided):
            raise WebhookVerificationError("Invalid signature", status_code=401)
        return parse_event(raw_body)

    async def resolve_owner(self, session: AsyncSession, event: Dict[str, Any]) -> Optional[UUID]:
        return await self._owner_by_account(session, event.get("locationId"))
