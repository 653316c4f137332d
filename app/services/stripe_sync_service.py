from __future__ import annotations

import logging
from typing import Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.integration import PROVIDER_STRIPE, Integration
from app.models.stripe_charge import StripeCharge
from app.models.stripe_customer import StripeCustomer
from app.models.stripe_invoice import StripeInvoice
from app.models.stripe_subscription import StripeSubscription
from app.services.stripe_client import StripeListAPI
from app.services.sync_service import ProviderSyncService
from app.services.upsert import upsert_many

logger = logging.getLogger(__name__)

NATURAL_KEY = ("user_id", "external_id")


class StripeSyncService(ProviderSyncService):
    """Mirrors customers, charges, invoices and subscriptions (in that order)."""

    provider = PROVIDER_STRIPE
    entities = ("customers", "charges", "invoices", "subscriptions")

    def create_list_api(self, secret: str, integration: Integration) -> StripeListAPI:
        return StripeListAPI(self.http_client, secret, self.settings.stripe_api_base)

    async def store_page(
        self, session: AsyncSession, user_id: UUID, entity: str, records: List[Any]
    ) -> int:
        if entity == "customers":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "email": r.email,
                    "name": r.name,
                    "stripe_created_at": r.created_at,
                }
                for r in records
            ]
            return await upsert_many(session, StripeCustomer, rows, NATURAL_KEY)

        customers = await self.local_ids(
            session, StripeCustomer, user_id, (r.customer_external_id for r in records)
        )

        if entity == "charges":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "customer_id": customers.get(r.customer_external_id),
                    "amount": r.amount,
                    "currency": r.currency,
                    "status": r.status,
                    "refunded": r.refunded,
                    "refund_amount": r.refund_amount,
                    "stripe_created_at": r.created_at,
                }
                for r in records
            ]
            return await upsert_many(session, StripeCharge, rows, NATURAL_KEY)

        if entity == "invoices":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "customer_id": customers.get(r.customer_external_id),
                    "amount_due": r.amount_due,
                    "amount_paid": r.amount_paid,
                    "currency": r.currency,
                    "status": r.status,
                    "stripe_created_at": r.created_at,
                }
                for r in records
            ]
            return await upsert_many(session, StripeInvoice, rows, NATURAL_KEY)

        if entity == "subscriptions":
            rows = []
            for r in records:
                customer_id = customers.get(r.customer_external_id)
                if customer_id is None:
                    # A subscription row cannot exist without its customer
                    logger.warning(
                        f"Skipping subscription {r.external_id} for {user_id}: "
                        f"customer {r.customer_external_id} not mirrored"
                    )
                    continue
                rows.append(
                    {
                        "user_id": user_id,
                        "external_id": r.external_id,
                        "customer_id": customer_id,
                        "status": r.status,
                        "current_period_start": r.current_period_start,
                        "current_period_end": r.current_period_end,
                        "canceled_at": r.canceled_at,
                        "stripe_created_at": r.created_at,
                    }
                )
            return await upsert_many(session, StripeSubscription, rows, NATURAL_KEY)

        raise ValueError(f"Unknown Stripe entity: {entity}")
