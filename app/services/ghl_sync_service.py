from __future__ import annotations

import logging
from typing import Any, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ghl_appointment import GHLAppointment
from app.models.ghl_contact import GHLContact
from app.models.ghl_opportunity import GHLOpportunity
from app.models.integration import PROVIDER_GHL, Integration
from app.services.errors import NotConnectedError
from app.services.ghl_client import GHLListAPI
from app.services.sync_service import ProviderSyncService
from app.services.upsert import upsert_many

logger = logging.getLogger(__name__)

NATURAL_KEY = ("user_id", "external_id")
# Set when the row is first mirrored, never moved by later syncs
CREATED_ONCE = ("ghl_created_at",)


class GHLSyncService(ProviderSyncService):
    """Mirrors contacts, opportunities and appointments for the connected location."""

    provider = PROVIDER_GHL
    entities = ("contacts", "opportunities", "appointments")

    def create_list_api(self, secret: str, integration: Integration) -> GHLListAPI:
        if not integration.account_id:
            raise NotConnectedError(
                f"GoHighLevel location id missing for user {integration.user_id}"
            )
        return GHLListAPI(
            self.http_client, secret, integration.account_id, self.settings.ghl_api_base
        )

    async def store_page(
        self, session: AsyncSession, user_id: UUID, entity: str, records: List[Any]
    ) -> int:
        # Some records come back without dateAdded
        now = self.clock.now()

        if entity == "contacts":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "email": r.email,
                    "phone": r.phone,
                    "first_name": r.first_name,
                    "last_name": r.last_name,
                    "source": r.source,
                    "ghl_created_at": r.created_at or now,
                }
                for r in records
            ]
            return await upsert_many(
                session, GHLContact, rows, NATURAL_KEY, insert_only=CREATED_ONCE
            )

        contacts = await self.local_ids(
            session, GHLContact, user_id, (r.contact_external_id for r in records)
        )

        if entity == "opportunities":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "contact_id": contacts.get(r.contact_external_id),
                    "name": r.name,
                    "pipeline_id": r.pipeline_id,
                    "pipeline_stage_id": r.pipeline_stage_id,
                    "status": r.status,
                    "monetary_value": r.monetary_value,
                    "ghl_created_at": r.created_at or now,
                    "closed_at": r.closed_at,
                }
                for r in records
            ]
            return await upsert_many(
                session, GHLOpportunity, rows, NATURAL_KEY, insert_only=CREATED_ONCE
            )

        if entity == "appointments":
            rows = [
                {
                    "user_id": user_id,
                    "external_id": r.external_id,
                    "contact_id": contacts.get(r.contact_external_id),
                    "title": r.title,
                    "start_time": r.start_time,
                    "end_time": r.end_time,
                    "status": r.status,
                    "ghl_created_at": r.created_at or now,
                }
                for r in records
            ]
            return await upsert_many(
                session, GHLAppointment, rows, NATURAL_KEY, insert_only=CREATED_ONCE
            )

        raise ValueError(f"Unknown GoHighLevel entity: {entity}")
