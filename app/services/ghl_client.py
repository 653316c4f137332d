from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from app.services.errors import ProviderRequestError, SyncErrorKind
from app.services.http_client import ResilientHttpClient
from app.services.provider_records import (
    GHLAppointmentRecord,
    GHLContactRecord,
    GHLOpportunityRecord,
    ListPage,
)

GHL_BASE_URL = "https://rest.gohighlevel.com/v1"

logger = logging.getLogger(__name__)

# entity -> (search endpoint, response key, record parser)
GHL_ENDPOINTS: Dict[str, tuple[str, str, Callable[[dict], Any]]] = {
    "contacts": ("/contacts/search", "contacts", GHLContactRecord.from_api),
    "opportunities": ("/opportunities/search", "opportunities", GHLOpportunityRecord.from_api),
    "appointments": ("/appointments/search", "appointments", GHLAppointmentRecord.from_api),
}


class GHLListAPI:
    """Skip/limit paginated GoHighLevel search endpoints for one location."""

    def __init__(
        self,
        http_client: ResilientHttpClient,
        api_key: str,
        location_id: str,
        base_url: str = GHL_BASE_URL,
    ) -> None:
        self.http_client = http_client
        self.location_id = location_id
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def list(
        self,
        entity: str,
        cursor: Optional[str],
        created_after: int,
        page_size: int = 100,
    ) -> ListPage:
        """Fetch one page; the cursor is the skip offset of the next page."""
        if entity not in GHL_ENDPOINTS:
            raise ValueError(f"Unknown GoHighLevel entity: {entity}")
        path, key, parse = GHL_ENDPOINTS[entity]

        skip = int(cursor) if cursor else 0
        params = {
            "limit": page_size,
            "skip": skip,
            "dateAddedMin": created_after,
            "locationId": self.location_id,
        }
        data = await self.http_client.get_json(
            f"{self.base_url}{path}", params=params, headers=self._headers
        )
        if not isinstance(data, dict):
            raise ProviderRequestError(
                f"Unexpected GoHighLevel search response for {entity}",
                kind=SyncErrorKind.INVALID_RESPONSE,
            )

        raw_items = data.get(key) or []
        items = [parse(item) for item in raw_items]
        has_more = len(raw_items) >= page_size
        return ListPage(
            items=items,
            has_more=has_more,
            next_cursor=str(skip + page_size) if has_more else None,
        )

    async def search_locations(self) -> Dict[str, Any]:
        """Cheap authenticated call used to validate an API key."""
        return await self.http_client.get_json(
            f"{self.base_url}/locations/search", headers=self._headers
        )
