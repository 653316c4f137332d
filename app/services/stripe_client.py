from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from app.services.errors import ProviderRequestError, SyncErrorKind
from app.services.http_client import ResilientHttpClient
from app.services.provider_records import (
    ListPage,
    StripeChargeRecord,
    StripeCustomerRecord,
    StripeInvoiceRecord,
    StripeSubscriptionRecord,
)

STRIPE_BASE_URL = "https://api.stripe.com"

logger = logging.getLogger(__name__)

# entity -> (list endpoint, record parser)
STRIPE_ENDPOINTS: Dict[str, tuple[str, Callable[[dict], Any]]] = {
    "customers": ("/v1/customers", StripeCustomerRecord.from_api),
    "charges": ("/v1/charges", StripeChargeRecord.from_api),
    "invoices": ("/v1/invoices", StripeInvoiceRecord.from_api),
    "subscriptions": ("/v1/subscriptions", StripeSubscriptionRecord.from_api),
}


class StripeListAPI:
    """Cursor-paginated Stripe list endpoints for one connected account."""

    def __init__(
        self, http_client: ResilientHttpClient, api_key: str, base_url: str = STRIPE_BASE_URL
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def list(
        self,
        entity: str,
        cursor: Optional[str],
        created_after: int,
        page_size: int = 100,
    ) -> ListPage:
        """Fetch one page; the cursor is the id of the last item of the previous page."""
        if entity not in STRIPE_ENDPOINTS:
            raise ValueError(f"Unknown Stripe entity: {entity}")
        path, parse = STRIPE_ENDPOINTS[entity]

        params: Dict[str, Any] = {"limit": page_size, "created[gte]": created_after}
        if cursor:
            params["starting_after"] = cursor
        if entity == "subscriptions":
            # Default listing hides canceled subscriptions
            params["status"] = "all"

        data = await self.http_client.get_json(
            f"{self.base_url}{path}", params=params, headers=self._headers
        )
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            raise ProviderRequestError(
                f"Unexpected Stripe list response for {entity}",
                kind=SyncErrorKind.INVALID_RESPONSE,
            )

        raw_items = data["data"]
        items = [parse(item) for item in raw_items]
        return ListPage(
            items=items,
            has_more=bool(data.get("has_more")),
            next_cursor=raw_items[-1]["id"] if raw_items else None,
        )

    async def retrieve_account(self) -> Dict[str, Any]:
        """Return the account the key belongs to (used to validate a new key)."""
        return await self.http_client.get_json(
            f"{self.base_url}/v1/account", headers=self._headers
        )
