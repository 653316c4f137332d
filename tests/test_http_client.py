from __future__ import annotations

import httpx
import pytest

from app.services.errors import ProviderRequestError, SyncErrorKind

URL = "https://stripe.test/v1/customers"


def status_sequence(*statuses):
    return [httpx.Response(code, json={"ok": code == 200}) for code in statuses]


class TestResilientHttpClient:
    """Retry and backoff behaviour of the shared provider HTTP client."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self, http_client, provider_api, sleeps):
        """503, 503, 503, 200 succeeds after 1s, 2s and 4s of backoff."""
        provider_api.add("/v1/customers", status_sequence(503, 503, 503, 200))

        response = await http_client.get(URL)

        assert response.status_code == 200
        assert len(provider_api.calls("/v1/customers")) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, http_client, provider_api, sleeps):
        provider_api.add("/v1/customers", status_sequence(429, 200))

        response = await http_client.get(URL)

        assert response.status_code == 200
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_transient(self, http_client, provider_api, sleeps):
        provider_api.add("/v1/customers", status_sequence(500))

        with pytest.raises(ProviderRequestError) as exc_info:
            await http_client.get(URL)

        assert exc_info.value.kind == SyncErrorKind.TRANSIENT
        # initial attempt plus three retries
        assert len(provider_api.calls("/v1/customers")) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, http_client, provider_api, sleeps):
        """404 fails immediately with the provider status attached."""
        provider_api.add("/v1/customers", status_sequence(404))

        with pytest.raises(ProviderRequestError) as exc_info:
            await http_client.get(URL)

        assert exc_info.value.kind == SyncErrorKind.PROVIDER
        assert exc_info.value.status_code == 404
        assert len(provider_api.calls("/v1/customers")) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self, http_client, provider_api, sleeps):
        attempts = []

        def flaky(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"data": []})

        provider_api.add("/v1/customers", flaky)

        data = await http_client.get_json(URL)

        assert data == {"data": []}
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_invalid_json_is_not_retried(self, http_client, provider_api, sleeps):
        provider_api.add("/v1/customers", lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(ProviderRequestError) as exc_info:
            await http_client.get_json(URL)

        assert exc_info.value.kind == SyncErrorKind.INVALID_RESPONSE
        assert len(provider_api.calls("/v1/customers")) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_backoff_doubles_per_attempt(self, http_client):
        assert [http_client.backoff_delay_ms(n) for n in range(4)] == [1000, 2000, 4000, 8000]
