from __future__ import annotations

import datetime as dt
import uuid
from typing import AsyncGenerator, Callable, Dict, List
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models.registry  # noqa: F401
from app.config import Settings
from app.db import Base
from app.models.integration import Integration
from app.services.background_tasks import BackgroundTaskRunner
from app.services.clock import FixedClock
from app.services.credential_store import CredentialStore
from app.services.encryption import CredentialCipher
from app.services.http_client import ResilientHttpClient, RetryConfig

STRIPE_API = "https://stripe.test"
GHL_API = "https://ghl.test/v1"

# Friday
NOW = dt.datetime(2024, 3, 15, 12, 0, 0)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_api_base=STRIPE_API,
        ghl_api_base=GHL_API,
        stripe_webhook_secret="whsec_test_secret",
        ghl_webhook_secret="ghl_test_secret",
        http_max_retries=3,
        http_base_delay_ms=1000,
        scheduler_enabled=False,
        encryption_key="test-encryption-key",
    )


@pytest.fixture
def cipher(settings: Settings) -> CredentialCipher:
    return CredentialCipher(settings.encryption_key)


@pytest.fixture
def credential_store(session_factory: async_sessionmaker, cipher: CredentialCipher) -> CredentialStore:
    return CredentialStore(session_factory, cipher)


@pytest.fixture
def task_runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@pytest.fixture
def mock_aggregates() -> AsyncMock:
    """Aggregation stand-in so sync tests don't race the shared SQLite connection."""
    service = AsyncMock()
    service.calculate_metrics_for_user.return_value = 0
    return service


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


class FakeProviderAPI:
    """Routes MockTransport requests to canned JSON by URL path; records every call."""

    def __init__(self) -> None:
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, handler) -> None:
        if callable(handler):
            self.routes[path] = handler
        else:
            payloads = list(handler)

            def serve(request: httpx.Request) -> httpx.Response:
                body = payloads.pop(0) if len(payloads) > 1 else payloads[0]
                if isinstance(body, httpx.Response):
                    # fresh copy, a response object cannot be sent twice
                    return httpx.Response(
                        body.status_code, content=body.content, headers=body.headers
                    )
                return httpx.Response(200, json=body)

            self.routes[path] = serve

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {request.url.path}"})
        return handler(request)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def provider_api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest_asyncio.fixture
async def http_client(provider_api: FakeProviderAPI, sleeps: List[float]) -> AsyncGenerator[ResilientHttpClient, None]:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    client = ResilientHttpClient(
        RetryConfig(max_retries=3, base_delay_ms=1000),
        transport=httpx.MockTransport(provider_api),
        sleep=fake_sleep,
    )
    yield client
    await client.close()


@pytest.fixture
def connect_integration(session_factory: async_sessionmaker, credential_store: CredentialStore):
    """Store a credential (CONNECTED) and optionally tweak the Integration row."""

    async def _connect(user_id, provider, secret="sk_test_123", account_id=None, **fields):
        await credential_store.set(user_id, provider, secret, account_id)
        if fields:
            async with session_factory() as session:
                integration = (
                    await session.execute(
                        select(Integration).where(
                            Integration.user_id == user_id, Integration.provider == provider
                        )
                    )
                ).scalar_one()
                for name, value in fields.items():
                    setattr(integration, name, value)
                await session.commit()

    return _connect
