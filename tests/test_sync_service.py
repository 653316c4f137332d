from __future__ import annotations

import datetime as dt
import logging
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.models.ghl_appointment import GHLAppointment
from app.models.ghl_contact import GHLContact
from app.models.ghl_opportunity import GHLOpportunity
from app.models.integration import (
    PROVIDER_GHL,
    PROVIDER_STRIPE,
    STATUS_CONNECTED,
    STATUS_ERROR,
    Integration,
)
from app.models.stripe_charge import StripeCharge
from app.models.stripe_customer import StripeCustomer
from app.models.stripe_subscription import StripeSubscription
from app.models.sync_event import SyncEvent
from app.services.encryption import CredentialCipher
from app.services.ghl_sync_service import GHLSyncService
from app.services.stripe_sync_service import StripeSyncService

CREATED = 1710000000  # 2024-03-09 16:00 UTC


def customer(cid: str) -> dict:
    return {"id": cid, "email": f"{cid}@example.com", "name": cid.upper(), "created": CREATED}


def charge(cid: str, customer_id: str, amount: int = 5000, refunded: int = 0) -> dict:
    return {
        "id": cid,
        "customer": customer_id,
        "amount": amount,
        "currency": "usd",
        "status": "succeeded",
        "refunded": refunded > 0,
        "amount_refunded": refunded,
        "created": CREATED,
    }


def stripe_list(items, has_more=False) -> dict:
    return {"object": "list", "data": items, "has_more": has_more}


@pytest.fixture
def stripe_sync(session_factory, credential_store, http_client, mock_aggregates, task_runner, clock, settings):
    return StripeSyncService(
        session_factory, credential_store, http_client, mock_aggregates, task_runner, clock, settings
    )


@pytest.fixture
def ghl_sync(session_factory, credential_store, http_client, mock_aggregates, task_runner, clock, settings):
    return GHLSyncService(
        session_factory, credential_store, http_client, mock_aggregates, task_runner, clock, settings
    )


@pytest_asyncio.fixture
async def integration_row(session_factory):
    async def _load(user_id, provider):
        async with session_factory() as session:
            result = await session.execute(
                select(Integration).where(
                    Integration.user_id == user_id, Integration.provider == provider
                )
            )
            return result.scalar_one_or_none()

    return _load


def install_stripe_account(provider_api, charges_pages=None):
    provider_api.add("/v1/customers", [stripe_list([customer("cus_1"), customer("cus_2")])])
    provider_api.add(
        "/v1/charges",
        charges_pages
        or [stripe_list([charge("ch_1", "cus_1"), charge("ch_2", "cus_2", refunded=1000)])],
    )
    provider_api.add(
        "/v1/invoices",
        [
            stripe_list(
                [
                    {
                        "id": "in_1",
                        "customer": "cus_1",
                        "amount_due": 5000,
                        "amount_paid": 5000,
                        "currency": "usd",
                        "status": "paid",
                        "created": CREATED,
                    }
                ]
            )
        ],
    )
    provider_api.add(
        "/v1/subscriptions",
        [
            stripe_list(
                [
                    {"id": "sub_1", "customer": "cus_1", "status": "active", "created": CREATED},
                    {"id": "sub_x", "customer": "cus_gone", "status": "active", "created": CREATED},
                ]
            )
        ],
    )


class TestStripeSync:
    """Stripe mirror sync."""

    @pytest.mark.asyncio
    async def test_backfill_mirrors_every_entity(
        self, stripe_sync, provider_api, connect_integration, session_factory, user_id,
        mock_aggregates, task_runner, integration_row, clock
    ):
        await connect_integration(user_id, PROVIDER_STRIPE, "sk_live_key", "acct_1")
        install_stripe_account(provider_api)

        result = await stripe_sync.backfill_user(user_id)
        await task_runner.drain()

        assert result.error is None
        assert result.provider == PROVIDER_STRIPE
        assert result.counts == {"customers": 2, "charges": 2, "invoices": 1, "subscriptions": 1}

        # 90 day lookback
        first = provider_api.calls("/v1/customers")[0]
        assert first.url.params["created[gte]"] == str(1710504000 - 90 * 86400)
        assert first.headers["Authorization"] == "Bearer sk_live_key"

        async with session_factory() as session:
            customers = {
                c.external_id: c
                for c in (await session.execute(select(StripeCustomer))).scalars().all()
            }
            charges = {
                c.external_id: c
                for c in (await session.execute(select(StripeCharge))).scalars().all()
            }
            subscriptions = (await session.execute(select(StripeSubscription))).scalars().all()
            sync_event = (await session.execute(select(SyncEvent))).scalar_one()

        assert charges["ch_1"].customer_id == customers["cus_1"].id
        assert charges["ch_2"].refund_amount == 1000
        # subscription of an unmirrored customer is skipped
        assert [s.external_id for s in subscriptions] == ["sub_1"]
        assert sync_event.status == "success"
        assert sync_event.trigger == "backfill"
        assert sync_event.items_processed == 6

        integration = await integration_row(user_id, PROVIDER_STRIPE)
        assert integration.status == STATUS_CONNECTED
        assert integration.last_sync_at == clock.now()
        assert integration.last_sync_error is None

        periods = sorted(c.args[1] for c in mock_aggregates.calculate_metrics_for_user.await_args_list)
        assert periods == ["month", "week"]

    @pytest.mark.asyncio
    async def test_incremental_lookback_after_first_sync(
        self, stripe_sync, provider_api, connect_integration, user_id, clock
    ):
        await connect_integration(
            user_id, PROVIDER_STRIPE, last_sync_at=clock.now() - dt.timedelta(days=1)
        )
        install_stripe_account(provider_api)

        await stripe_sync.sync_user(user_id)

        request = provider_api.calls("/v1/charges")[0]
        assert request.url.params["created[gte]"] == str(1710504000 - 7 * 86400)

    @pytest.mark.asyncio
    async def test_follows_cursor_until_short_page(
        self, stripe_sync, provider_api, connect_integration, user_id
    ):
        await connect_integration(user_id, PROVIDER_STRIPE)
        install_stripe_account(
            provider_api,
            charges_pages=[
                stripe_list([charge("ch_1", "cus_1"), charge("ch_2", "cus_1")], has_more=True),
                stripe_list([charge("ch_3", "cus_2")], has_more=False),
            ],
        )
        stripe_sync.page_size = 2

        result = await stripe_sync.sync_user(user_id)

        calls = provider_api.calls("/v1/charges")
        assert len(calls) == 2
        assert calls[1].url.params["starting_after"] == "ch_2"
        assert result.counts["charges"] == 3

    @pytest.mark.asyncio
    async def test_resync_upserts_without_duplicates(
        self, stripe_sync, provider_api, connect_integration, session_factory, user_id
    ):
        await connect_integration(user_id, PROVIDER_STRIPE)
        install_stripe_account(provider_api)
        await stripe_sync.sync_user(user_id)

        provider_api.add(
            "/v1/charges",
            [stripe_list([charge("ch_1", "cus_1", refunded=5000), charge("ch_2", "cus_2")])],
        )
        await stripe_sync.sync_user(user_id)

        async with session_factory() as session:
            count = (await session.execute(select(func.count(StripeCharge.id)))).scalar()
            ch_1 = (
                await session.execute(select(StripeCharge).where(StripeCharge.external_id == "ch_1"))
            ).scalar_one()
        assert count == 2
        assert ch_1.refund_amount == 5000

    @pytest.mark.asyncio
    async def test_not_connected_is_reported_not_raised(
        self, stripe_sync, provider_api, user_id, integration_row, mock_aggregates
    ):
        result = await stripe_sync.sync_user(user_id)

        assert result.error_kind == "not_connected"
        assert result.counts == {"customers": 0, "charges": 0, "invoices": 0, "subscriptions": 0}
        assert provider_api.requests == []
        assert await integration_row(user_id, PROVIDER_STRIPE) is None
        mock_aggregates.calculate_metrics_for_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_sets_error_and_keeps_partial_counts(
        self, stripe_sync, provider_api, connect_integration, session_factory, user_id,
        integration_row, mock_aggregates, task_runner
    ):
        await connect_integration(user_id, PROVIDER_STRIPE)
        install_stripe_account(
            provider_api, charges_pages=[httpx.Response(403, json={"error": "forbidden"})]
        )

        result = await stripe_sync.sync_user(user_id)
        await task_runner.drain()

        assert result.error_kind == "provider"
        assert "403" in result.error
        assert result.counts["customers"] == 2
        assert result.counts["charges"] == 0

        integration = await integration_row(user_id, PROVIDER_STRIPE)
        assert integration.status == STATUS_ERROR
        assert integration.last_sync_error == result.error
        assert integration.last_sync_at is None

        async with session_factory() as session:
            mirrored = (await session.execute(select(func.count(StripeCustomer.id)))).scalar()
            sync_event = (await session.execute(select(SyncEvent))).scalar_one()
        # pages committed before the failure stay
        assert mirrored == 2
        assert sync_event.status == "failed"
        assert sync_event.error_kind == "provider"
        mock_aggregates.calculate_metrics_for_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_clears_error_status(
        self, stripe_sync, provider_api, connect_integration, user_id, integration_row
    ):
        await connect_integration(
            user_id, PROVIDER_STRIPE, status=STATUS_ERROR, last_sync_error="boom"
        )
        install_stripe_account(provider_api)

        result = await stripe_sync.sync_user(user_id)

        integration = await integration_row(user_id, PROVIDER_STRIPE)
        assert result.error is None
        assert integration.status == STATUS_CONNECTED
        assert integration.last_sync_error is None

    @pytest.mark.asyncio
    async def test_undecryptable_credential_marks_integration_error(
        self, stripe_sync, provider_api, connect_integration, session_factory, user_id,
        integration_row, mock_aggregates
    ):
        await connect_integration(
            user_id,
            PROVIDER_STRIPE,
            encrypted_api_key=CredentialCipher("rotated-key").encrypt("sk_test_123"),
        )

        result = await stripe_sync.sync_user(user_id)

        assert result.error_kind == "internal"
        assert "could not be decrypted" in result.error
        assert provider_api.requests == []

        integration = await integration_row(user_id, PROVIDER_STRIPE)
        assert integration.status == STATUS_ERROR
        assert integration.last_sync_error == result.error

        async with session_factory() as session:
            sync_event = (await session.execute(select(SyncEvent))).scalar_one()
        assert sync_event.status == "failed"
        assert sync_event.error_kind == "internal"
        mock_aggregates.calculate_metrics_for_user.assert_not_called()

    @pytest.mark.asyncio
    async def test_aggregation_failure_does_not_fail_the_sync(
        self, stripe_sync, provider_api, connect_integration, user_id, integration_row,
        mock_aggregates, task_runner, caplog
    ):
        await connect_integration(user_id, PROVIDER_STRIPE)
        install_stripe_account(provider_api)
        mock_aggregates.calculate_metrics_for_user.side_effect = RuntimeError("aggregation down")

        with caplog.at_level(logging.ERROR, logger="app.services.background_tasks"):
            result = await stripe_sync.sync_user(user_id)
            await task_runner.drain()

        assert result.error is None
        assert task_runner.pending == 0
        assert "aggregation down" in caplog.text
        assert mock_aggregates.calculate_metrics_for_user.await_count == 2
        integration = await integration_row(user_id, PROVIDER_STRIPE)
        assert integration.status == STATUS_CONNECTED


class TestGHLSync:
    """GoHighLevel mirror sync."""

    @pytest.mark.asyncio
    async def test_sync_links_contacts(
        self, ghl_sync, provider_api, connect_integration, session_factory, user_id, clock
    ):
        await connect_integration(user_id, PROVIDER_GHL, "ghl_key", "loc_1")
        provider_api.add(
            "/v1/contacts/search",
            [
                {
                    "contacts": [
                        {"id": "c1", "email": "a@example.com", "dateAdded": "2024-03-11T09:00:00Z"},
                        {"id": "c2"},
                    ]
                }
            ],
        )
        provider_api.add(
            "/v1/opportunities/search",
            [
                {
                    "opportunities": [
                        {"id": "o1", "contactId": "c1", "status": "won", "monetaryValue": 1500.5},
                        {"id": "o2", "contactId": "missing", "status": "open"},
                    ]
                }
            ],
        )
        provider_api.add(
            "/v1/appointments/search",
            [
                {
                    "appointments": [
                        {
                            "id": "a1",
                            "contactId": "c2",
                            "startTime": "2024-03-12T15:00:00Z",
                            "status": "showed",
                        }
                    ]
                }
            ],
        )

        result = await ghl_sync.sync_user(user_id, backfill_days=7, trigger="webhook")

        assert result.error is None
        assert result.counts == {"contacts": 2, "opportunities": 2, "appointments": 1}
        assert provider_api.calls("/v1/contacts/search")[0].url.params["locationId"] == "loc_1"

        async with session_factory() as session:
            contacts = {
                c.external_id: c
                for c in (await session.execute(select(GHLContact))).scalars().all()
            }
            opportunities = {
                o.external_id: o
                for o in (await session.execute(select(GHLOpportunity))).scalars().all()
            }
            appointment = (await session.execute(select(GHLAppointment))).scalar_one()

        # missing dateAdded falls back to the sync time
        assert contacts["c2"].ghl_created_at == clock.now()
        assert opportunities["o1"].contact_id == contacts["c1"].id
        assert opportunities["o1"].monetary_value == 150050
        assert opportunities["o2"].contact_id is None
        assert appointment.contact_id == contacts["c2"].id

    @pytest.mark.asyncio
    async def test_missing_location_is_a_precondition_failure(
        self, ghl_sync, provider_api, connect_integration, user_id, integration_row
    ):
        await connect_integration(user_id, PROVIDER_GHL, "ghl_key", None)

        result = await ghl_sync.sync_user(user_id)

        assert result.error_kind == "not_connected"
        assert provider_api.requests == []
        integration = await integration_row(user_id, PROVIDER_GHL)
        assert integration.status == STATUS_CONNECTED
        assert integration.last_sync_error is None

    @pytest.mark.asyncio
    async def test_other_users_are_not_touched(
        self, ghl_sync, provider_api, connect_integration, session_factory, user_id
    ):
        other_user = uuid.uuid4()
        await connect_integration(user_id, PROVIDER_GHL, "ghl_key", "loc_1")
        await connect_integration(other_user, PROVIDER_GHL, "ghl_other", "loc_2")
        provider_api.add("/v1/contacts/search", [{"contacts": [{"id": "c1"}]}])
        provider_api.add("/v1/opportunities/search", [{"opportunities": []}])
        provider_api.add("/v1/appointments/search", [{"appointments": []}])

        await ghl_sync.sync_user(user_id)
        await ghl_sync.sync_user(other_user)

        async with session_factory() as session:
            owners = (await session.execute(select(GHLContact.user_id))).scalars().all()
        # same provider id, two owners, two rows
        assert sorted(owners, key=str) == sorted([user_id, other_user], key=str)

    @pytest.mark.asyncio
    async def test_fallback_creation_time_survives_resync(
        self, ghl_sync, provider_api, connect_integration, session_factory, user_id, clock
    ):
        await connect_integration(user_id, PROVIDER_GHL, "ghl_key", "loc_1")
        provider_api.add("/v1/contacts/search", [{"contacts": [{"id": "c1"}]}])
        provider_api.add("/v1/opportunities/search", [{"opportunities": []}])
        provider_api.add("/v1/appointments/search", [{"appointments": []}])
        await ghl_sync.sync_user(user_id)

        clock.advance(days=14)
        provider_api.add(
            "/v1/contacts/search", [{"contacts": [{"id": "c1", "email": "new@example.com"}]}]
        )
        await ghl_sync.sync_user(user_id)

        async with session_factory() as session:
            contact = (await session.execute(select(GHLContact))).scalar_one()
        assert contact.ghl_created_at == dt.datetime(2024, 3, 15, 12, 0)
        # other columns still follow the provider
        assert contact.email == "new@example.com"
