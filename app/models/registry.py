"""Imports every model so Base.metadata is complete (Alembic, create_all, tests)."""
from __future__ import annotations

from app.models.crm_metric import CRMMetric
from app.models.ghl_appointment import GHLAppointment
from app.models.ghl_contact import GHLContact
from app.models.ghl_opportunity import GHLOpportunity
from app.models.integration import Integration
from app.models.revenue_metric import RevenueMetric
from app.models.stripe_charge import StripeCharge
from app.models.stripe_customer import StripeCustomer
from app.models.stripe_invoice import StripeInvoice
from app.models.stripe_subscription import StripeSubscription
from app.models.sync_event import SyncEvent
from app.models.webhook_event import WebhookEvent

__all__ = [
    "CRMMetric",
    "GHLAppointment",
    "GHLContact",
    "GHLOpportunity",
    "Integration",
    "RevenueMetric",
    "StripeCharge",
    "StripeCustomer",
    "StripeInvoice",
    "StripeSubscription",
    "SyncEvent",
    "WebhookEvent",
]
