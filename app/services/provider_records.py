"""
Normalized provider records.

Provider JSON is translated into these plain dataclasses at the fetch boundary
so that sync, aggregation and scoring never see provider payload shapes.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class ListPage(Generic[T]):
    items: List[T] = field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """Epoch seconds (int/float/numeric str) or ISO-8601 string -> naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(value, tz=dt.timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return parse_timestamp(int(text))
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(dt.timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def to_minor_units(value: Any) -> Optional[int]:
    """Major-unit amount (e.g. 12.5 dollars) -> integer minor units (1250)."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid monetary value: {value!r}") from e
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _id_or_none(value: Any) -> Optional[str]:
    """Expanded Stripe objects come back as dicts; references as plain ids."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return str(value)


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------


@dataclass
class StripeCustomerRecord:
    external_id: str
    email: Optional[str]
    name: Optional[str]
    created_at: dt.datetime

    @classmethod
    def from_api(cls, data: dict) -> "StripeCustomerRecord":
        return cls(
            external_id=data["id"],
            email=data.get("email") or None,
            name=data.get("name") or None,
            created_at=parse_timestamp(data["created"]),
        )


@dataclass
class StripeChargeRecord:
    external_id: str
    customer_external_id: Optional[str]
    amount: int
    currency: str
    status: str
    refunded: bool
    refund_amount: int
    created_at: dt.datetime

    @classmethod
    def from_api(cls, data: dict) -> "StripeChargeRecord":
        return cls(
            external_id=data["id"],
            customer_external_id=_id_or_none(data.get("customer")),
            amount=int(data.get("amount") or 0),
            currency=data.get("currency") or "usd",
            status=data.get("status") or "unknown",
            refunded=bool(data.get("refunded")),
            refund_amount=int(data.get("amount_refunded") or 0),
            created_at=parse_timestamp(data["created"]),
        )


@dataclass
class StripeInvoiceRecord:
    external_id: str
    customer_external_id: Optional[str]
    amount_due: int
    amount_paid: int
    currency: str
    status: str
    created_at: dt.datetime

    @classmethod
    def from_api(cls, data: dict) -> "StripeInvoiceRecord":
        return cls(
            external_id=data["id"],
            customer_external_id=_id_or_none(data.get("customer")),
            amount_due=int(data.get("amount_due") or 0),
            amount_paid=int(data.get("amount_paid") or 0),
            currency=data.get("currency") or "usd",
            status=data.get("status") or "unknown",
            created_at=parse_timestamp(data["created"]),
        )


@dataclass
class StripeSubscriptionRecord:
    external_id: str
    customer_external_id: Optional[str]
    status: str
    current_period_start: Optional[dt.datetime]
    current_period_end: Optional[dt.datetime]
    canceled_at: Optional[dt.datetime]
    created_at: dt.datetime

    @classmethod
    def from_api(cls, data: dict) -> "StripeSubscriptionRecord":
        # Newer API versions moved the period fields onto subscription items
        items = (data.get("items") or {}).get("data") or [{}]
        period_start = data.get("current_period_start", items[0].get("current_period_start"))
        period_end = data.get("current_period_end", items[0].get("current_period_end"))
        return cls(
            external_id=data["id"],
            customer_external_id=_id_or_none(data.get("customer")),
            status=data.get("status") or "unknown",
            current_period_start=parse_timestamp(period_start),
            current_period_end=parse_timestamp(period_end),
            canceled_at=parse_timestamp(data.get("canceled_at")),
            created_at=parse_timestamp(data["created"]),
        )


# ---------------------------------------------------------------------------
# GoHighLevel
# ---------------------------------------------------------------------------


@dataclass
class GHLContactRecord:
    external_id: str
    email: Optional[str]
    phone: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    source: Optional[str]
    created_at: Optional[dt.datetime]

    @classmethod
    def from_api(cls, data: dict) -> "GHLContactRecord":
        return cls(
            external_id=data["id"],
            email=data.get("email") or None,
            phone=data.get("phone") or None,
            first_name=data.get("firstName") or None,
            last_name=data.get("lastName") or None,
            source=data.get("source") or None,
            created_at=parse_timestamp(data.get("dateAdded")),
        )


@dataclass
class GHLOpportunityRecord:
    external_id: str
    contact_external_id: Optional[str]
    name: Optional[str]
    pipeline_id: Optional[str]
    pipeline_stage_id: Optional[str]
    status: str
    monetary_value: Optional[int]
    created_at: Optional[dt.datetime]
    closed_at: Optional[dt.datetime]

    @classmethod
    def from_api(cls, data: dict) -> "GHLOpportunityRecord":
        contact = data.get("contact") or {}
        return cls(
            external_id=data["id"],
            contact_external_id=data.get("contactId") or contact.get("id"),
            name=data.get("name"),
            pipeline_id=data.get("pipelineId"),
            pipeline_stage_id=data.get("pipelineStageId"),
            status=(data.get("status") or "open").lower(),
            monetary_value=to_minor_units(data.get("monetaryValue")),
            created_at=parse_timestamp(data.get("dateAdded")),
            closed_at=parse_timestamp(data.get("closedAt")),
        )


@dataclass
class GHLAppointmentRecord:
    external_id: str
    contact_external_id: Optional[str]
    title: Optional[str]
    start_time: dt.datetime
    end_time: Optional[dt.datetime]
    status: str
    created_at: Optional[dt.datetime]

    @classmethod
    def from_api(cls, data: dict) -> "GHLAppointmentRecord":
        return cls(
            external_id=data["id"],
            contact_external_id=data.get("contactId"),
            title=data.get("title"),
            start_time=parse_timestamp(data["startTime"]),
            end_time=parse_timestamp(data.get("endTime")),
            status=(data.get("status") or data.get("appointmentStatus") or "unknown").lower(),
            created_at=parse_timestamp(data.get("dateAdded")),
        )
