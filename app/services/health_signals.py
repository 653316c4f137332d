"""
Health signals.

Each evaluator looks at the current (and, for trends, previous) aggregate
bucket and returns a HealthSignal, or None when the data is missing or too
thin to say anything. Thresholds are compared with integer or rational
arithmetic so that boundary values land on the documented side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import List, Optional

GREEN = "GREEN"
YELLOW = "YELLOW"
RED = "RED"
UNKNOWN = "UNKNOWN"

STATUS_SCORES = {GREEN: 2, YELLOW: 1, RED: 0}

REVENUE_WEIGHT = 40
LEADS_WEIGHT = 30
SHOW_RATE_WEIGHT = 15
REFUND_RATE_WEIGHT = 15

MIN_APPOINTMENTS_FOR_SHOW_RATE = 3
MIN_CHARGES_FOR_REFUND_RATE = 5


@dataclass
class RevenueMetricInput:
    net_revenue: int = 0
    total_revenue: int = 0
    refunded_revenue: int = 0
    charge_count: int = 0
    refund_count: int = 0
    customer_count: int = 0
    new_customer_count: int = 0
    active_subscriptions: int = 0


@dataclass
class CRMMetricInput:
    new_leads: int = 0
    appointments_booked: int = 0
    appointments_showed: int = 0
    show_rate: float = 0.0
    opportunities_won: int = 0
    opportunities_lost: int = 0


@dataclass
class MetricPeriod:
    revenue: Optional[RevenueMetricInput] = None
    crm: Optional[CRMMetricInput] = None

    @property
    def empty(self) -> bool:
        return self.revenue is None and self.crm is None


@dataclass
class HealthScoreInput:
    period_type: str
    current: MetricPeriod = field(default_factory=MetricPeriod)
    previous: MetricPeriod = field(default_factory=MetricPeriod)


@dataclass
class HealthSignal:
    name: str
    status: str
    weight: int
    reason: str

    @property
    def score(self) -> int:
        return STATUS_SCORES[self.status]


def _trend_percent(current: int, previous: int) -> Fraction:
    return Fraction((current - previous) * 100, previous)


def _format_trend(trend: Fraction) -> str:
    sign = "+" if trend >= 0 else ""
    return f"{sign}{float(trend):.0f}"


def _trend_signal(
    name: str,
    weight: int,
    current: int,
    previous: int,
    green_floor: int,
    yellow_floor: int,
    messages: dict,
) -> Optional[HealthSignal]:
    """Period-over-period signal shared by revenue and leads."""
    if current == 0 and previous == 0:
        return None
    if previous == 0 and current > 0:
        return HealthSignal(name, GREEN, weight, messages["recovered"])
    if current == 0:
        return HealthSignal(name, RED, weight, messages["none"])

    trend = _trend_percent(current, previous)
    if trend >= green_floor:
        return HealthSignal(name, GREEN, weight, messages["green"])
    pct = _format_trend(trend)
    if trend >= yellow_floor:
        return HealthSignal(name, YELLOW, weight, messages["yellow"].format(pct=pct))
    return HealthSignal(name, RED, weight, messages["red"].format(pct=pct))


def evaluate_revenue_signal(
    current: Optional[RevenueMetricInput], previous: Optional[RevenueMetricInput]
) -> Optional[HealthSignal]:
    if current is None or previous is None:
        return None
    return _trend_signal(
        "Revenue",
        REVENUE_WEIGHT,
        current.net_revenue,
        previous.net_revenue,
        green_floor=-5,
        yellow_floor=-20,
        messages={
            "recovered": "Revenue generated after quiet period",
            "none": "No revenue this period",
            "green": "Revenue stable or growing",
            "yellow": "Revenue down {pct}%",
            "red": "Revenue declining significantly ({pct}%)",
        },
    )


def evaluate_leads_signal(
    current: Optional[CRMMetricInput], previous: Optional[CRMMetricInput]
) -> Optional[HealthSignal]:
    if current is None or previous is None:
        return None
    return _trend_signal(
        "Leads",
        LEADS_WEIGHT,
        current.new_leads,
        previous.new_leads,
        green_floor=-10,
        yellow_floor=-40,
        messages={
            "recovered": "New leads generated",
            "none": "No new leads this period",
            "green": "Lead generation healthy",
            "yellow": "Leads down {pct}%",
            "red": "Lead generation declining ({pct}%)",
        },
    )


def evaluate_show_rate_signal(current: Optional[CRMMetricInput]) -> Optional[HealthSignal]:
    """Absolute show rate of the current bucket; no trend."""
    if current is None or current.appointments_booked < MIN_APPOINTMENTS_FOR_SHOW_RATE:
        return None

    show_rate = current.show_rate
    percent = f"{show_rate * 100:.0f}"
    if show_rate >= 0.7:
        return HealthSignal("Show Rate", GREEN, SHOW_RATE_WEIGHT, f"Show rate healthy at {percent}%")
    if show_rate >= 0.5:
        return HealthSignal(
            "Show Rate", YELLOW, SHOW_RATE_WEIGHT, f"Show rate at {percent}% (target 70%+)"
        )
    return HealthSignal(
        "Show Rate", RED, SHOW_RATE_WEIGHT, f"Show rate low at {percent}% (target 70%+)"
    )


def evaluate_refund_rate_signal(current: Optional[RevenueMetricInput]) -> Optional[HealthSignal]:
    """Share of charges with a refund, current bucket only."""
    if current is None or current.charge_count < MIN_CHARGES_FOR_REFUND_RATE:
        return None

    refunds, charges = current.refund_count, current.charge_count
    percent = f"{refunds * 100 / charges:.1f}"
    if refunds * 100 < 5 * charges:
        return HealthSignal(
            "Refund Rate", GREEN, REFUND_RATE_WEIGHT, f"Refund rate low at {percent}%"
        )
    if refunds * 100 < 15 * charges:
        return HealthSignal(
            "Refund Rate", YELLOW, REFUND_RATE_WEIGHT, f"Refund rate at {percent}% (elevated)"
        )
    return HealthSignal(
        "Refund Rate", RED, REFUND_RATE_WEIGHT, f"Refund rate high at {percent}% (concerning)"
    )


def evaluate_signals(data: HealthScoreInput) -> List[HealthSignal]:
    """Active signals in evaluation order: Revenue, Leads, Show Rate, Refund Rate."""
    candidates = [
        evaluate_revenue_signal(data.current.revenue, data.previous.revenue),
        evaluate_leads_signal(data.current.crm, data.previous.crm),
        evaluate_show_rate_signal(data.current.crm),
        evaluate_refund_rate_signal(data.current.revenue),
    ]
    return [signal for signal in candidates if signal is not None]
