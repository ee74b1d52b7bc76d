"""
Deterministic churn-risk and value scoring for a single customer record.

The risk score is the sum of five capped factors (recency, order frequency,
e-mail engagement, average order value and tenure), clamped to [0, 100].
Loyalty and engagement are weighted-sum heuristics with optional, injected
noise; with the default ``jitter=0`` every function here is a pure function
of its inputs.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import numpy as np

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import (
    CHURNED_INACTIVE_DAYS,
    CHURNED_RISK_SCORE,
    DORMANT_INACTIVE_DAYS,
    ENGAGEMENT_WEIGHTS,
    FREQUENCY_THRESHOLDS,
    LOYALTY_WEIGHTS,
    MISSING_DAYS_SENTINEL,
    OPEN_RATE_THRESHOLDS,
    ORDER_VALUE_THRESHOLDS,
    RECENCY_THRESHOLDS,
    SCORE_JITTER,
    TENURE_THRESHOLDS,
    UNSUBSCRIBED_POINTS,
)
from retention.data.models import (  # noqa: F401  (band/tier re-exported)
    Customer,
    InvalidCustomerError,
    get_ltv_tier,
    get_risk_band,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, truncated toward zero."""
    seconds = (end - start).total_seconds()
    return int(math.trunc(seconds / 86400))


def customer_age_days(customer: Customer, as_of: Optional[datetime] = None) -> int:
    as_of = as_of or utc_now()
    return days_between(customer.first_purchase_at, as_of)


def days_since_last_purchase(customer: Customer, as_of: Optional[datetime] = None) -> int:
    if customer.last_purchase_at is None:
        return MISSING_DAYS_SENTINEL
    as_of = as_of or utc_now()
    return days_between(customer.last_purchase_at, as_of)


def days_since_last_activity(customer: Customer, as_of: Optional[datetime] = None) -> int:
    """Days since the last purchase, or the customer's age when there is none."""
    as_of = as_of or utc_now()
    if customer.last_purchase_at is None:
        return customer_age_days(customer, as_of)
    return days_between(customer.last_purchase_at, as_of)


def average_days_between_orders(customer: Customer) -> float:
    if customer.total_orders <= 1:
        return float(MISSING_DAYS_SENTINEL)
    last = customer.last_purchase_at or customer.first_purchase_at
    return days_between(customer.first_purchase_at, last) / customer.total_orders


# ----------------------------------------------------------------------
# factor lookups
# ----------------------------------------------------------------------

def _points_above(value: float, table: List[Tuple[float, int]]) -> int:
    """Points for the first threshold that ``value`` strictly exceeds."""
    for threshold, points in table:
        if value > threshold:
            return points
    return 0


def _points_below(value: float, table: List[Tuple[float, int]]) -> int:
    """Points for the first threshold that ``value`` is strictly under."""
    for threshold, points in table:
        if value < threshold:
            return points
    return 0


def recency_points(days_since_purchase: float) -> int:
    return _points_above(days_since_purchase, RECENCY_THRESHOLDS)


def frequency_points(avg_days_between_orders: float) -> int:
    return _points_above(avg_days_between_orders, FREQUENCY_THRESHOLDS)


def engagement_points(open_rate: float, unsubscribed: bool) -> int:
    if unsubscribed:
        return UNSUBSCRIBED_POINTS
    return _points_below(open_rate, OPEN_RATE_THRESHOLDS)


def order_value_points(avg_order_value: float) -> int:
    return _points_below(avg_order_value, ORDER_VALUE_THRESHOLDS)


def tenure_points(tenure_days: float) -> int:
    return _points_below(tenure_days, TENURE_THRESHOLDS)


def calculate_risk_score(customer: Customer, as_of: Optional[datetime] = None) -> int:
    """
    Churn-risk score in [0, 100].

    Parameters
    ----------
    customer : Customer
        Record to score. Must have ``total_orders >= 1``.
    as_of : datetime, optional
        Reference instant for day differences. Defaults to now (UTC).

    Raises
    ------
    InvalidCustomerError
        If the customer has no orders (average order value undefined).
    """
    as_of = as_of or utc_now()
    aov = customer.average_order_value

    score = (
        recency_points(days_since_last_purchase(customer, as_of))
        + frequency_points(average_days_between_orders(customer))
        + engagement_points(
            customer.email_engagement.open_rate,
            customer.email_engagement.unsubscribed,
        )
        + order_value_points(aov)
        + tenure_points(customer_age_days(customer, as_of))
    )
    return int(min(max(score, 0), 100))


# ----------------------------------------------------------------------
# loyalty / engagement heuristics
# ----------------------------------------------------------------------

def _noise(jitter: float, rng: Optional[np.random.Generator]) -> float:
    if jitter <= 0:
        return 0.0
    if rng is None:
        raise ValueError("A random generator is required when jitter > 0.")
    return float(rng.uniform(-jitter, jitter))


def _bounded_score(raw: float) -> int:
    clipped = float(np.clip(raw, 0.0, 100.0))
    return int(math.floor(clipped + 0.5))


def calculate_loyalty_score(
    customer: Customer,
    jitter: float = SCORE_JITTER,
    rng: Optional[np.random.Generator] = None,
) -> int:
    w = LOYALTY_WEIGHTS
    raw = (
        customer.total_orders * w["orders"]
        + customer.total_revenue / w["revenue_per_point"]
        + customer.customer_age / w["age_days_per_point"]
        + customer.email_engagement.open_rate * w["open_rate"]
        + _noise(jitter, rng)
    )
    return _bounded_score(raw)


def calculate_engagement_score(
    customer: Customer,
    jitter: float = SCORE_JITTER,
    rng: Optional[np.random.Generator] = None,
) -> int:
    w = ENGAGEMENT_WEIGHTS
    raw = (
        customer.email_engagement.open_rate * w["open_rate"]
        + customer.email_engagement.click_rate * w["click_rate"]
        + customer.total_orders * w["orders"]
        + _noise(jitter, rng)
    )
    return _bounded_score(raw)


def derive_status(inactive_days: int, risk_score: int) -> str:
    if inactive_days > CHURNED_INACTIVE_DAYS and risk_score > CHURNED_RISK_SCORE:
        return "churned"
    if inactive_days > DORMANT_INACTIVE_DAYS:
        return "dormant"
    return "active"


def score_customer(
    customer: Customer,
    as_of: Optional[datetime] = None,
    jitter: float = SCORE_JITTER,
    rng: Optional[np.random.Generator] = None,
) -> Customer:
    """
    Recompute every derived field and return a fresh record.

    Tenure and inactivity are refreshed first because loyalty depends on the
    customer's age; status depends on the new risk score.
    """
    as_of = as_of or utc_now()
    age = customer_age_days(customer, as_of)
    inactive = days_since_last_activity(customer, as_of)
    risk = calculate_risk_score(customer, as_of)

    refreshed = customer.evolve(
        customer_age=age,
        days_since_last_activity=inactive,
        risk_score=risk,
        status=derive_status(inactive, risk),
    )
    return refreshed.evolve(
        loyalty_score=calculate_loyalty_score(refreshed, jitter, rng),
        engagement_score=calculate_engagement_score(refreshed, jitter, rng),
    )
