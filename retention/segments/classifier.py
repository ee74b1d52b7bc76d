"""
Rule-based customer segments.

Each segment is a fixed predicate over a customer record. Classification is
a single read-only pass over the population and is fully deterministic: the
same population and segment id always give the same subset and statistics.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import HIGH_VALUE_CHURN_RISK_THRESHOLD
from retention.data.models import Customer

logger = logging.getLogger(__name__)


class UnknownSegmentError(KeyError):
    """Segment id is not part of the catalog."""


@dataclass(frozen=True)
class SegmentThresholds:
    """Numeric cut-offs used by the segment predicates."""

    high_value_churn_risk: float = HIGH_VALUE_CHURN_RISK_THRESHOLD
    resurrectable_inactive_days: int = 90
    resurrectable_max_inactive_days: int = 120
    no_discount_max_risk: float = 40
    no_discount_min_loyalty: float = 60
    price_sensitive_min_risk: float = 40
    new_customer_max_age_days: int = 45
    new_customer_min_engagement: float = 50
    seasonal_min_inactive_days: int = 45
    seasonal_min_age_days: int = 180
    high_frequency_min_orders: int = 6
    high_frequency_max_order_value: float = 75
    one_time_min_engagement: float = 30
    one_time_min_open_rate: float = 0.2
    # overview segments
    high_risk_min_score: float = 70
    inactive_days: int = 60
    low_engagement_max_open_rate: float = 0.2


Predicate = Callable[[Customer, SegmentThresholds], bool]


@dataclass(frozen=True)
class Segment:
    id: str
    name: str
    description: str
    predicate: Predicate

    def matches(self, customer: Customer, thresholds: SegmentThresholds) -> bool:
        return self.predicate(customer, thresholds)


@dataclass
class SegmentResult:
    segment_id: str
    customers: List[Customer] = field(default_factory=list)
    count: int = 0
    avg_risk_score: float = 0.0
    avg_ltv: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "segment_id": self.segment_id,
            "count": self.count,
            "avg_risk_score": round(self.avg_risk_score, 2),
            "avg_ltv": round(self.avg_ltv, 2),
            "customer_ids": [c.id for c in self.customers],
        }


_GOLD_PLUS = ("Gold", "VIP")
_SILVER_PLUS = ("Silver", "Gold", "VIP")


def _high_value_likely_churn(c: Customer, t: SegmentThresholds) -> bool:
    return c.ltv_tier in _GOLD_PLUS and c.risk_score >= t.high_value_churn_risk


def _lost_resurrectable(c: Customer, t: SegmentThresholds) -> bool:
    lapsed = c.status == "churned" or c.days_since_last_activity > t.resurrectable_inactive_days
    return (
        lapsed
        and c.ltv_tier in _SILVER_PLUS
        and c.days_since_last_activity < t.resurrectable_max_inactive_days
    )


def _high_value_no_discount(c: Customer, t: SegmentThresholds) -> bool:
    return (
        c.ltv_tier in _GOLD_PLUS
        and c.risk_score < t.no_discount_max_risk
        and c.loyalty_score >= t.no_discount_min_loyalty
    )


def _price_sensitive_at_risk(c: Customer, t: SegmentThresholds) -> bool:
    return c.risk_score >= t.price_sensitive_min_risk and c.price_sensitivity == "high"


def _new_high_potential(c: Customer, t: SegmentThresholds) -> bool:
    return (
        c.customer_age < t.new_customer_max_age_days
        and c.engagement_score >= t.new_customer_min_engagement
    )


def _seasonal_dormant(c: Customer, t: SegmentThresholds) -> bool:
    return c.days_since_last_activity > t.seasonal_min_inactive_days and (
        c.seasonal_pattern or c.customer_age > t.seasonal_min_age_days
    )


def _high_frequency_low_value(c: Customer, t: SegmentThresholds) -> bool:
    # order-count guard comes first so the average is always defined
    return (
        c.total_orders >= t.high_frequency_min_orders
        and c.total_revenue / c.total_orders < t.high_frequency_max_order_value
    )


def _one_time_engaged(c: Customer, t: SegmentThresholds) -> bool:
    return (
        c.total_orders == 1
        and c.engagement_score >= t.one_time_min_engagement
        and c.email_engagement.open_rate >= t.one_time_min_open_rate
    )


def _catalog(segments: Iterable[Segment]) -> Dict[str, Segment]:
    return {s.id: s for s in segments}


SEGMENTS: Dict[str, Segment] = _catalog([
    Segment(
        "previously-high-value-likely-churn",
        "Previously High Value, Likely to Churn",
        "Gold/VIP customers whose risk score has climbed",
        _high_value_likely_churn,
    ),
    Segment(
        "lost-customers-resurrectable",
        "Lost Customers (Resurrectable)",
        "Silver+ customers lapsed for 90-120 days or marked churned",
        _lost_resurrectable,
    ),
    Segment(
        "high-value-no-discount-needed",
        "High Value, No Discount Needed",
        "Loyal Gold/VIP customers at low risk",
        _high_value_no_discount,
    ),
    Segment(
        "price-sensitive-at-risk",
        "Price Sensitive, At Risk",
        "Medium or high risk customers who respond to price",
        _price_sensitive_at_risk,
    ),
    Segment(
        "new-customers-high-potential",
        "New Customers, High Potential",
        "Customers under 45 days old with strong engagement",
        _new_high_potential,
    ),
    Segment(
        "seasonal-customers-dormant",
        "Seasonal Customers (Dormant)",
        "Seasonal or long-tenured customers inactive for 45+ days",
        _seasonal_dormant,
    ),
    Segment(
        "high-frequency-low-value",
        "High Frequency, Low Value",
        "Six or more orders with an average order value under $75",
        _high_frequency_low_value,
    ),
    Segment(
        "one-time-buyers-engaged",
        "One-Time Buyers (Engaged)",
        "Single-order customers still opening e-mail",
        _one_time_engaged,
    ),
])

OVERVIEW_SEGMENTS: Dict[str, Segment] = _catalog([
    Segment(
        "high-risk",
        "High Risk Customers",
        "Customers with risk score > 70",
        lambda c, t: c.risk_score > t.high_risk_min_score,
    ),
    Segment(
        "high-value",
        "High Value Customers",
        "VIP and Gold tier customers",
        lambda c, t: c.ltv_tier in _GOLD_PLUS,
    ),
    Segment(
        "inactive",
        "Inactive Customers",
        "No purchase in the last 60 days",
        lambda c, t: c.last_purchase_at is None or c.days_since_last_activity > t.inactive_days,
    ),
    Segment(
        "low-engagement",
        "Low Email Engagement",
        "E-mail open rate below 20%",
        lambda c, t: c.email_engagement.open_rate < t.low_engagement_max_open_rate,
    ),
])


def get_segment(segment_id: str, catalog: Optional[Dict[str, Segment]] = None) -> Segment:
    catalog = SEGMENTS if catalog is None else catalog
    try:
        return catalog[segment_id]
    except KeyError:
        raise UnknownSegmentError(
            f"Unknown segment id {segment_id!r}; expected one of {sorted(catalog)}"
        ) from None


def classify(
    population: Sequence[Customer],
    segment_id: str,
    thresholds: Optional[SegmentThresholds] = None,
    catalog: Optional[Dict[str, Segment]] = None,
) -> SegmentResult:
    """
    Members of ``segment_id`` and their summary statistics.

    Parameters
    ----------
    population : sequence of Customer
        Scored customer records; not modified.
    segment_id : str
        Key of ``catalog`` (defaults to ``SEGMENTS``).
    thresholds : SegmentThresholds, optional
        Overrides for the predicate cut-offs.

    Returns
    -------
    SegmentResult with count, mean risk score and mean LTV (all zero for an
    empty subset).

    Raises
    ------
    UnknownSegmentError
    """
    segment = get_segment(segment_id, catalog)
    thresholds = thresholds or SegmentThresholds()

    members = [c for c in population if segment.matches(c, thresholds)]
    count = len(members)
    if count == 0:
        return SegmentResult(segment_id=segment.id)

    return SegmentResult(
        segment_id=segment.id,
        customers=members,
        count=count,
        avg_risk_score=float(np.mean([c.risk_score for c in members])),
        avg_ltv=float(np.mean([c.ltv for c in members])),
    )


def summarize_segments(
    population: Sequence[Customer],
    thresholds: Optional[SegmentThresholds] = None,
    catalog: Optional[Dict[str, Segment]] = None,
) -> pd.DataFrame:
    """
    One row per catalog segment: segment_id, name, count, avg_risk_score,
    avg_ltv, share_pct (of the population).
    """
    catalog = SEGMENTS if catalog is None else catalog
    n = len(population)
    rows = []
    for segment_id, segment in catalog.items():
        result = classify(population, segment_id, thresholds, catalog)
        rows.append({
            "segment_id": segment_id,
            "name": segment.name,
            "count": result.count,
            "avg_risk_score": result.avg_risk_score,
            "avg_ltv": result.avg_ltv,
            "share_pct": result.count / n * 100 if n else 0.0,
        })

    summary = pd.DataFrame(
        rows,
        columns=["segment_id", "name", "count", "avg_risk_score", "avg_ltv", "share_pct"],
    )
    logger.info(
        "Segment summary — %d customers across %d segments (largest: %s)",
        n,
        len(summary),
        summary.sort_values("count", ascending=False)["segment_id"].iloc[0]
        if n and len(summary) else "n/a",
    )
    return summary


def merge_summaries(shards: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """
    Combine per-shard ``summarize_segments`` tables into population totals.

    Means are re-weighted by shard counts; ``share_pct`` is dropped because
    shard sizes are not carried in the table.
    """
    if not shards:
        return pd.DataFrame(columns=["segment_id", "name", "count", "avg_risk_score", "avg_ltv"])

    stacked = pd.concat(shards, ignore_index=True)
    stacked["risk_total"] = stacked["avg_risk_score"] * stacked["count"]
    stacked["ltv_total"] = stacked["avg_ltv"] * stacked["count"]

    merged = (
        stacked.groupby(["segment_id", "name"], sort=False)[["count", "risk_total", "ltv_total"]]
        .sum()
        .reset_index()
    )
    counts = merged["count"].replace(0, np.nan)
    merged["avg_risk_score"] = (merged["risk_total"] / counts).fillna(0.0)
    merged["avg_ltv"] = (merged["ltv_total"] / counts).fillna(0.0)
    return merged[["segment_id", "name", "count", "avg_risk_score", "avg_ltv"]]
