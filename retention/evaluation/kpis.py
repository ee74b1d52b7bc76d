"""
Dashboard KPIs and chart series derived from the scored population, the
play catalog and the activity log.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import RETAINED_REVENUE_SHARE, UNCLAIMED_REVENUE_SHARE
from retention.data.models import ActivityEvent, Customer, Play, customers_to_frame

logger = logging.getLogger(__name__)


def compute_kpis(customers: Sequence[Customer]) -> Dict[str, float]:
    """
    Headline numbers for the dashboard.

    ``predicted_churn_rate`` is the mean risk score; revenue figures are
    fixed shares of total historical revenue.
    """
    n = len(customers)
    total_revenue = float(sum(c.total_revenue for c in customers))
    at_risk = sum(1 for c in customers if c.risk_band == "High")
    avg_risk = float(np.mean([c.risk_score for c in customers])) if n else 0.0

    kpis = {
        "n_customers": n,
        "at_risk_customers": at_risk,
        "predicted_churn_rate": round(avg_risk, 2),
        "retained_revenue_30d": round(total_revenue * RETAINED_REVENUE_SHARE, 2),
        "unclaimed_revenue": round(total_revenue * UNCLAIMED_REVENUE_SHARE, 2),
    }
    logger.info(
        "KPIs — %d customers, %d high risk, mean risk %.1f",
        n, at_risk, avg_risk,
    )
    return kpis


def churn_risk_by_cohort(customers: Sequence[Customer]) -> pd.DataFrame:
    """Mean risk score per first-purchase quarter (e.g. ``Q3 2024``), oldest first."""
    df = customers_to_frame(list(customers))
    if df.empty:
        return pd.DataFrame(columns=["cohort", "risk", "n_customers"])

    first = pd.to_datetime(df["first_purchase_at"], utc=True)
    df["period"] = first.dt.tz_localize(None).dt.to_period("Q")
    out = (
        df.groupby("period")
        .agg(risk=("risk_score", "mean"), n_customers=("id", "count"))
        .reset_index()
        .sort_values("period")
    )
    out["cohort"] = out["period"].map(lambda p: f"Q{p.quarter} {p.year}")
    out["risk"] = out["risk"].round(1)
    return out[["cohort", "risk", "n_customers"]].reset_index(drop=True)


def offer_mix(
    plays: Sequence[Play],
    activity: Optional[Sequence[ActivityEvent]] = None,
) -> pd.DataFrame:
    """
    Share of play kinds.

    Counts triggered plays in the activity log when it holds any
    ``play_triggered`` events that reference a known play; otherwise counts
    the catalog itself.
    """
    kind_by_id = {p.id: p.kind for p in plays}
    kinds: List[str] = []
    for event in activity or []:
        if event.type != "play_triggered":
            continue
        kind = kind_by_id.get(event.metadata.get("play_id"))
        if kind is not None:
            kinds.append(kind)
    if not kinds:
        kinds = [p.kind for p in plays]

    if not kinds:
        return pd.DataFrame(columns=["type", "count", "percentage"])

    counts = pd.Series(kinds).value_counts()
    out = counts.rename_axis("type").reset_index(name="count")
    out["percentage"] = (out["count"] / out["count"].sum() * 100).round(1)
    return out
