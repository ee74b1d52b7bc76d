"""
Next-best-action ranking: which plays a customer may receive, and in what
order.

    score = est_uplift_pct × risk_band_multiplier × ltv_tier_multiplier
            − est_cost_pct_of_rev × COST_PENALTY

floored at zero. Both multipliers are applied to the uplift before the cost
penalty is subtracted; the cost penalty itself is not scaled.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import (
    COST_PENALTY,
    ELIGIBILITY_MODE,
    LTV_TIER_MULTIPLIERS,
    RISK_BAND_MULTIPLIERS,
)
from retention.data.models import Customer, Play
from retention.scoring.eligibility import compile_eligibility

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredPlay:
    play: Play
    score: float

    def to_dict(self) -> Dict:
        out = self.play.to_dict()
        out["score"] = round(self.score, 4)
        return out


def is_eligible(customer: Customer, play: Play, mode: str = ELIGIBILITY_MODE) -> bool:
    return compile_eligibility(play.eligibility, mode).evaluate(customer)


def calculate_play_score(customer: Customer, play: Play) -> float:
    score = float(play.est_uplift_pct)
    score *= RISK_BAND_MULTIPLIERS.get(customer.risk_band, 1.0)
    score *= LTV_TIER_MULTIPLIERS.get(customer.ltv_tier, 1.0)
    score -= play.est_cost_pct_of_rev * COST_PENALTY
    return max(score, 0.0)


def score_plays(
    customer: Customer,
    plays: Sequence[Play],
    mode: str = ELIGIBILITY_MODE,
) -> List[ScoredPlay]:
    """
    Eligible plays for ``customer``, best first.

    The sort is stable, so plays with equal scores keep their catalog order.
    """
    scored = [
        ScoredPlay(play=play, score=calculate_play_score(customer, play))
        for play in plays
        if is_eligible(customer, play, mode)
    ]
    return sorted(scored, key=lambda sp: sp.score, reverse=True)


def rank_population(
    customers: Sequence[Customer],
    plays: Sequence[Play],
    top_n: Optional[int] = 1,
    mode: str = ELIGIBILITY_MODE,
) -> pd.DataFrame:
    """
    Next-best-action table for a population.

    Returns
    -------
    pd.DataFrame with columns customer_id, play_id, play_name, score, rank;
    ``rank`` starts at 1 per customer. Customers with no eligible play do
    not appear.
    """
    records = []
    for customer in customers:
        ranked = score_plays(customer, plays, mode)
        if top_n is not None:
            ranked = ranked[:top_n]
        for rank, sp in enumerate(ranked, start=1):
            records.append({
                "customer_id": customer.id,
                "play_id": sp.play.id,
                "play_name": sp.play.name,
                "score": sp.score,
                "rank": rank,
            })

    table = pd.DataFrame(
        records, columns=["customer_id", "play_id", "play_name", "score", "rank"]
    )
    logger.info(
        "Next-best-action ranking — %d customers, %d plays, %d recommendations",
        len(customers), len(plays), len(table),
    )
    return table
