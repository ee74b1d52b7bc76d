"""
General utility helpers: logging configuration, reproducibility seeding,
result persistence and the text summary report.
"""
from __future__ import annotations

import json
import logging
import os
import random
from datetime import datetime, timezone
from typing import Any, Dict, List

import numpy as np
import pandas as pd


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """
    Configure root logger with a consistent format.

    Parameters
    ----------
    level : int
        Python logging level (default INFO).
    log_file : str | None
        Optional file path to write logs. Logs are always echoed to stdout.
    """
    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    handlers: list = [logging.StreamHandler()]
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, handlers=handlers)


def seed_everything(seed: int = 42) -> np.random.Generator:
    """Set global random seeds and return a Generator seeded the same way."""
    random.seed(seed)
    np.random.seed(seed)
    os.environ["PYTHONHASHSEED"] = str(seed)
    return np.random.default_rng(seed)


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, pd.DataFrame):
        return obj.to_dict(orient="records")
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def save_results(results: Dict[str, Any], path: str) -> None:
    """Persist a metrics dictionary as JSON; DataFrames become record lists."""
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    payload = dict(results)
    payload["_saved_at"] = datetime.now(timezone.utc).isoformat()
    with open(path, "w") as fh:
        json.dump(payload, fh, indent=2, default=_to_jsonable)
    logging.getLogger(__name__).info("Results saved to %s", path)


def format_retention_summary(
    kpis: Dict[str, Any],
    segment_summary: pd.DataFrame,
    experiments: List[Dict[str, Any]],
    recommendations: pd.DataFrame,
) -> str:
    """
    Format a human-readable retention report.

    Parameters
    ----------
    kpis : dict from compute_kpis().
    segment_summary : DataFrame from summarize_segments().
    experiments : list of Experiment.to_dict() records.
    recommendations : DataFrame from rank_population().

    Returns
    -------
    str : multi-line formatted report.
    """
    lines = [
        "=" * 70,
        "  RETENTION SUMMARY",
        "=" * 70,
        "",
        "[KPIs]",
        f"  Customers           : {kpis.get('n_customers', 0):,}",
        f"  At-risk (High band) : {kpis.get('at_risk_customers', 0):,}",
        f"  Mean risk score     : {kpis.get('predicted_churn_rate', 0):.1f}",
        f"  Retained rev. (30d) : ${kpis.get('retained_revenue_30d', 0):,.0f}",
        f"  Unclaimed revenue   : ${kpis.get('unclaimed_revenue', 0):,.0f}",
        "",
        "[Segments]",
    ]
    for row in segment_summary.itertuples(index=False):
        lines.append(
            f"  {row.segment_id:<38} n={row.count:>5,}  "
            f"risk={row.avg_risk_score:5.1f}  ltv=${row.avg_ltv:,.0f}"
        )

    lines += ["", "[Experiments]"]
    for exp in experiments:
        res = exp.get("results") or {}
        if res:
            lines.append(
                f"  {exp['id']:<10} {exp['status']:<10} winner={res.get('winner'):<12} "
                f"uplift={res.get('uplift_pct', 0):.2f}%  p={res.get('p_value', 1):.4f}  "
                f"rev=${res.get('incremental_revenue', 0):,.0f}"
            )
        else:
            lines.append(f"  {exp['id']:<10} {exp['status']:<10} (no results)")

    lines += ["", "[Next Best Action]"]
    if recommendations.empty:
        lines.append("  No eligible plays.")
    else:
        top = recommendations[recommendations["rank"] == 1]["play_name"].value_counts()
        for name, count in top.items():
            lines.append(f"  {name:<30} first choice for {count:,} customers")

    lines += ["", "=" * 70]
    return "\n".join(lines)
