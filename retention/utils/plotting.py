"""
Visualisation utilities: risk distribution, segment overview, churn risk by
cohort, offer mix and experiment outcomes.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import RISK_BAND_HIGH, RISK_BAND_MEDIUM

logger = logging.getLogger(__name__)

_PALETTE = sns.color_palette("deep")
_FIGSIZE_WIDE = (12, 5)
_FIGSIZE_SQUARE = (8, 6)
_BAND_COLORS = {"Low": _PALETTE[2], "Medium": _PALETTE[1], "High": _PALETTE[3]}


def _finish(fig: plt.Figure, save_path: Optional[str], label: str) -> plt.Figure:
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        logger.info("%s saved to %s", label, save_path)
    return fig


def plot_risk_distribution(
    risk_scores: Sequence[int],
    title: str = "Churn Risk Score Distribution",
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Histogram of risk scores with the band cut-offs marked."""
    scores = np.asarray(risk_scores, dtype=float)
    fig, ax = plt.subplots(figsize=_FIGSIZE_SQUARE)

    sns.histplot(scores, bins=20, binrange=(0, 100), ax=ax,
                 color=_PALETTE[0], edgecolor="white", alpha=0.8)
    ax.axvline(RISK_BAND_MEDIUM, color=_BAND_COLORS["Medium"], linestyle="--",
               linewidth=1.5, label=f"Medium ≥ {RISK_BAND_MEDIUM}")
    ax.axvline(RISK_BAND_HIGH, color=_BAND_COLORS["High"], linestyle="--",
               linewidth=1.5, label=f"High ≥ {RISK_BAND_HIGH}")

    ax.set_xlabel("Risk Score", fontsize=12)
    ax.set_ylabel("Customers", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.legend(fontsize=11)
    ax.grid(True, alpha=0.3)
    return _finish(fig, save_path, "Risk distribution")


def plot_segment_overview(
    segment_summary: pd.DataFrame,
    title: str = "Segment Overview",
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Segment sizes (left) and mean risk score per segment (right)."""
    ordered = segment_summary.sort_values("count", ascending=True)
    fig, axes = plt.subplots(1, 2, figsize=_FIGSIZE_WIDE, sharey=True)

    axes[0].barh(ordered["segment_id"], ordered["count"], color=_PALETTE[0], edgecolor="white")
    axes[0].set_title("Customers per Segment", fontsize=12, fontweight="bold")
    axes[0].set_xlabel("Count")
    axes[0].grid(True, axis="x", alpha=0.3)

    axes[1].barh(ordered["segment_id"], ordered["avg_risk_score"], color=_PALETTE[3], edgecolor="white")
    axes[1].set_title("Mean Risk Score", fontsize=12, fontweight="bold")
    axes[1].set_xlim(0, 100)
    axes[1].grid(True, axis="x", alpha=0.3)

    fig.suptitle(title, fontsize=14, fontweight="bold", y=1.02)
    return _finish(fig, save_path, "Segment overview")


def plot_churn_risk_by_cohort(
    cohorts: pd.DataFrame,
    title: str = "Churn Risk by Cohort",
    save_path: Optional[str] = None,
) -> plt.Figure:
    fig, ax = plt.subplots(figsize=_FIGSIZE_SQUARE)

    ax.bar(cohorts["cohort"], cohorts["risk"], color=_PALETTE[1], edgecolor="white")
    ax.set_xlabel("First-Purchase Cohort", fontsize=12)
    ax.set_ylabel("Mean Risk Score", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.tick_params(axis="x", rotation=45)
    ax.grid(True, axis="y", alpha=0.3)
    return _finish(fig, save_path, "Cohort risk chart")


def plot_offer_mix(
    mix: pd.DataFrame,
    title: str = "Offer Mix",
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Pie chart of play kinds."""
    fig, ax = plt.subplots(figsize=_FIGSIZE_SQUARE)

    ax.pie(
        mix["count"],
        labels=[f"{t} ({p:.0f}%)" for t, p in zip(mix["type"], mix["percentage"])],
        colors=_PALETTE[: len(mix)],
        startangle=90,
        wedgeprops={"edgecolor": "white"},
    )
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.axis("equal")
    return _finish(fig, save_path, "Offer mix")


def plot_experiment_uplift(
    experiments: List[dict],
    title: str = "Experiment Uplift",
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Observed uplift for completed experiments, coloured by winner."""
    done = [e for e in experiments if e.get("results")]
    winner_colors = {"Treatment": _PALETTE[2], "Control": _PALETTE[3], "Inconclusive": _PALETTE[7]}

    fig, ax = plt.subplots(figsize=_FIGSIZE_SQUARE)
    names = [e["name"] for e in done]
    uplifts = [e["results"]["uplift_pct"] for e in done]
    colors = [winner_colors[e["results"]["winner"]] for e in done]

    ax.bar(names, uplifts, color=colors, edgecolor="white")
    ax.axhline(0, color="grey", linestyle="--", linewidth=1)
    ax.set_ylabel("Uplift (%)", fontsize=12)
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.tick_params(axis="x", rotation=20)
    ax.grid(True, axis="y", alpha=0.3)
    return _finish(fig, save_path, "Experiment uplift")
