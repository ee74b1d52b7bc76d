"""
End-to-end pipeline runner.

Orchestrates:
  1. Synthetic population generation and scoring
  2. Segment classification and summary
  3. Next-best-action ranking against the play catalog
  4. Completion of running experiments via the outcome simulator
  5. KPIs and dashboard chart data
  6. Metric aggregation, reporting and plots
"""
from __future__ import annotations

import logging
import os
import sys

# ensure project packages are importable when running from project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__)))

from configs.config import (
    DEFAULT_EXPERIMENT_SEGMENT_SIZE,
    N_SEED_CUSTOMERS,
    RANDOM_STATE,
)
from retention.actions.triggers import trigger_segment_play
from retention.data.repository import ActivityLog, CustomerRepository, ExperimentStore, PlayCatalog
from retention.data.seed import (
    DEFAULT_PLAYS,
    default_experiments,
    generate_customers,
    generate_timelines,
)
from retention.evaluation.experiment_simulator import ExperimentSimulator, OutcomeSampler
from retention.evaluation.kpis import churn_risk_by_cohort, compute_kpis, offer_mix
from retention.scoring.next_best_action import rank_population
from retention.scoring.risk import utc_now
from retention.segments.classifier import OVERVIEW_SEGMENTS, summarize_segments
from retention.utils.helpers import format_retention_summary, save_results, seed_everything, setup_logging

logger = logging.getLogger(__name__)


def run_pipeline(
    n_customers: int = N_SEED_CUSTOMERS,
    output_dir: str = "outputs",
    random_state: int = RANDOM_STATE,
) -> dict:
    """
    Execute the full retention scoring pipeline.

    Parameters
    ----------
    n_customers : int
        Number of synthetic customer records to generate.
    output_dir : str
        Directory for saving results and plots.
    random_state : int
        Seed for the population and the experiment simulator.

    Returns
    -------
    dict : consolidated metrics from all pipeline stages.
    """
    setup_logging()
    seed_everything(random_state)
    os.makedirs(output_dir, exist_ok=True)
    as_of = utc_now()

    # ------------------------------------------------------------------
    # 1. population
    # ------------------------------------------------------------------
    logger.info("Generating synthetic population (%d customers)…", n_customers)
    customers = generate_customers(n_customers, random_state=random_state, as_of=as_of)
    events = generate_timelines(customers, random_state=random_state, as_of=as_of)
    repository = CustomerRepository(customers, events)
    catalog = PlayCatalog(DEFAULT_PLAYS)
    experiments = ExperimentStore(default_experiments(as_of))
    activity = ActivityLog()

    # ------------------------------------------------------------------
    # 2. segments
    # ------------------------------------------------------------------
    logger.info("Classifying segments…")
    segment_summary = summarize_segments(repository.all())
    overview_summary = summarize_segments(repository.all(), catalog=OVERVIEW_SEGMENTS)
    segment_summary.to_csv(os.path.join(output_dir, "segment_summary.csv"), index=False)

    # ------------------------------------------------------------------
    # 3. next best action
    # ------------------------------------------------------------------
    logger.info("Ranking plays per customer…")
    recommendations = rank_population(repository.all(), catalog.list(), top_n=3)
    recommendations.to_csv(os.path.join(output_dir, "next_best_actions.csv"), index=False)

    trigger_segment_play(
        activity, catalog, repository,
        segment_id="previously-high-value-likely-churn",
        play_id="play-005",
    )

    # ------------------------------------------------------------------
    # 4. experiments
    # ------------------------------------------------------------------
    logger.info("Completing running experiments…")
    simulator = ExperimentSimulator(sampler=OutcomeSampler(random_state))
    for exp in experiments.list():
        if exp.status == "Running":
            experiments.complete(exp.id, catalog, simulator, DEFAULT_EXPERIMENT_SEGMENT_SIZE)
    experiment_dicts = [e.to_dict() for e in experiments.list()]

    # ------------------------------------------------------------------
    # 5. KPIs / chart data
    # ------------------------------------------------------------------
    kpis = compute_kpis(repository.all())
    cohorts = churn_risk_by_cohort(repository.all())
    mix = offer_mix(catalog.list(), activity.list())
    riskiest = max(repository.all(), key=lambda c: c.risk_score, default=None)
    riskiest_timeline = (
        [e.to_dict() for e in repository.timeline(riskiest.id)[:10]] if riskiest else []
    )

    # ------------------------------------------------------------------
    # 6. plots (non-blocking; saved to disk)
    # ------------------------------------------------------------------
    try:
        from retention.utils.plotting import (
            plot_churn_risk_by_cohort,
            plot_experiment_uplift,
            plot_offer_mix,
            plot_risk_distribution,
            plot_segment_overview,
        )

        plot_risk_distribution(
            [c.risk_score for c in repository.all()],
            save_path=os.path.join(output_dir, "risk_distribution.png"),
        )
        plot_segment_overview(
            segment_summary,
            save_path=os.path.join(output_dir, "segment_overview.png"),
        )
        plot_churn_risk_by_cohort(
            cohorts,
            save_path=os.path.join(output_dir, "churn_risk_by_cohort.png"),
        )
        plot_offer_mix(
            mix,
            save_path=os.path.join(output_dir, "offer_mix.png"),
        )
        plot_experiment_uplift(
            experiment_dicts,
            save_path=os.path.join(output_dir, "experiment_uplift.png"),
        )
    except Exception as exc:
        logger.warning("Plot generation failed: %s", exc)

    # ------------------------------------------------------------------
    # 7. summary
    # ------------------------------------------------------------------
    all_metrics = {
        "as_of": as_of.isoformat(),
        "kpis": kpis,
        "segments": segment_summary,
        "overview_segments": overview_summary,
        "experiments": experiment_dicts,
        "churn_risk_by_cohort": cohorts,
        "offer_mix": mix,
        "activity": [e.to_dict() for e in activity.list()],
        "timeline_events": len(events),
        "riskiest_customer_timeline": riskiest_timeline,
    }

    save_results(all_metrics, os.path.join(output_dir, "retention_results.json"))

    report = format_retention_summary(kpis, segment_summary, experiment_dicts, recommendations)
    print(report)

    with open(os.path.join(output_dir, "retention_report.txt"), "w") as fh:
        fh.write(report)

    return all_metrics


if __name__ == "__main__":
    run_pipeline()
