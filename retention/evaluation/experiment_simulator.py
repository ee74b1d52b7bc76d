"""
Synthetic treatment-vs-control outcomes for retention experiments.

This is a stand-in for a real readout, not statistical inference: the
observed uplift is the play's estimate plus bounded noise and the p-value is
drawn uniformly. Randomness comes from an ``OutcomeSampler`` so tests and
repeated runs can fix it.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

import numpy as np

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))
from configs.config import (
    AVG_ORDER_VALUE_ASSUMPTION,
    DEFAULT_EXPERIMENT_SEGMENT_SIZE,
    MAX_SIMULATED_P_VALUE,
    MIN_WINNING_UPLIFT_PCT,
    SIGNIFICANCE_ALPHA,
    UPLIFT_JITTER_PCT_POINTS,
)
from retention.data.models import Experiment, ExperimentResults, Play

logger = logging.getLogger(__name__)


class ExperimentStateError(ValueError):
    """Experiment is not in a state that allows the requested transition."""


class OutcomeSampler:
    """Draws uplift noise and p-values from a numpy Generator."""

    def __init__(self, random_state: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(random_state)

    def uplift_noise(self, amplitude: float) -> float:
        if amplitude <= 0:
            return 0.0
        return float(self._rng.uniform(-amplitude, amplitude))

    def p_value(self, upper: float) -> float:
        return float(self._rng.uniform(0.0, upper))


class FixedOutcomeSampler(OutcomeSampler):
    """Returns the same noise and p-value on every draw."""

    def __init__(self, uplift_noise: float = 0.0, p_value: float = 0.05) -> None:
        super().__init__(random_state=0)
        self._noise = float(uplift_noise)
        self._p_value = float(p_value)

    def uplift_noise(self, amplitude: float) -> float:
        return self._noise

    def p_value(self, upper: float) -> float:
        return self._p_value


class ExperimentSimulator:
    """
    Produce an ``ExperimentResults`` from a play's static uplift estimate.

        uplift_pct          = max(0, est_uplift_pct + noise)
        incremental_revenue = segment_size × uplift_pct / 100 × avg_order_value

    The winner is Treatment when p < alpha and uplift > min_uplift_pct,
    Control when p < alpha and uplift < −min_uplift_pct, otherwise
    Inconclusive. Because uplift is floored at zero the Control branch can
    only trigger with a negative ``min_uplift_pct``.

    Parameters
    ----------
    avg_order_value : float
        Revenue assumed per incremental conversion.
    uplift_jitter : float
        Half-width of the uniform noise added to the estimate, in
        percentage points.
    max_p_value : float
        Upper bound of the simulated p-value.
    sampler : OutcomeSampler, optional
        Random source; a fresh unseeded sampler is used when omitted.
    """

    def __init__(
        self,
        avg_order_value: float = AVG_ORDER_VALUE_ASSUMPTION,
        uplift_jitter: float = UPLIFT_JITTER_PCT_POINTS,
        max_p_value: float = MAX_SIMULATED_P_VALUE,
        alpha: float = SIGNIFICANCE_ALPHA,
        min_uplift_pct: float = MIN_WINNING_UPLIFT_PCT,
        sampler: Optional[OutcomeSampler] = None,
    ) -> None:
        if avg_order_value < 0:
            raise ValueError("avg_order_value must be >= 0.")
        if uplift_jitter < 0:
            raise ValueError("uplift_jitter must be >= 0.")
        if not 0 < max_p_value <= 1:
            raise ValueError("max_p_value must be in (0, 1].")

        self.avg_order_value = avg_order_value
        self.uplift_jitter = uplift_jitter
        self.max_p_value = max_p_value
        self.alpha = alpha
        self.min_uplift_pct = min_uplift_pct
        self.sampler = sampler if sampler is not None else OutcomeSampler()

    def decide_winner(self, p_value: float, uplift_pct: float) -> str:
        if p_value < self.alpha and uplift_pct > self.min_uplift_pct:
            return "Treatment"
        if p_value < self.alpha and uplift_pct < -self.min_uplift_pct:
            return "Control"
        return "Inconclusive"

    def simulate(self, play: Play, control_pct: float, segment_size: int) -> ExperimentResults:
        if not 0 <= control_pct <= 100:
            raise ValueError("control_pct must be in [0, 100].")
        if segment_size < 0:
            raise ValueError("segment_size must be >= 0.")

        uplift = max(0.0, play.est_uplift_pct + self.sampler.uplift_noise(self.uplift_jitter))
        incremental_revenue = segment_size * uplift / 100 * self.avg_order_value
        p_value = self.sampler.p_value(self.max_p_value)
        winner = self.decide_winner(p_value, uplift)

        logger.info(
            "Simulated experiment for %s — uplift=%.2f%%, p=%.4f, revenue=%.2f, "
            "control=%.0f%%, n=%d | winner=%s",
            play.id, uplift, p_value, incremental_revenue,
            control_pct, segment_size, winner,
        )
        return ExperimentResults(
            incremental_revenue=incremental_revenue,
            winner=winner,
            p_value=p_value,
            uplift_pct=uplift,
        )


def simulate_experiment_results(
    play: Play,
    control_pct: float,
    segment_size: int,
    sampler: Optional[OutcomeSampler] = None,
) -> ExperimentResults:
    return ExperimentSimulator(sampler=sampler).simulate(play, control_pct, segment_size)


def complete_experiment(
    experiment: Experiment,
    play: Play,
    simulator: ExperimentSimulator,
    segment_size: int = DEFAULT_EXPERIMENT_SEGMENT_SIZE,
    completed_at: Optional[datetime] = None,
) -> Experiment:
    """
    Move a Running experiment to Completed with freshly simulated results.

    Returns a new record; results are generated exactly once per experiment.

    Raises
    ------
    ExperimentStateError
        If the experiment is not Running.
    ValueError
        If ``play`` is not the experiment's treatment play.
    """
    if experiment.status != "Running":
        raise ExperimentStateError(
            f"Experiment {experiment.id} is {experiment.status}; only Running experiments complete."
        )
    if play.id != experiment.treatment_play_id:
        raise ValueError(
            f"Play {play.id} is not the treatment of experiment {experiment.id}."
        )

    results = simulator.simulate(play, experiment.control_pct, segment_size)
    return replace(
        experiment,
        status="Completed",
        end_at=completed_at or datetime.now(experiment.start_at.tzinfo),
        results=results,
    )
