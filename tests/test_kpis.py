"""
Unit tests for dashboard KPIs and chart series.
"""
import sys
import os
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from retention.data.repository import ActivityLog
from retention.data.seed import DEFAULT_PLAYS
from retention.evaluation.kpis import churn_risk_by_cohort, compute_kpis, offer_mix


class TestComputeKpis:
    def test_values(self, make_customer):
        customers = [
            make_customer(id="a", risk_score=80, total_revenue=1000.0),
            make_customer(id="b", risk_score=20, total_revenue=3000.0),
        ]
        kpis = compute_kpis(customers)
        assert kpis["n_customers"] == 2
        assert kpis["at_risk_customers"] == 1
        assert kpis["predicted_churn_rate"] == pytest.approx(50.0)
        assert kpis["retained_revenue_30d"] == pytest.approx(1200.0)
        assert kpis["unclaimed_revenue"] == pytest.approx(1600.0)

    def test_empty(self):
        kpis = compute_kpis([])
        assert kpis == {
            "n_customers": 0,
            "at_risk_customers": 0,
            "predicted_churn_rate": 0.0,
            "retained_revenue_30d": 0.0,
            "unclaimed_revenue": 0.0,
        }


class TestChurnRiskByCohort:
    def test_quarters(self, make_customer):
        def first(y, m, d):
            return datetime(y, m, d, tzinfo=timezone.utc)

        customers = [
            make_customer(id="a", first_purchase_at=first(2024, 1, 15), risk_score=40),
            make_customer(id="b", first_purchase_at=first(2024, 2, 1), risk_score=60),
            make_customer(id="c", first_purchase_at=first(2024, 4, 10), risk_score=30),
            make_customer(id="d", first_purchase_at=first(2023, 11, 3), risk_score=90),
        ]
        cohorts = churn_risk_by_cohort(customers)
        assert list(cohorts["cohort"]) == ["Q4 2023", "Q1 2024", "Q2 2024"]
        assert list(cohorts["risk"]) == [90.0, 50.0, 30.0]
        assert list(cohorts["n_customers"]) == [1, 2, 1]

    def test_empty(self):
        assert churn_risk_by_cohort([]).empty


class TestOfferMix:
    def test_catalog_fallback(self):
        mix = offer_mix(DEFAULT_PLAYS)
        assert set(mix["type"]) == {"Discount", "Loyalty", "Bundle", "Content", "Service"}
        assert (mix["percentage"] == 20.0).all()

    def test_counts_triggered_plays(self):
        log = ActivityLog()
        log.add("play_triggered", "x", {"play_id": "play-001"})
        log.add("play_triggered", "x", {"play_id": "play-001"})
        log.add("play_triggered", "x", {"play_id": "play-005"})
        log.add("risk_detected", "x", {"play_id": "play-002"})
        mix = offer_mix(DEFAULT_PLAYS, log.list()).set_index("type")
        assert mix.loc["Discount", "count"] == 2
        assert mix.loc["Service", "count"] == 1
        assert mix.loc["Discount", "percentage"] == pytest.approx(66.7)
        assert "Loyalty" not in mix.index

    def test_unknown_play_ids_ignored(self):
        log = ActivityLog()
        log.add("play_triggered", "x", {"play_id": "play-999"})
        mix = offer_mix(DEFAULT_PLAYS, log.list())
        assert mix["count"].sum() == len(DEFAULT_PLAYS)

    def test_nothing_to_count(self):
        assert offer_mix([]).empty
