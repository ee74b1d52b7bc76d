"""
Unit tests for the segment classifier.
"""
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from configs.config import HIGH_VALUE_CHURN_RISK_THRESHOLD_ALT
from retention.data.seed import generate_customers
from retention.segments.classifier import (
    OVERVIEW_SEGMENTS,
    SEGMENTS,
    SegmentThresholds,
    UnknownSegmentError,
    classify,
    merge_summaries,
    summarize_segments,
)
from conftest import AS_OF


@pytest.fixture(scope="module")
def population():
    return generate_customers(300, random_state=7, as_of=AS_OF)


class TestCatalog:
    def test_eight_segments(self):
        assert list(SEGMENTS) == [
            "previously-high-value-likely-churn",
            "lost-customers-resurrectable",
            "high-value-no-discount-needed",
            "price-sensitive-at-risk",
            "new-customers-high-potential",
            "seasonal-customers-dormant",
            "high-frequency-low-value",
            "one-time-buyers-engaged",
        ]

    def test_unknown_segment(self):
        with pytest.raises(UnknownSegmentError):
            classify([], "vip-whales")

    def test_unknown_segment_is_key_error(self):
        with pytest.raises(KeyError):
            classify([], "high-risk")  # overview id, not in the default catalog


class TestMembership:
    @pytest.mark.parametrize("segment_id, overrides", [
        ("previously-high-value-likely-churn", dict(ltv=3000.0, risk_score=55)),
        ("lost-customers-resurrectable", dict(ltv=600.0, days_since_last_activity=100)),
        ("lost-customers-resurrectable", dict(ltv=600.0, status="churned", days_since_last_activity=95)),
        ("high-value-no-discount-needed", dict(ltv=6000.0, risk_score=20, loyalty_score=70)),
        ("price-sensitive-at-risk", dict(risk_score=45, price_sensitivity="high")),
        ("new-customers-high-potential", dict(customer_age=20, engagement_score=60)),
        ("seasonal-customers-dormant", dict(days_since_last_activity=50, seasonal_pattern=True)),
        ("seasonal-customers-dormant", dict(days_since_last_activity=50, customer_age=200)),
        ("high-frequency-low-value", dict(total_orders=6, total_revenue=300.0)),
        ("one-time-buyers-engaged", dict(total_orders=1, engagement_score=40, open_rate=0.3)),
    ])
    def test_member(self, make_customer, segment_id, overrides):
        assert classify([make_customer()], segment_id).count == 0
        assert classify([make_customer(**overrides)], segment_id).count == 1

    @pytest.mark.parametrize("segment_id, overrides", [
        ("lost-customers-resurrectable", dict(ltv=600.0, days_since_last_activity=130)),
        ("lost-customers-resurrectable", dict(ltv=300.0, days_since_last_activity=100)),
        ("price-sensitive-at-risk", dict(risk_score=45, price_sensitivity="low")),
        ("high-frequency-low-value", dict(total_orders=5, total_revenue=100.0)),
        ("one-time-buyers-engaged", dict(total_orders=1, engagement_score=40, open_rate=0.1)),
    ])
    def test_non_member(self, make_customer, segment_id, overrides):
        assert classify([make_customer(**overrides)], segment_id).count == 0

    def test_zero_order_customer_is_safe(self, make_customer):
        customer = make_customer(total_orders=0, total_revenue=0.0)
        for segment_id in SEGMENTS:
            classify([customer], segment_id)


class TestThresholds:
    def test_high_value_churn_threshold_is_configurable(self, make_customer):
        customer = make_customer(ltv=3000.0, risk_score=55)
        segment_id = "previously-high-value-likely-churn"
        assert classify([customer], segment_id).count == 1
        stricter = SegmentThresholds(high_value_churn_risk=HIGH_VALUE_CHURN_RISK_THRESHOLD_ALT)
        assert classify([customer], segment_id, stricter).count == 0

    def test_default_threshold(self):
        assert SegmentThresholds().high_value_churn_risk == 50


class TestStatistics:
    def test_means(self, make_customer):
        members = [
            make_customer(id="a", ltv=3000.0, risk_score=60),
            make_customer(id="b", ltv=5000.0, risk_score=80),
        ]
        result = classify(members, "previously-high-value-likely-churn")
        assert result.count == 2
        assert result.avg_risk_score == pytest.approx(70.0)
        assert result.avg_ltv == pytest.approx(4000.0)
        assert result.to_dict()["customer_ids"] == ["a", "b"]

    @pytest.mark.parametrize("segment_id", list(SEGMENTS))
    def test_empty_population(self, segment_id):
        result = classify([], segment_id)
        assert (result.count, result.avg_risk_score, result.avg_ltv) == (0, 0.0, 0.0)
        assert result.customers == []

    @pytest.mark.parametrize("segment_id", list(OVERVIEW_SEGMENTS))
    def test_empty_population_overview(self, segment_id):
        result = classify([], segment_id, catalog=OVERVIEW_SEGMENTS)
        assert result.count == 0

    def test_idempotent(self, population):
        for segment_id in SEGMENTS:
            first = classify(population, segment_id)
            second = classify(population, segment_id)
            assert first.to_dict() == second.to_dict()

    def test_population_not_modified(self, population):
        before = [c.to_dict() for c in population]
        summarize_segments(population)
        assert [c.to_dict() for c in population] == before

    def test_overview_inactive(self, make_customer):
        result = classify(
            [make_customer(last_purchase_at=None, days_since_last_activity=10)],
            "inactive",
            catalog=OVERVIEW_SEGMENTS,
        )
        assert result.count == 1


class TestSummaries:
    def test_one_row_per_segment(self, population):
        summary = summarize_segments(population)
        assert list(summary["segment_id"]) == list(SEGMENTS)
        assert (summary["share_pct"].between(0, 100)).all()

    def test_empty_summary(self):
        summary = summarize_segments([])
        assert len(summary) == len(SEGMENTS)
        assert (summary["count"] == 0).all()

    def test_merge_matches_full_population(self, population):
        shards = [summarize_segments(population[:120]), summarize_segments(population[120:])]
        merged = merge_summaries(shards).set_index("segment_id")
        full = summarize_segments(population).set_index("segment_id")

        assert list(merged.index) == list(full.index)
        assert (merged["count"] == full["count"]).all()
        for segment_id in full.index:
            assert merged.loc[segment_id, "avg_risk_score"] == pytest.approx(
                full.loc[segment_id, "avg_risk_score"]
            )
            assert merged.loc[segment_id, "avg_ltv"] == pytest.approx(full.loc[segment_id, "avg_ltv"])

    def test_merge_nothing(self):
        assert merge_summaries([]).empty
