"""
Unit tests for the synthetic population generator.
"""
import sys
import os

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from retention.data.seed import (
    CUSTOMER_PROFILES,
    DEFAULT_PLAYS,
    default_experiments,
    generate_customer,
    generate_customers,
    generate_timeline,
    generate_timelines,
)
from retention.scoring.risk import calculate_risk_score, days_since_last_activity, get_risk_band
from conftest import AS_OF


@pytest.fixture(scope="module")
def population():
    return generate_customers(400, random_state=42, as_of=AS_OF)


class TestGenerateCustomers:
    def test_size_and_ids(self, population):
        assert len(population) == 400
        assert population[0].id == "cust-000"
        assert len({c.id for c in population}) == 400

    def test_reproducible(self, population):
        again = generate_customers(400, random_state=42, as_of=AS_OF)
        assert [c.to_dict() for c in again] == [c.to_dict() for c in population]

    def test_different_seed_differs(self, population):
        other = generate_customers(400, random_state=43, as_of=AS_OF)
        assert [c.to_dict() for c in other] != [c.to_dict() for c in population]

    def test_zero(self):
        assert generate_customers(0, as_of=AS_OF) == []

    def test_negative(self):
        with pytest.raises(ValueError):
            generate_customers(-1, as_of=AS_OF)

    def test_scores_are_consistent(self, population):
        for c in population:
            assert c.risk_score == calculate_risk_score(c, AS_OF)
            assert c.risk_band == get_risk_band(c.risk_score)
            assert 0 <= c.loyalty_score <= 100
            assert 0 <= c.engagement_score <= 100
            assert c.days_since_last_activity == days_since_last_activity(c, AS_OF)

    def test_purchase_dates(self, population):
        for c in population:
            assert c.first_purchase_at <= AS_OF
            assert c.total_orders >= 1
            if c.last_purchase_at is not None:
                assert c.first_purchase_at <= c.last_purchase_at <= AS_OF

    def test_mix_covers_bands(self, population):
        assert {"Low", "Medium"} <= {c.risk_band for c in population}
        assert any(c.last_purchase_at is None for c in population)
        assert any(c.seasonal_pattern for c in population)


class TestGenerateCustomer:
    @pytest.mark.parametrize("profile", list(CUSTOMER_PROFILES))
    def test_profiles(self, profile):
        customer = generate_customer("cust-x", np.random.default_rng(0), as_of=AS_OF, profile=profile)
        assert customer.seasonal_pattern == (profile == "seasonal")
        if profile in ("new", "churned", "high_value", "price_sensitive"):
            assert customer.price_sensitivity == "high"

    def test_unknown_profile(self):
        with pytest.raises(KeyError):
            generate_customer("cust-x", np.random.default_rng(0), as_of=AS_OF, profile="whale")


class TestCatalogSeed:
    def test_play_ids(self):
        assert [p.id for p in DEFAULT_PLAYS] == [f"play-00{i}" for i in range(1, 6)]

    def test_experiments(self):
        running, completed = default_experiments(AS_OF)
        assert running.status == "Running" and running.results is None
        assert completed.results.winner == "Treatment"
        assert completed.results.uplift_pct == 18.5


class TestGenerateTimeline:
    @pytest.fixture(scope="class")
    def customers(self):
        return generate_customers(60, random_state=7, as_of=AS_OF)

    @pytest.fixture(scope="class")
    def events(self, customers):
        return generate_timelines(customers, random_state=7, as_of=AS_OF)

    def test_reproducible(self, customers, events):
        again = generate_timelines(customers, random_state=7, as_of=AS_OF)
        assert [e.to_dict() for e in again] == [e.to_dict() for e in events]

    def test_population_unchanged(self, customers, events):
        again = generate_customers(60, random_state=7, as_of=AS_OF)
        assert [c.to_dict() for c in again] == [c.to_dict() for c in customers]

    def test_counts_per_customer(self, customers, events):
        for customer in customers:
            mine = [e for e in events if e.customer_id == customer.id]
            kinds = [e.kind for e in mine]
            assert 2 <= kinds.count("transaction") <= 8
            assert 5 <= kinds.count("session") <= 20
            assert 3 <= kinds.count("email") <= 15
            assert kinds.count("support") <= 3
            assert kinds.count("review") <= 5

    def test_optional_kinds_sometimes_present(self, events):
        kinds = {e.kind for e in events}
        assert {"transaction", "session", "email", "support", "review"} == kinds

    def test_nothing_after_as_of(self, events):
        assert all(e.timestamp <= AS_OF for e in events)

    def test_transactions(self, customers, events):
        first_purchase = {c.id: c.first_purchase_at for c in customers}
        for txn in (e for e in events if e.kind == "transaction"):
            assert 1 <= len(txn.items) <= 4
            assert len({item.sku for item in txn.items}) == len(txn.items)
            assert all(1 <= item.qty <= 3 for item in txn.items)
            assert txn.subtotal == pytest.approx(
                sum(item.price * item.qty for item in txn.items), abs=0.01
            )
            assert 0 <= txn.discount <= 0.25 * txn.subtotal + 0.01
            assert 0 <= txn.refund <= 0.5 * txn.subtotal + 0.01
            assert txn.purchased_at >= first_purchase[txn.customer_id]

    def test_ids_are_unique(self, events):
        assert len({e.id for e in events}) == len(events)

    def test_single_customer(self, make_customer):
        customer = make_customer(id="cust-x")
        events = generate_timeline(customer, np.random.default_rng(3), as_of=AS_OF)
        assert events
        assert {e.customer_id for e in events} == {"cust-x"}
