"""
Unit tests for eligibility rule parsing and evaluation.
"""
import sys
import os
import logging

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from retention.data.seed import DEFAULT_PLAYS
from retention.scoring.eligibility import (
    Always,
    And,
    Comparison,
    EligibilityRuleError,
    Membership,
    Not,
    Or,
    compile_eligibility,
    legacy_eligibility,
    lookup_field,
    parse_eligibility,
)


@pytest.fixture
def vip_high_risk(make_customer):
    return make_customer(risk_score=82, ltv=6000.0, status="dormant", open_rate=0.3)


@pytest.fixture
def silver_low_risk(make_customer):
    return make_customer(risk_score=10, ltv=600.0)


class TestParser:
    def test_conjunction(self):
        expr = parse_eligibility("risk >= 70 AND ltvTier in [Gold,VIP]")
        assert expr == And((
            Comparison("risk", ">=", 70.0),
            Membership("ltvTier", ("Gold", "VIP")),
        ))

    def test_empty_rule_is_always(self):
        assert parse_eligibility("") == Always()
        assert parse_eligibility("   ") == Always()

    def test_or_binds_looser_than_and(self):
        expr = parse_eligibility("risk >= 70 OR risk >= 40 AND ltv > 100")
        assert isinstance(expr, Or)
        assert isinstance(expr.terms[1], And)

    def test_not_and_parentheses(self, vip_high_risk):
        expr = parse_eligibility("NOT (status = churned OR riskBand = 'Low')")
        assert isinstance(expr, Not)
        assert expr.evaluate(vip_high_risk)

    def test_nested_email_field(self, vip_high_risk):
        assert parse_eligibility("emailEngagement.openRate >= 0.2").evaluate(vip_high_risk)
        assert not parse_eligibility("emailEngagement.openRate > 0.3").evaluate(vip_high_risk)

    def test_boolean_literal(self, make_customer):
        expr = parse_eligibility("emailEngagement.unsubscribed = false")
        assert expr.evaluate(make_customer())
        assert not expr.evaluate(make_customer(unsubscribed=True))

    @pytest.mark.parametrize("literal", ["'false'", '"FALSE"', "'False'"])
    def test_quoted_boolean_literal(self, make_customer, literal):
        expr = compile_eligibility(f"emailEngagement.unsubscribed = {literal}", "expression")
        assert expr == Comparison("emailEngagement.unsubscribed", "=", False)
        assert expr.evaluate(make_customer(unsubscribed=False))
        assert not expr.evaluate(make_customer(unsubscribed=True))

    def test_boolean_membership(self, make_customer):
        expr = parse_eligibility("emailEngagement.unsubscribed in ['true']")
        assert expr.evaluate(make_customer(unsubscribed=True))
        assert not expr.evaluate(make_customer(unsubscribed=False))

    @pytest.mark.parametrize("rule", [
        "emailEngagement.unsubscribed = 'maybe'",
        "emailEngagement.unsubscribed in [yes, no]",
    ])
    def test_rejects_non_boolean_text(self, rule):
        with pytest.raises(EligibilityRuleError):
            parse_eligibility(rule)

    def test_case_insensitive(self, vip_high_risk):
        expr = parse_eligibility("RISK >= 70 and LTVTIER IN [gold, vip]")
        assert expr.evaluate(vip_high_risk)

    def test_field_lookup_is_case_insensitive(self):
        assert lookup_field("LTVTIER").name == "ltvTier"

    @pytest.mark.parametrize("rule", [
        "foo >= 1",
        "risk >=",
        "risk >= high",
        "ltvTier > Gold",
        "risk >= 70 AND",
        "(risk >= 70",
        "risk in [high, low]",
        "risk >= 70 ltv",
        "risk >= 70 ; drop",
    ])
    def test_rejects_malformed(self, rule):
        with pytest.raises(EligibilityRuleError):
            parse_eligibility(rule)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_eligibility("nonsense >= 1")

    def test_default_catalog_parses(self):
        for play in DEFAULT_PLAYS:
            parse_eligibility(play.eligibility)


class TestEvaluation:
    def test_full_rule(self, vip_high_risk, silver_low_risk):
        expr = parse_eligibility("risk >= 70 AND ltvTier in [Gold,VIP]")
        assert expr.evaluate(vip_high_risk)
        assert not expr.evaluate(silver_low_risk)

    def test_text_comparison_ignores_case(self, vip_high_risk):
        assert parse_eligibility("status = DORMANT").evaluate(vip_high_risk)
        assert parse_eligibility("riskBand != low").evaluate(vip_high_risk)

    def test_rendering(self):
        expr = parse_eligibility("risk >= 70 AND NOT ltvTier in [Bronze]")
        assert str(expr) == "(risk >= 70.0 AND NOT ltvTier in [Bronze])"


class TestLegacy:
    def test_known_patterns(self):
        expr = legacy_eligibility("risk >= 70 AND ltvTier in [Gold,VIP]")
        assert expr == And((
            Comparison("risk", ">=", 70.0),
            Membership("ltvTier", ("Gold", "VIP")),
        ))

    def test_unknown_thresholds_pass(self, silver_low_risk):
        rule = "risk >= 40 AND ltvTier in [Silver,Gold,VIP]"
        assert legacy_eligibility(rule).evaluate(silver_low_risk)
        assert not parse_eligibility(rule).evaluate(silver_low_risk)

    def test_unmatched_rule_is_always(self):
        assert legacy_eligibility("engagementScore < 30") == Always()


class TestCompile:
    def test_modes_differ(self, silver_low_risk):
        rule = "risk >= 40 AND ltvTier in [Silver,Gold,VIP]"
        assert compile_eligibility(rule, "legacy").evaluate(silver_low_risk)
        assert not compile_eligibility(rule, "expression").evaluate(silver_low_risk)

    def test_default_mode_is_legacy(self, make_customer):
        gold_medium_risk = make_customer(risk_score=55, ltv=3000.0)
        winback_play = DEFAULT_PLAYS[2]  # risk >= 60 AND ltvTier in [Gold,VIP]
        assert compile_eligibility(winback_play.eligibility) == legacy_eligibility(
            winback_play.eligibility
        )
        assert compile_eligibility(winback_play.eligibility).evaluate(gold_medium_risk)

    def test_default_catalog_matches_legacy(self, make_customer):
        customers = [
            make_customer(risk_score=score, ltv=ltv, open_rate=rate)
            for score in (10, 35, 45, 55, 65, 85)
            for ltv in (100.0, 600.0, 3000.0, 6000.0)
            for rate in (0.05, 0.5)
        ]
        for play in DEFAULT_PLAYS:
            default = compile_eligibility(play.eligibility)
            legacy = legacy_eligibility(play.eligibility)
            assert [default.evaluate(c) for c in customers] == [
                legacy.evaluate(c) for c in customers
            ]

    def test_unparseable_keeps_known_clauses(self, caplog, silver_low_risk):
        compile_eligibility.cache_clear()
        rule = "risk >= 70 AND lastOrder < 30d"
        with caplog.at_level(logging.WARNING, logger="retention.scoring.eligibility"):
            expr = compile_eligibility(rule, "expression")
        assert expr == Comparison("risk", ">=", 70.0)
        assert not expr.evaluate(silver_low_risk)
        assert not compile_eligibility(rule, "legacy").evaluate(silver_low_risk)
        assert "Unparseable eligibility rule" in caplog.text

    def test_unparseable_without_known_clauses_is_eligible(self, caplog):
        compile_eligibility.cache_clear()
        with caplog.at_level(logging.WARNING, logger="retention.scoring.eligibility"):
            expr = compile_eligibility("whenever the moon is full", "expression")
        assert expr == Always()
        assert "Unparseable eligibility rule" in caplog.text

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            compile_eligibility("risk >= 70", "fuzzy")
