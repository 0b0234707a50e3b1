"""
Ruleset normalization, scope merging and vertical leak detection.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from scoring.leaks import detect_vertical_leak, detect_vertical_mismatch
from scoring.ruleset import (
    NormalizedRuleSet,
    clamp_multiplier,
    code_ruleset,
    merge_rulesets,
    normalize_layer,
)


def layer(scope, source="database", **kwargs):
    return NormalizedRuleSet(scope=scope, source=source, **kwargs)


# ─── Clamping ────────────────────────────────────────────────────────────────

class TestClamp:
    def test_defaults(self):
        assert clamp_multiplier(None) == 1.0
        assert clamp_multiplier("abc") == 1.0
        assert clamp_multiplier(float("nan")) == 1.0

    def test_bounds(self):
        assert clamp_multiplier(10) == 2.0
        assert clamp_multiplier(0.01) == 0.5
        assert clamp_multiplier("1.5") == 1.5


# ─── Normalization ───────────────────────────────────────────────────────────

class TestNormalizeLayer:
    def test_tokens_are_cleaned_and_clamped(self):
        result = normalize_layer({"token_relevance": [{"token": " Duolingo ", "relevance": 7}]})
        assert result.token_overrides == {"duolingo": 3}

    def test_inactive_rows_are_dropped(self):
        result = normalize_layer({"token_relevance": [
            {"token": "spanish", "relevance": 3, "is_active": False},
            {"token": "budget", "relevance": 2},
        ]})
        assert result.token_overrides == {"budget": 2}

    def test_stopwords_union(self):
        result = normalize_layer({"stopword": [
            {"stopwords": ["Lite", "pro"]},
            {"stopwords": ["pro", " max "]},
        ]})
        assert result.stopwords == ["lite", "max", "pro"]

    def test_unknown_scope(self):
        with pytest.raises(ValueError):
            normalize_layer({}, scope="galaxy")

    def test_empty_layer(self):
        assert normalize_layer({}).is_empty()

    def test_rule_rows(self):
        result = normalize_layer({"rule": [
            {"rule_id": "title_filler_penalty", "weight_multiplier": 9, "severity_override": "critical"},
        ]})
        assert result.rule_overrides["title_filler_penalty"]["weight_multiplier"] == 2.0
        assert result.rule_overrides["title_filler_penalty"]["severity"] == "critical"


# ─── Merge ───────────────────────────────────────────────────────────────────

class TestMerge:
    def test_last_layer_wins(self):
        merged = merge_rulesets(
            layer("base", token_overrides={"foo": 1}),
            vertical=layer("vertical", vertical="finance", token_overrides={"foo": 2}),
            client=layer("client", organization_id="org-1", token_overrides={"foo": 3}),
        )
        assert merged.token_relevance_overrides == {"foo": 3}
        assert merged.vertical_id == "finance"
        assert merged.organization_id == "org-1"

    def test_stopwords_merge_as_union(self):
        merged = merge_rulesets(
            layer("base", stopwords=["lite"]),
            market=layer("market", market="gb", stopwords=["max"]),
        )
        assert merged.stopwords == ["lite", "max"]
        assert merged.market_id == "gb"

    def test_source(self):
        assert merge_rulesets(layer("base", source="code")).source == "code"
        assert merge_rulesets(layer("base")).source == "database"
        assert merge_rulesets(layer("base", source="code"), vertical=layer("vertical")).source == "hybrid"

    def test_formula_overrides_are_flattened(self):
        base = normalize_layer({"formula": [{
            "formula_id": "metadata_overall_score",
            "payload": {"multiplier": 1.0, "component_weights": {"title_score": 1.5}},
        }]})
        merged = merge_rulesets(base)
        assert merged.formula_overrides == {"metadata_overall_score.title_score": 1.5}

    def test_hook_overrides(self):
        base = normalize_layer({"hook": [{
            "hook_category": "trust_safety", "weight_multiplier": 1.5, "keywords": ["Bank Grade"],
        }]})
        merged = merge_rulesets(base)
        assert merged.hook_overrides == {"trust_safety": 1.5}
        assert merged.hook_keywords == {"trust_safety": ["bank grade"]}

    def test_kpi_and_recommendation_overrides(self):
        base = normalize_layer({
            "kpi_weight": [{"kpi_id": "urgency_signal", "weight_multiplier": 1.2}],
            "recommendation": [{"recommendation_id": "missing_trust_term", "message": "Be secure"}],
        })
        merged = merge_rulesets(base)
        assert merged.kpi_overrides == {"urgency_signal": {"weight": 1.2}}
        assert merged.recommendation_overrides == {"missing_trust_term": {"message": "Be secure"}}
        assert merged.has_active_overrides()

    def test_code_ruleset(self):
        ruleset = code_ruleset("finance", "us")
        assert ruleset.source == "code"
        assert ruleset.vertical_id == "finance"
        assert ruleset.market_id == "us"
        assert not ruleset.has_active_overrides()
        assert ruleset.to_dict()["leak_warnings"] == []


# ─── Leaks ───────────────────────────────────────────────────────────────────

class TestLeaks:
    def test_learning_tokens_in_finance_app(self):
        ruleset = code_ruleset("language_learning")
        ruleset.token_relevance_overrides = {"learn": 3}
        warnings = detect_vertical_leak(ruleset, "Finance")
        assert [(w.type, w.severity) for w in warnings] == [("pattern_leak", "low")]

    def test_education_category_allows_learning_tokens(self):
        ruleset = code_ruleset("language_learning")
        ruleset.token_relevance_overrides = {"learn": 3}
        assert detect_vertical_leak(ruleset, "Education") == []

    def test_finance_intents_in_education_app(self):
        ruleset = code_ruleset("language_learning")
        ruleset.intent_overrides = {"investing basics": {"intent_type": "informational"}}
        warnings = detect_vertical_leak(ruleset, "Education")
        assert len(warnings) == 1
        assert "Finance" in warnings[0].message

    def test_recommendation_leak(self):
        ruleset = code_ruleset("finance")
        ruleset.recommendation_overrides = {"r1": {"message": "Try Learn Spanish today"}}
        warnings = detect_vertical_leak(ruleset, "Finance")
        assert warnings[0].type == "recommendation_leak"
        assert warnings[0].severity == "high"

    def test_vertical_mismatch(self):
        warning = detect_vertical_mismatch(code_ruleset("language_learning"), "Finance")
        assert warning.type == "vertical_mismatch"
        assert warning.details["expected_verticals"] == ["finance", "base"]

    def test_no_mismatch_for_matching_or_unknown_category(self):
        assert detect_vertical_mismatch(code_ruleset("finance"), "Finance") is None
        assert detect_vertical_mismatch(code_ruleset("finance"), "Games") is None
        assert detect_vertical_mismatch(code_ruleset(), "Finance") is None
