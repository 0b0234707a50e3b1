"""
KPI engine: registry shape, normalization, intent helpers and overrides.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from scoring.kpi import (
    FAMILY_DEFINITIONS,
    INTENT_FALLBACK_FLOOR,
    INTENT_KPI_IDS,
    KPI_DEFINITIONS,
    KPI_MAP,
    KpiEngine,
    hook_strength,
    intent_balance_score,
    intent_diversity_score,
    intent_gap_index,
    intent_quality_score,
    normalize_value,
)
from scoring.ruleset import code_ruleset


@pytest.fixture
def result():
    return KpiEngine.evaluate("Learn Spanish Fast", "Language Lessons Daily")


class TestRegistry:
    def test_family_weights_sum_to_one(self):
        assert sum(f.weight for f in FAMILY_DEFINITIONS) == pytest.approx(1.0)

    def test_every_kpi_belongs_to_a_family(self):
        families = {f.id for f in FAMILY_DEFINITIONS}
        assert all(k.family_id in families for k in KPI_DEFINITIONS)

    def test_kpi_weights_sum_to_one_per_family(self):
        for family in FAMILY_DEFINITIONS:
            weights = [k.weight for k in KPI_DEFINITIONS if k.family_id == family.id]
            assert sum(weights) == pytest.approx(1.0)


class TestNormalization:
    def test_higher_is_better(self):
        assert normalize_value(2.5, KPI_MAP["title_high_value_keyword_count"]) == pytest.approx(50)

    def test_values_are_clamped(self):
        assert normalize_value(99, KPI_MAP["title_high_value_keyword_count"]) == 100

    def test_lower_is_better(self):
        assert normalize_value(0.25, KPI_MAP["subtitle_low_value_combo_ratio"]) == pytest.approx(75)

    def test_target_range(self):
        definition = KPI_MAP["title_char_usage"]
        assert normalize_value(85, definition) == 100
        assert normalize_value(72, definition) == 100
        assert normalize_value(0, definition) == 0


class TestIntentHelpers:
    def test_balance(self):
        even = {"informational": 1, "commercial": 1, "transactional": 1, "navigational": 1}
        assert intent_balance_score(even) == 100
        assert intent_balance_score({"informational": 3}) == 0
        assert intent_balance_score({}) == 0

    def test_diversity(self):
        assert intent_diversity_score({"informational": 2, "commercial": 1}) == 50

    def test_gap_index(self):
        assert intent_gap_index({"informational": 1}) == 67
        assert intent_gap_index({"informational": 1, "commercial": 1, "transactional": 1}) == 0

    def test_quality_fallback_floor(self):
        assert intent_quality_score({"informational": 5}, fallback_mode=True) == INTENT_FALLBACK_FLOOR

    def test_quality_empty(self):
        assert intent_quality_score({}) == 0


class TestHookStrength:
    def test_no_tokens(self):
        assert hook_strength(0, 0, 0) == 0.0

    def test_capped_components(self):
        assert hook_strength(2, 1, 4) == 90


class TestEngine:
    def test_vector_and_families(self, result):
        assert len(result.vector) == len(KPI_DEFINITIONS)
        assert set(result.families) == {f.id for f in FAMILY_DEFINITIONS}
        assert 0 <= result.overall_score <= 100
        assert result.version == "v1"

    def test_fallback_intent_floor(self, result):
        assert result.debug["intent_fallback_mode"] is True
        for kpi_id in INTENT_KPI_IDS:
            assert result.kpis[kpi_id].normalized >= INTENT_FALLBACK_FLOOR

    def test_debug_tokens(self, result):
        assert result.debug["tokens_title"] == ["learn", "spanish", "fast"]
        assert result.debug["tokens_subtitle"] == ["language", "lessons", "daily"]

    def test_unknown_platform_defaults_to_ios(self):
        result = KpiEngine.evaluate("Budget", "", platform="web")
        assert result.debug["platform"] == "ios"

    def test_android_has_longer_limits(self):
        title = "Learn Spanish Language Lessons"
        ios = KpiEngine.evaluate(title, "")
        android = KpiEngine.evaluate(title, "", platform="android")
        assert android.kpis["title_char_usage"].value < ios.kpis["title_char_usage"].value

    def test_kpi_weight_override_is_clamped(self):
        ruleset = code_ruleset()
        ruleset.kpi_overrides = {"title_char_usage": {"weight": 10.0}}
        result = KpiEngine.evaluate("Learn Spanish", "Lessons", ruleset=ruleset)
        kpi = result.kpis["title_char_usage"]
        assert kpi.override_multiplier == 2.0
        assert kpi.effective_weight == pytest.approx(0.40)

    def test_empty_metadata(self):
        result = KpiEngine.evaluate("", "")
        assert 0 <= result.overall_score <= 100
        assert result.kpis["hook_strength_title"].value == 0

    def test_to_dict(self, result):
        data = result.to_dict()
        assert set(data["families"]) == {f.id for f in FAMILY_DEFINITIONS}
        assert len(data["kpis"]) == len(KPI_DEFINITIONS)
