"""
Combo classification, coverage and opportunity generation.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from scoring.combos import (
    analyze_combo_coverage,
    analyze_combo_opportunities,
    classify_combo,
    combo_exists_in_text,
    determine_combo_source,
    filter_low_value_keywords,
    generate_all_possible_combos,
    strategic_value,
)


class TestClassification:
    def test_generic(self):
        combo = classify_combo("spanish lessons", ["duolingo", "app"])
        assert combo.type == "generic"
        assert combo.relevance_score == 2

    def test_branded_with_relevance_override(self):
        combo = classify_combo("babbel spanish", ["babbel", "language"], {"babbel": 3})
        assert combo.type == "branded"
        assert combo.relevance_score == 3

    def test_time_promo_is_low_value(self):
        assert classify_combo("free trial", []).type == "low_value"

    def test_leading_digit_is_low_value(self):
        assert classify_combo("2024 budget", []).type == "low_value"

    def test_version_words_are_low_value(self):
        assert classify_combo("latest spanish", []).type == "low_value"

    def test_noise_only_is_low_value(self):
        combo = classify_combo("best free", [])
        assert combo.type == "low_value"
        assert combo.relevance_score == 0


class TestCoverage:
    def test_title_and_subtitle_combos(self):
        coverage = analyze_combo_coverage("Learn Spanish Fast", "Language Lessons")
        assert coverage.title_combos == ["learn spanish", "spanish fast", "learn spanish fast"]
        assert "language lessons" in coverage.subtitle_new_combos
        assert "learn spanish" not in coverage.subtitle_new_combos
        assert coverage.total_combos == 9

    def test_low_value_combos_are_separated(self):
        coverage = analyze_combo_coverage("Budget Planner Trial", "")
        low = [c.text for c in coverage.low_value_combos]
        assert "planner trial" in low
        assert all(c.type != "low_value" for c in coverage.title_combos_classified)

    def test_to_dict(self):
        data = analyze_combo_coverage("Learn Spanish", "").to_dict()
        assert data["total_combos"] == 1
        assert data["title_combos"] == ["learn spanish"]


class TestGeneration:
    def test_filter_low_value_keywords(self):
        assert filter_low_value_keywords(["the", "a", "spanish", "x"]) == ["spanish"]

    def test_generate_all_possible_combos(self):
        combos = generate_all_possible_combos(["learn", "spanish"], ["lessons"])
        assert combos == ["learn spanish", "learn lessons", "spanish lessons", "learn spanish lessons"]

    def test_cross_combos_can_be_disabled(self):
        combos = generate_all_possible_combos(["learn", "spanish"], ["lessons"], include_cross=False)
        assert combos == ["learn spanish"]

    def test_combo_exists_in_order(self):
        assert combo_exists_in_text("learn lessons", "learn spanish lessons")
        assert not combo_exists_in_text("lessons learn", "learn spanish lessons")

    def test_combo_source(self):
        assert determine_combo_source("spanish lessons", "Learn Spanish", "Spanish Lessons") == "subtitle"
        assert determine_combo_source("learn spanish", "Learn Spanish", "Spanish Lessons") == "title"
        assert determine_combo_source("budget", "Learn Spanish", "Spanish Lessons") == "missing"

    def test_strategic_value(self):
        assert strategic_value("learn spanish") == 100
        assert strategic_value("learn spanish") > strategic_value("duolingo tutor")


class TestOpportunities:
    def test_existing_and_missing(self):
        result = analyze_combo_opportunities("Learn Spanish", "Lessons Daily")
        assert result.total_possible == 11
        assert sorted(c.text for c in result.existing) == ["learn spanish", "lessons daily"]
        assert len(result.missing) == 9

    def test_recommended_sorted_by_value(self):
        result = analyze_combo_opportunities("Learn Spanish", "Lessons Daily", max_recommendations=3)
        values = [c.strategic_value for c in result.recommended]
        assert len(values) == 3
        assert values == sorted(values, reverse=True)

    def test_empty_metadata(self):
        result = analyze_combo_opportunities("", "")
        assert result.total_possible == 0
        assert result.coverage == 0.0
