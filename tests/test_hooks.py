"""
Hook detection and vertical recommendation templates.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from types import SimpleNamespace

import pytest
from scoring.hooks import HOOK_CATEGORIES, POINTS_PER_MATCH, detect_hooks, get_hook_patterns
from scoring.recommendations import (
    BASE_RECOMMENDATIONS,
    build_vertical_recommendations,
    get_recommendation_templates,
)


class TestHookDetection:
    def test_base_patterns(self):
        analysis = detect_hooks("Learn Spanish, easy and secure")
        assert analysis.vertical == "base"
        assert analysis.matched_categories == ["learning_educational", "ease_of_use", "trust_safety"]
        assert analysis.coverage == pytest.approx(50.0)
        assert analysis.score == pytest.approx(POINTS_PER_MATCH * 3 / len(HOOK_CATEGORIES))

    def test_vertical_patterns(self):
        analysis = detect_hooks("Speak fluently with bite-sized lessons", "language_learning")
        assert analysis.vertical == "language_learning"
        assert analysis.categories["outcome_benefit"].matched == ["speak fluently"]
        assert analysis.categories["ease_of_use"].matched == ["bite-sized lessons"]
        assert "lessons" in analysis.categories["learning_educational"].matched

    def test_unknown_vertical_uses_base(self):
        assert get_hook_patterns("astrology") is get_hook_patterns(None)
        assert detect_hooks("learn", "astrology").vertical == "base"

    def test_symbol_phrases_match_as_substrings(self):
        analysis = detect_hooks("#1 rated planner")
        assert "#1" in analysis.categories["status_authority"].matched

    def test_word_boundaries(self):
        analysis = detect_hooks("unsafe")
        assert analysis.categories["trust_safety"].matched == []

    def test_weight_override_is_clamped(self):
        analysis = detect_hooks("learn", hook_overrides={"learning_educational": 5.0})
        category = analysis.categories["learning_educational"]
        assert category.weight == 2.0
        assert category.score == POINTS_PER_MATCH * 2.0

    def test_extra_keywords(self):
        analysis = detect_hooks("bank grade vault", extra_keywords={"trust_safety": ["bank grade"]})
        assert analysis.categories["trust_safety"].matched == ["bank grade"]

    def test_missing_categories(self):
        analysis = detect_hooks("")
        assert analysis.missing_categories == list(HOOK_CATEGORIES)
        assert analysis.score == 0


class TestRecommendations:
    def test_templates_layer_over_base(self):
        templates = get_recommendation_templates("rewards")
        assert set(BASE_RECOMMENDATIONS) <= set(templates)
        assert templates["missing_ease_hook"].trigger == "No ease-of-earning hooks"

    def test_critical_first(self):
        hooks = detect_hooks("Budget Tracker", "finance")
        recs = build_vertical_recommendations("finance", hooks, ["budget", "tracker"])
        assert recs[0].id == "missing_trust_term"
        assert recs[0].severity == "critical"
        assert "missing_action_verb" not in {r.id for r in recs}

    def test_message_override(self):
        hooks = detect_hooks("Budget Tracker", "finance")
        ruleset = SimpleNamespace(recommendation_overrides={"missing_trust_term": {"message": "Say secure"}})
        recs = build_vertical_recommendations("finance", hooks, ["budget", "tracker"], ruleset)
        trust = next(r for r in recs if r.id == "missing_trust_term")
        assert trust.message == "Say secure"
        assert trust.overridden

    def test_no_vertical_uses_base_only(self):
        hooks = detect_hooks("")
        recs = build_vertical_recommendations(None, hooks, [])
        assert {r.id for r in recs} == set(BASE_RECOMMENDATIONS)
