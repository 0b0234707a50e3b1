"""
Search intent classification, coverage and the pattern cache.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from scoring.intent import (
    FALLBACK_PATTERNS,
    IntentPatternCache,
    IntentPatternConfig,
    classify_combo_intent,
    classify_token_intent,
    compute_combined_search_intent_coverage,
    compute_intent_coverage,
    compute_search_intent_coverage,
    dominant_intent,
    match_pattern,
    pattern_from_row,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


# ─── Matching ────────────────────────────────────────────────────────────────

class TestMatching:
    def test_score_formula(self):
        assert IntentPatternConfig("learn", "informational", 1.2, 100).score == pytest.approx(1.8)

    def test_word_boundary(self):
        top = IntentPatternConfig("top", "commercial")
        assert match_pattern("top apps", top)
        assert not match_pattern("topic", top)

    def test_substring_pattern(self):
        how_to = IntentPatternConfig("how to", "informational", word_boundary=False)
        assert match_pattern("learn how to cook", how_to)

    def test_case_sensitive(self):
        pattern = IntentPatternConfig("Pro", "commercial", case_sensitive=True)
        assert match_pattern("Pro tools", pattern)
        assert not match_pattern("pro tools", pattern)

    def test_regex(self):
        pattern = IntentPatternConfig(r"^learn\w*", "informational", is_regex=True)
        assert match_pattern("learning spanish", pattern)

    def test_invalid_regex_never_matches(self):
        pattern = IntentPatternConfig("([", "informational", is_regex=True)
        assert not match_pattern("([", pattern)

    def test_empty_text(self):
        assert not match_pattern("", FALLBACK_PATTERNS[0])


# ─── Classification ──────────────────────────────────────────────────────────

class TestClassification:
    def test_token_best_score_wins(self):
        result = classify_token_intent("download", FALLBACK_PATTERNS)
        assert result.intent_type == "transactional"
        assert result.matched_pattern == "download"

    def test_unmatched_token(self):
        assert classify_token_intent("duolingo", FALLBACK_PATTERNS) is None

    def test_combo_single_intent(self):
        assert classify_combo_intent("download now", FALLBACK_PATTERNS).dominant_intent == "transactional"

    def test_combo_mixed(self):
        # transactional 3.06 of 6.71 total is under half
        result = classify_combo_intent("best free app", FALLBACK_PATTERNS)
        assert result.dominant_intent == "mixed"
        assert set(result.matched_patterns) == {"best", "free", "app"}

    def test_combo_unknown(self):
        assert classify_combo_intent("duolingo", FALLBACK_PATTERNS).dominant_intent == "unknown"


# ─── Coverage ────────────────────────────────────────────────────────────────

class TestCoverage:
    def test_intent_coverage(self):
        coverage = compute_intent_coverage(
            ["learn spanish", "best app", "download free"], FALLBACK_PATTERNS
        )
        assert coverage.counts == {
            "informational": 1, "commercial": 1, "transactional": 1, "navigational": 0,
        }
        assert coverage.coverage_score == 75
        assert coverage.dominant_intent == "informational"
        assert len(coverage.classifications) == 3

    def test_search_intent_coverage(self):
        coverage = compute_search_intent_coverage(["learn", "spanish", "free"], FALLBACK_PATTERNS)
        assert coverage.score == 67
        assert coverage.unclassified == ["spanish"]
        assert coverage.distribution["unclassified"] == 1
        assert coverage.unclassified_tokens == 1
        assert coverage.patterns_used == len(FALLBACK_PATTERNS)

    def test_empty_tokens(self):
        coverage = compute_search_intent_coverage([], FALLBACK_PATTERNS)
        assert coverage.score == 0
        assert coverage.distribution_percentage["informational"] == 0

    def test_combined_weights_title_sixty_percent(self):
        combined = compute_combined_search_intent_coverage(
            ["learn", "spanish"], ["download", "free"], FALLBACK_PATTERNS, fallback_mode=True
        )
        assert combined.title.score == 50
        assert combined.subtitle.score == 100
        assert combined.overall_score == 70
        assert combined.combined_distribution["transactional"] == 2
        assert combined.fallback_mode is True

    def test_dominant_intent(self):
        assert dominant_intent({"commercial": 2, "informational": 1}) == "commercial"
        assert dominant_intent({}) is None


# ─── Cache / Rows ────────────────────────────────────────────────────────────

class TestCache:
    def test_ttl_expiry(self):
        clock = FakeClock()
        cache = IntentPatternCache(ttl_seconds=10, clock=clock)
        cache.set("base", FALLBACK_PATTERNS, fallback=True)
        patterns, fallback = cache.get("base")
        assert len(patterns) == len(FALLBACK_PATTERNS)
        assert fallback is True

        clock.now = 11
        assert cache.get("base") is None
        assert len(cache) == 0

    def test_clear(self):
        cache = IntentPatternCache(ttl_seconds=10, clock=FakeClock())
        cache.set("a", [])
        cache.clear()
        assert cache.get("a") is None


class TestPatternFromRow:
    def test_dict_row(self):
        pattern = pattern_from_row({
            "pattern": "compare", "intent_type": "commercial",
            "weight": 1.3, "priority": 110, "word_boundary": False,
        })
        assert pattern.intent_type == "commercial"
        assert pattern.priority == 110
        assert pattern.word_boundary is False
        assert pattern.is_regex is False
