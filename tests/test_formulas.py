"""
Formula registry lookups, threshold evaluation and ruleset formula overrides.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from types import SimpleNamespace

import pytest
from scoring.formulas import (
    FORMULA_REGISTRY,
    FORMULA_TYPES,
    brand_balance_score,
    evaluate_threshold,
    evaluate_weighted,
    get_editable_formulas,
    get_formula,
    get_formulas_by_group,
)


def ruleset(**formula_overrides):
    return SimpleNamespace(formula_overrides=formula_overrides)


class TestRegistry:
    def test_ids_are_unique(self):
        ids = [f.id for f in FORMULA_REGISTRY]
        assert len(ids) == len(set(ids))

    def test_types_are_known(self):
        for formula in FORMULA_REGISTRY:
            assert formula.type in FORMULA_TYPES

    def test_overall_components(self):
        weights = get_formula("metadata_overall_score").component_weights()
        assert weights == {"title_score": 0.65, "subtitle_score": 0.35}

    def test_unknown_formula(self):
        assert get_formula("nope") is None

    def test_editable(self):
        editable = get_editable_formulas()
        assert editable
        assert all(f.editable for f in editable)
        assert "metadata_overall_score" not in {f.id for f in editable}

    def test_group_ordering(self):
        ids = [f.id for f in get_formulas_by_group("Visualization")]
        assert ids == [
            "metadata_dimension_relevance",
            "metadata_dimension_learning",
            "metadata_dimension_structure",
            "metadata_dimension_brand_balance",
        ]

    def test_to_dict(self):
        data = get_formula("metadata_dimension_learning").to_dict()
        assert data["type"] == "threshold_based"
        assert data["thresholds"][0] == {"condition": ">= 5", "score": 100, "label": "Excellent"}


class TestWeighted:
    def test_base_weights(self):
        score = evaluate_weighted("metadata_overall_score", {"title_score": 80, "subtitle_score": 60})
        assert score == pytest.approx(73.0)

    def test_missing_component_counts_as_zero(self):
        score = evaluate_weighted("metadata_overall_score", {"title_score": 100})
        assert score == pytest.approx(65.0)

    def test_component_override_is_renormalized(self):
        score = evaluate_weighted(
            "metadata_overall_score",
            {"title_score": 80, "subtitle_score": 60},
            ruleset(**{"metadata_overall_score.title_score": 2.0}),
        )
        assert score == pytest.approx((80 * 1.3 + 60 * 0.35) / 1.65)

    def test_output_multiplier(self):
        score = evaluate_weighted(
            "metadata_overall_score",
            {"title_score": 80, "subtitle_score": 60},
            ruleset(metadata_overall_score=0.5),
        )
        assert score == pytest.approx(36.5)

    def test_unknown_formula_raises(self):
        with pytest.raises(KeyError):
            evaluate_weighted("nope", {})


class TestThresholds:
    @pytest.mark.parametrize("value,expected", [(7, 100), (5, 100), (3, 75), (1, 50), (0, 20)])
    def test_learning_dimension(self, value, expected):
        assert evaluate_threshold("metadata_dimension_learning", value) == expected

    def test_non_threshold_formula_raises(self):
        with pytest.raises(KeyError):
            evaluate_threshold("metadata_overall_score", 1)


class TestBrandBalance:
    def test_no_combos(self):
        assert brand_balance_score(0, 0) == 30.0

    def test_generic_heavy_caps_at_100(self):
        assert brand_balance_score(1, 3) == 100.0

    def test_brand_heavy(self):
        assert brand_balance_score(3, 1) == pytest.approx(55.0)
