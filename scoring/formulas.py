"""
Formula Registry
-----------------
Declarative definitions of every composite score the audit produces, plus
helpers that apply ruleset formula overrides:

  formula_overrides["metadata_overall_score"]              -> output multiplier
  formula_overrides["metadata_overall_score.title_score"]  -> component weight multiplier
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


FORMULA_TYPES = ("weighted_sum", "ratio", "composite", "threshold_based", "custom")


@dataclass
class FormulaComponent:
    id: str
    weight: float
    source: Optional[str] = None


@dataclass
class FormulaThreshold:
    condition: str      # ">= 5", "< 1"
    score: float
    label: str


@dataclass
class FormulaDefinition:
    id: str
    label: str
    description: str
    type: str
    components: List[FormulaComponent] = field(default_factory=list)
    thresholds: List[FormulaThreshold] = field(default_factory=list)
    computation_notes: Optional[str] = None
    editable: bool = False
    group: Optional[str] = None
    display_order: int = 999
    help_text: Optional[str] = None

    def component_weights(self) -> Dict[str, float]:
        return {c.id: c.weight for c in self.components}

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


FORMULA_REGISTRY: List[FormulaDefinition] = [
    FormulaDefinition(
        id="metadata_overall_score",
        label="Overall Metadata Score",
        description="Weighted combination of Title (65%) and Subtitle (35%). Description is excluded from ranking.",
        type="weighted_sum",
        components=[
            FormulaComponent("title_score", 0.65, source="title_element_score"),
            FormulaComponent("subtitle_score", 0.35, source="subtitle_element_score"),
        ],
        group="Overall",
        display_order=1,
        help_text="Primary ranking score: title 65%, subtitle 35%",
    ),
    FormulaDefinition(
        id="title_element_score",
        label="Title Element Score",
        description="Character Usage (25%), Unique Keywords (30%), Combo Coverage (30%), Filler Penalty (15%)",
        type="weighted_sum",
        components=[
            FormulaComponent("title_character_usage", 0.25),
            FormulaComponent("title_unique_keywords", 0.30),
            FormulaComponent("title_combo_coverage", 0.30),
            FormulaComponent("title_filler_penalty", 0.15),
        ],
        editable=True,
        group="Title",
        display_order=1,
        help_text="Adjust weights for individual title scoring rules",
    ),
    FormulaDefinition(
        id="subtitle_element_score",
        label="Subtitle Element Score",
        description="Character Usage (20%), Incremental Value (40%), Combo Coverage (25%), Complementarity (15%)",
        type="weighted_sum",
        components=[
            FormulaComponent("subtitle_character_usage", 0.20),
            FormulaComponent("subtitle_incremental_value", 0.40),
            FormulaComponent("subtitle_combo_coverage", 0.25),
            FormulaComponent("subtitle_complementarity", 0.15),
        ],
        editable=True,
        group="Subtitle",
        display_order=1,
        help_text="Subtitle should add NEW high-value keywords not already in the title",
    ),
    FormulaDefinition(
        id="description_conversion_score",
        label="Description Conversion Score",
        description="Hook Strength (30%), Feature Mentions (25%), CTA Strength (20%), Readability (25%)",
        type="weighted_sum",
        components=[
            FormulaComponent("description_hook_strength", 0.30),
            FormulaComponent("description_feature_mentions", 0.25),
            FormulaComponent("description_cta_strength", 0.20),
            FormulaComponent("description_readability", 0.25),
        ],
        editable=True,
        group="Conversion",
        display_order=1,
        help_text="Description affects conversion rate, not ranking",
    ),
    FormulaDefinition(
        id="metadata_dimension_relevance",
        label="Metadata Relevance Dimension",
        description="Average of title and subtitle element scores",
        type="composite",
        components=[FormulaComponent("title_score", 0.5), FormulaComponent("subtitle_score", 0.5)],
        group="Visualization",
        display_order=1,
    ),
    FormulaDefinition(
        id="metadata_dimension_learning",
        label="Learning/Discovery Dimension",
        description="Score based on generic combo count (target: 5+ generic combos)",
        type="threshold_based",
        thresholds=[
            FormulaThreshold(">= 5", 100, "Excellent"),
            FormulaThreshold(">= 3", 75, "Good"),
            FormulaThreshold(">= 1", 50, "Moderate"),
            FormulaThreshold("< 1", 20, "Poor"),
        ],
        editable=True,
        group="Visualization",
        display_order=2,
        help_text="Generic combos drive discovery from non-brand-aware users",
    ),
    FormulaDefinition(
        id="metadata_dimension_structure",
        label="Structure Dimension",
        description="Uses title score as proxy for metadata structural quality",
        type="composite",
        components=[FormulaComponent("title_score", 1.0)],
        group="Visualization",
        display_order=3,
    ),
    FormulaDefinition(
        id="metadata_dimension_brand_balance",
        label="Brand Balance Dimension",
        description="generic/(branded+generic) ratio; target 60%+ generic for discovery.",
        type="custom",
        computation_notes="min(100, (generic / (branded + generic)) * 100 + 30)",
        editable=True,
        group="Visualization",
        display_order=4,
    ),
    FormulaDefinition(
        id="kpi_overall_score",
        label="KPI Overall Score",
        description="Weighted combination of the six KPI family scores",
        type="weighted_sum",
        components=[
            FormulaComponent("clarity_structure", 0.20),
            FormulaComponent("keyword_architecture", 0.25),
            FormulaComponent("hook_strength", 0.15),
            FormulaComponent("brand_vs_generic", 0.10),
            FormulaComponent("psychology_alignment", 0.10),
            FormulaComponent("intent_alignment", 0.20),
        ],
        editable=True,
        group="KPI",
        display_order=1,
    ),
]

_FORMULA_MAP = {f.id: f for f in FORMULA_REGISTRY}
_CONDITION = re.compile(r"^\s*(>=|<=|>|<|==)\s*(-?\d+(?:\.\d+)?)\s*$")


# ─── Lookup ──────────────────────────────────────────────────────────────────


def get_formula(formula_id: str) -> Optional[FormulaDefinition]:
    return _FORMULA_MAP.get(formula_id)


def get_editable_formulas() -> List[FormulaDefinition]:
    return [f for f in FORMULA_REGISTRY if f.editable]


def get_formulas_by_group(group: str) -> List[FormulaDefinition]:
    return sorted(
        (f for f in FORMULA_REGISTRY if f.group == group),
        key=lambda f: f.display_order,
    )


# ─── Overrides ───────────────────────────────────────────────────────────────


def _formula_overrides(ruleset: Any) -> Dict[str, float]:
    if ruleset is None:
        return {}
    return getattr(ruleset, "formula_overrides", None) or {}


def apply_component_weight_override(
    formula_id: str,
    component_id: str,
    base_weight: float,
    ruleset: Any = None,
) -> float:
    multiplier = _formula_overrides(ruleset).get(f"{formula_id}.{component_id}")
    return base_weight * multiplier if multiplier is not None else base_weight


def apply_output_multiplier(score: float, formula_id: str, ruleset: Any = None) -> float:
    multiplier = _formula_overrides(ruleset).get(formula_id)
    return score * multiplier if multiplier is not None else score


# ─── Evaluation ──────────────────────────────────────────────────────────────


def evaluate_weighted(formula_id: str, values: Dict[str, float], ruleset: Any = None) -> float:
    """
    Weighted sum of component values with override-adjusted weights
    renormalized to 1. Missing component values count as 0.
    """
    formula = get_formula(formula_id)
    if formula is None:
        raise KeyError(f"Unknown formula '{formula_id}'")

    weights = {
        c.id: apply_component_weight_override(formula_id, c.id, c.weight, ruleset)
        for c in formula.components
    }
    total = sum(weights.values())
    if total <= 0:
        return 0.0
    score = sum(values.get(cid, 0.0) * w / total for cid, w in weights.items())
    return apply_output_multiplier(score, formula_id, ruleset)


def _condition_holds(condition: str, value: float) -> bool:
    match = _CONDITION.match(condition)
    if not match:
        raise ValueError(f"Unparseable threshold condition '{condition}'")
    op, bound = match.group(1), float(match.group(2))
    return {
        ">=": value >= bound,
        "<=": value <= bound,
        ">": value > bound,
        "<": value < bound,
        "==": value == bound,
    }[op]


def evaluate_threshold(formula_id: str, value: float) -> float:
    """First matching threshold wins; thresholds are ordered best to worst."""
    formula = get_formula(formula_id)
    if formula is None or formula.type != "threshold_based":
        raise KeyError(f"'{formula_id}' is not a threshold formula")
    for threshold in formula.thresholds:
        if _condition_holds(threshold.condition, value):
            return threshold.score
    return 0.0


def brand_balance_score(branded: int, generic: int) -> float:
    total = branded + generic
    if total == 0:
        return 30.0
    return min(100.0, generic / total * 100 + 30)
