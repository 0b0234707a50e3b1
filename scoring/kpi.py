"""
KPI Engine
-----------
Computes ~36 metadata KPIs from title/subtitle, normalizes each to 0-100
and rolls them up into six weighted families and one overall score:

  family  = Σ normalized_k * w_k            (w renormalized per family)
  overall = Σ family_f * W_f                (W from formula kpi_overall_score)

KPI weights accept ruleset multipliers (kpi_overrides[kpi_id].weight),
family weights accept formula component overrides.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scoring.combos import ComboCoverage, analyze_combo_coverage
from scoring.formulas import apply_component_weight_override, apply_output_multiplier
from scoring.intent import (
    FALLBACK_PATTERNS,
    CombinedSearchIntentCoverage,
    compute_combined_search_intent_coverage,
)
from scoring.relevance import get_token_relevance
from scoring.ruleset import clamp_multiplier
from scoring.text import analyze_text, get_stopwords, tokenize_for_aso

logger = logging.getLogger(__name__)

KPI_ENGINE_VERSION = "v1"
KPI_OVERALL_FORMULA_ID = "kpi_overall_score"
INTENT_FALLBACK_FLOOR = 50

CHAR_LIMITS = {
    "ios": {"title": 30, "subtitle": 30},
    "android": {"title": 50, "subtitle": 80},
}

ACTION_VERBS = frozenset({
    "learn", "master", "speak", "practice", "improve", "discover", "unlock",
    "transform", "achieve", "build", "create", "track", "save", "boost",
    "gain", "reach", "grow", "start", "get",
})

BENEFIT_KEYWORDS = frozenset({
    "free", "easy", "fast", "simple", "powerful", "advanced", "professional",
    "complete", "ultimate", "perfect", "quick", "effective", "proven",
    "guaranteed", "unlimited", "premium",
})

URGENCY_WORDS = frozenset({
    "now", "today", "instant", "instantly", "immediate", "immediately",
    "quick", "quickly", "fast", "rapid", "rapidly",
})

SOCIAL_PROOF_WORDS = frozenset({
    "million", "millions", "thousand", "thousands", "top", "best", "trusted",
    "popular", "leading", "1", "rated", "award",
})

LANGUAGES = frozenset({
    "english", "spanish", "french", "german", "italian", "chinese", "japanese",
    "korean", "portuguese", "russian", "arabic", "hindi",
})


# ─── Registry ────────────────────────────────────────────────────────────────


@dataclass
class KpiDefinition:
    id: str
    family_id: str
    label: str
    weight: float
    min_value: float = 0.0
    max_value: float = 100.0
    direction: str = "higher_is_better"    # higher_is_better | lower_is_better | target_range
    target_value: Optional[float] = None
    target_tolerance: Optional[float] = None


@dataclass
class KpiFamilyDefinition:
    id: str
    label: str
    weight: float


FAMILY_DEFINITIONS: List[KpiFamilyDefinition] = [
    KpiFamilyDefinition("clarity_structure", "Clarity & Structure", 0.20),
    KpiFamilyDefinition("keyword_architecture", "Keyword Architecture", 0.25),
    KpiFamilyDefinition("hook_strength", "Hook Strength", 0.15),
    KpiFamilyDefinition("brand_vs_generic", "Brand vs Generic", 0.10),
    KpiFamilyDefinition("psychology_alignment", "Psychology Alignment", 0.10),
    KpiFamilyDefinition("intent_alignment", "Intent Alignment", 0.20),
]

_K = KpiDefinition
KPI_DEFINITIONS: List[KpiDefinition] = [
    # clarity_structure
    _K("title_char_usage", "clarity_structure", "Title Character Usage", 0.20, 0, 120, "target_range", 85, 15),
    _K("subtitle_char_usage", "clarity_structure", "Subtitle Character Usage", 0.20, 0, 120, "target_range", 85, 15),
    _K("title_word_count", "clarity_structure", "Title Word Count", 0.10, 0, 10, "target_range", 4, 1),
    _K("subtitle_word_count", "clarity_structure", "Subtitle Word Count", 0.10, 0, 10, "target_range", 4, 1),
    _K("title_token_density", "clarity_structure", "Title Token Density", 0.10, 0, 1),
    _K("subtitle_token_density", "clarity_structure", "Subtitle Token Density", 0.10, 0, 1),
    _K("title_noise_ratio", "clarity_structure", "Title Noise (inverted)", 0.10),
    _K("subtitle_noise_ratio", "clarity_structure", "Subtitle Noise (inverted)", 0.10),
    # keyword_architecture
    _K("title_high_value_keyword_count", "keyword_architecture", "Title High-Value Keywords", 0.25, 0, 5),
    _K("subtitle_high_value_incremental_keywords", "keyword_architecture", "Subtitle Incremental Keywords", 0.25, 0, 4),
    _K("title_combo_count_generic", "keyword_architecture", "Title Generic Combos", 0.15, 0, 6),
    _K("subtitle_combo_incremental_generic", "keyword_architecture", "Subtitle Incremental Generic Combos", 0.15, 0, 6),
    _K("subtitle_low_value_combo_ratio", "keyword_architecture", "Low-Value Combo Ratio", 0.10, 0, 1, "lower_is_better"),
    _K("total_unique_keyword_coverage", "keyword_architecture", "Unique Keyword Coverage", 0.10, 0, 10),
    # hook_strength
    _K("hook_strength_title", "hook_strength", "Title Hook Strength", 0.35),
    _K("hook_strength_subtitle", "hook_strength", "Subtitle Hook Strength", 0.25),
    _K("specificity_score", "hook_strength", "Specificity", 0.25),
    _K("benefit_density", "hook_strength", "Benefit Density", 0.15, 0, 0.5),
    # brand_vs_generic
    _K("brand_presence_title", "brand_vs_generic", "Brand in Title", 0.20, 0, 1),
    _K("brand_combo_ratio", "brand_vs_generic", "Branded Combo Ratio", 0.25, 0, 1, "target_range", 0.3, 0.15),
    _K("generic_discovery_combo_ratio", "brand_vs_generic", "Generic Discovery Ratio", 0.35, 0, 1),
    _K("overbranding_indicator", "brand_vs_generic", "Overbranding", 0.20, 0, 1, "lower_is_better"),
    # psychology_alignment
    _K("urgency_signal", "psychology_alignment", "Urgency Signal", 0.20),
    _K("social_proof_signal", "psychology_alignment", "Social Proof Signal", 0.25),
    _K("benefit_keyword_count", "psychology_alignment", "Benefit Keywords", 0.25, 0, 4),
    _K("action_verb_density", "psychology_alignment", "Action Verb Density", 0.20, 0, 0.5),
    _K("redundancy_penalty", "psychology_alignment", "Redundancy", 0.10, 0, 50, "lower_is_better"),
    # intent_alignment
    _K("informational_intent_coverage_score", "intent_alignment", "Informational Coverage", 0.15),
    _K("commercial_intent_coverage_score", "intent_alignment", "Commercial Coverage", 0.15),
    _K("transactional_intent_coverage_score", "intent_alignment", "Transactional Coverage", 0.10),
    _K("navigational_noise_ratio", "intent_alignment", "Navigational Noise", 0.10, 0, 100, "lower_is_better"),
    _K("intent_balance_score", "intent_alignment", "Intent Balance", 0.15),
    _K("intent_diversity_score", "intent_alignment", "Intent Diversity", 0.10),
    _K("intent_gap_index", "intent_alignment", "Intent Gap Index", 0.10, 0, 100, "lower_is_better"),
    _K("intent_alignment_score", "intent_alignment", "Intent Alignment", 0.05),
    _K("intent_quality_score", "intent_alignment", "Intent Quality", 0.10),
]

INTENT_KPI_IDS = frozenset(k.id for k in KPI_DEFINITIONS if k.family_id == "intent_alignment")

KPI_MAP = {k.id: k for k in KPI_DEFINITIONS}
FAMILY_MAP = {f.id: f for f in FAMILY_DEFINITIONS}


# ─── Result Types ────────────────────────────────────────────────────────────


@dataclass
class KpiResult:
    id: str
    family_id: str
    label: str
    value: float
    normalized: float
    effective_weight: float
    override_multiplier: float = 1.0

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "label": self.label,
            "value": round(self.value, 4),
            "normalized": round(self.normalized, 2),
            "effective_weight": round(self.effective_weight, 4),
            "override_multiplier": self.override_multiplier,
        }


@dataclass
class KpiFamilyResult:
    id: str
    label: str
    score: float
    kpi_ids: List[str]
    weight: float

    def to_dict(self) -> Dict:
        return {"id": self.id, "label": self.label, "score": self.score, "kpi_ids": self.kpi_ids, "weight": self.weight}


@dataclass
class KpiEngineResult:
    version: str
    vector: List[float]
    kpis: Dict[str, KpiResult]
    families: Dict[str, KpiFamilyResult]
    overall_score: float
    debug: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "version": self.version,
            "overall_score": self.overall_score,
            "families": {k: f.to_dict() for k, f in self.families.items()},
            "kpis": {k: r.to_dict() for k, r in self.kpis.items()},
            "vector": [round(v, 2) for v in self.vector],
            "debug": self.debug,
        }


# ─── Intent Helpers ──────────────────────────────────────────────────────────

_INTENTS = ("informational", "commercial", "transactional", "navigational")


def intent_balance_score(distribution: Dict[str, int]) -> int:
    """Shannon entropy over the four intent types, scaled to 0-100."""
    counts = [distribution.get(t, 0) or 0 for t in _INTENTS]
    total = sum(counts)
    if total == 0:
        return 0
    entropy = -sum((c / total) * math.log2(c / total) for c in counts if c > 0)
    return round(entropy / 2 * 100)


def intent_diversity_score(distribution: Dict[str, int]) -> int:
    present = sum(1 for t in _INTENTS if (distribution.get(t, 0) or 0) > 0)
    return round(present / 4 * 100)


def intent_gap_index(distribution: Dict[str, int]) -> int:
    missing = sum(1 for t in _INTENTS[:3] if (distribution.get(t, 0) or 0) == 0)
    return round(missing / 3 * 100)


def intent_quality_score(distribution: Dict[str, int], fallback_mode: bool = False) -> int:
    if fallback_mode:
        return INTENT_FALLBACK_FLOOR
    total = sum(distribution.get(t, 0) or 0 for t in _INTENTS) + (distribution.get("unclassified", 0) or 0)
    if total == 0:
        return 0

    def share(key):
        return (distribution.get(key, 0) or 0) / total * 100

    noise = share("navigational") + share("unclassified")
    quality = (
        share("informational") * 0.25
        + share("commercial") * 0.20
        + share("transactional") * 0.15
        + intent_balance_score(distribution) * 0.20
        + intent_diversity_score(distribution) * 0.10
        + max(0.0, 100 - noise) * 0.10
    )
    return round(min(100, quality))


# ─── Normalization ───────────────────────────────────────────────────────────


def normalize_value(value: float, definition: KpiDefinition) -> float:
    lo, hi = definition.min_value, definition.max_value
    clamped = max(lo, min(hi, value))

    if definition.direction == "lower_is_better":
        return 100.0 if hi == lo else (hi - clamped) / (hi - lo) * 100

    if definition.direction == "target_range" and definition.target_value is not None:
        distance = abs(clamped - definition.target_value)
        if distance <= (definition.target_tolerance or 0):
            return 100.0
        max_distance = max(abs(hi - definition.target_value), abs(lo - definition.target_value))
        if max_distance == 0:
            return 100.0
        return max(0.0, (max_distance - distance) / max_distance * 100)

    return 100.0 if hi == lo else (clamped - lo) / (hi - lo) * 100


def kpi_weight_multiplier(kpi_id: str, ruleset: Any = None) -> float:
    overrides = (getattr(ruleset, "kpi_overrides", None) or {}) if ruleset else {}
    entry = overrides.get(kpi_id) or {}
    return clamp_multiplier(entry.get("weight"))


def _renormalize(weights: Dict[str, float]) -> Dict[str, float]:
    total = sum(weights.values())
    if total == 0:
        return weights
    return {k: v / total for k, v in weights.items()}


def _noise_penalty(ratio: float) -> float:
    if ratio > 0.5:
        return 20
    if ratio > 0.3:
        return 10
    return 0


# ─── Engine ──────────────────────────────────────────────────────────────────


class KpiEngine:

    @classmethod
    def evaluate(
        cls,
        title: str,
        subtitle: str,
        platform: str = "ios",
        locale: str = "us",
        combo_coverage: Optional[ComboCoverage] = None,
        intent_coverage: Optional[CombinedSearchIntentCoverage] = None,
        ruleset: Any = None,
    ) -> KpiEngineResult:
        title = (title or "").strip()
        subtitle = (subtitle or "").strip()
        platform = platform if platform in CHAR_LIMITS else "ios"

        relevance_overrides = getattr(ruleset, "token_relevance_overrides", None) if ruleset else None
        stopwords = get_stopwords(getattr(ruleset, "stopwords", None) if ruleset else None)

        tokens_title = tokenize_for_aso(title)
        tokens_subtitle = tokenize_for_aso(subtitle)

        if combo_coverage is None:
            combo_coverage = analyze_combo_coverage(title, subtitle, stopwords, relevance_overrides)
        if intent_coverage is None:
            intent_coverage = compute_combined_search_intent_coverage(
                tokens_title, tokens_subtitle, FALLBACK_PATTERNS, fallback_mode=True
            )

        p = cls._primitives(
            title, subtitle, platform, tokens_title, tokens_subtitle,
            combo_coverage, intent_coverage, relevance_overrides,
        )

        kpis: Dict[str, KpiResult] = {}
        vector: List[float] = []
        for definition in KPI_DEFINITIONS:
            raw = cls._compute(definition.id, p)
            normalized = normalize_value(raw, definition)
            if p["intent_fallback_mode"] and definition.id in INTENT_KPI_IDS:
                normalized = max(normalized, INTENT_FALLBACK_FLOOR)
            multiplier = kpi_weight_multiplier(definition.id, ruleset)
            kpis[definition.id] = KpiResult(
                id=definition.id,
                family_id=definition.family_id,
                label=definition.label,
                value=raw,
                normalized=normalized,
                effective_weight=definition.weight * multiplier,
                override_multiplier=multiplier,
            )
            vector.append(normalized)

        families: Dict[str, KpiFamilyResult] = {}
        for family in FAMILY_DEFINITIONS:
            members = [k for k in KPI_DEFINITIONS if k.family_id == family.id]
            weights = _renormalize({k.id: kpis[k.id].effective_weight for k in members})
            score = sum(kpis[k.id].normalized * weights[k.id] for k in members)
            families[family.id] = KpiFamilyResult(
                id=family.id,
                label=family.label,
                score=round(score, 2),
                kpi_ids=[k.id for k in members],
                weight=family.weight,
            )

        family_weights = _renormalize({
            f.id: apply_component_weight_override(KPI_OVERALL_FORMULA_ID, f.id, f.weight, ruleset)
            for f in FAMILY_DEFINITIONS
        })
        overall = sum(families[f].score * w for f, w in family_weights.items())
        overall = apply_output_multiplier(overall, KPI_OVERALL_FORMULA_ID, ruleset)

        return KpiEngineResult(
            version=KPI_ENGINE_VERSION,
            vector=vector,
            kpis=kpis,
            families=families,
            overall_score=round(max(0.0, min(100.0, overall)), 2),
            debug={
                "title": title,
                "subtitle": subtitle,
                "platform": platform,
                "locale": locale,
                "tokens_title": tokens_title,
                "tokens_subtitle": tokens_subtitle,
                "title_high_value_keywords": p["title_high_value"],
                "subtitle_high_value_keywords": p["subtitle_incremental"],
                "brand_combo_count": p["branded"],
                "generic_combo_count": p["generic"],
                "intent_fallback_mode": p["intent_fallback_mode"],
            },
        )

    @staticmethod
    def _primitives(title, subtitle, platform, tokens_title, tokens_subtitle,
                    combo_coverage, intent_coverage, relevance_overrides) -> Dict[str, Any]:
        limits = CHAR_LIMITS[platform]
        # noise here ignores stopwords so only short/filler tokens count
        title_analysis = analyze_text(title, set())
        subtitle_analysis = analyze_text(subtitle, set())

        title_meaningful = [t for t in tokens_title if len(t) > 2]
        subtitle_meaningful = [t for t in tokens_subtitle if len(t) > 2]
        title_hv = [t for t in title_meaningful if get_token_relevance(t, relevance_overrides) >= 2]
        title_hv_set = set(title_hv)
        subtitle_incremental = [
            t for t in subtitle_meaningful
            if get_token_relevance(t, relevance_overrides) >= 2 and t not in title_hv_set
        ]

        title_classified = combo_coverage.title_combos_classified
        subtitle_classified = combo_coverage.subtitle_new_combos_classified
        branded = sum(1 for c in title_classified if c.type == "branded")
        generic = sum(1 for c in title_classified if c.type == "generic")
        brand_total = branded + generic
        total_combos = combo_coverage.total_combos

        all_tokens = tokens_title + tokens_subtitle
        counts: Dict[str, int] = {}
        for t in all_tokens:
            counts[t] = counts.get(t, 0) + 1

        distribution = intent_coverage.combined_distribution
        intent_total = sum(distribution.values())

        return {
            "title_chars": len(title),
            "subtitle_chars": len(subtitle),
            "title_limit": limits["title"],
            "subtitle_limit": limits["subtitle"],
            "title_words": len(title.split()),
            "subtitle_words": len(subtitle.split()),
            "title_density": len(title_meaningful) / len(tokens_title) if tokens_title else 0.0,
            "subtitle_density": len(subtitle_meaningful) / len(tokens_subtitle) if tokens_subtitle else 0.0,
            "title_noise": title_analysis.noise_ratio,
            "subtitle_noise": subtitle_analysis.noise_ratio,
            "title_high_value": len(title_hv),
            "subtitle_incremental": len(subtitle_incremental),
            "title_generic_combos": generic,
            "subtitle_generic_combos": sum(1 for c in subtitle_classified if c.type == "generic"),
            "low_value_ratio": len(combo_coverage.low_value_combos) / total_combos if total_combos else 0.0,
            "language_verb_pairs": _language_verb_pairs(tokens_title),
            "unique_keywords": len(set(title_meaningful) | set(subtitle_meaningful)),
            "title_action": sum(1 for t in tokens_title if t in ACTION_VERBS),
            "subtitle_action": sum(1 for t in tokens_subtitle if t in ACTION_VERBS),
            "title_benefit": sum(1 for t in tokens_title if t in BENEFIT_KEYWORDS),
            "subtitle_benefit": sum(1 for t in tokens_subtitle if t in BENEFIT_KEYWORDS),
            "title_meaningful": len(title_meaningful),
            "subtitle_meaningful": len(subtitle_meaningful),
            "urgency": sum(1 for t in all_tokens if t in URGENCY_WORDS),
            "social_proof": sum(1 for t in all_tokens if t in SOCIAL_PROOF_WORDS),
            "repeated": sum(1 for c in counts.values() if c > 1),
            "branded": branded,
            "generic": generic,
            "brand_ratio": branded / brand_total if brand_total else 0.0,
            "generic_ratio": generic / brand_total if brand_total else 0.0,
            "distribution": distribution,
            "intent_total": intent_total,
            "intent_coverage_score": intent_coverage.overall_score,
            "intent_fallback_mode": bool(intent_coverage.fallback_mode),
        }

    @staticmethod
    def _compute(kpi_id: str, p: Dict[str, Any]) -> float:
        dist, total = p["distribution"], p["intent_total"]
        meaningful = p["title_meaningful"] + p["subtitle_meaningful"]
        benefit = p["title_benefit"] + p["subtitle_benefit"]
        action = p["title_action"] + p["subtitle_action"]

        def intent_share(*keys):
            return sum(dist.get(k, 0) for k in keys) / total * 100 if total else 0.0

        calculators = {
            "title_char_usage": lambda: p["title_chars"] / p["title_limit"] * 100,
            "subtitle_char_usage": lambda: p["subtitle_chars"] / p["subtitle_limit"] * 100,
            "title_word_count": lambda: p["title_words"],
            "subtitle_word_count": lambda: p["subtitle_words"],
            "title_token_density": lambda: p["title_density"],
            "subtitle_token_density": lambda: p["subtitle_density"],
            "title_noise_ratio": lambda: max(0.0, 100 - p["title_noise"] * 100 - _noise_penalty(p["title_noise"])),
            "subtitle_noise_ratio": lambda: max(
                0.0, 100 - p["subtitle_noise"] * 100 - _noise_penalty(p["subtitle_noise"])
            ),
            "title_high_value_keyword_count": lambda: p["title_high_value"],
            "subtitle_high_value_incremental_keywords": lambda: p["subtitle_incremental"],
            "title_combo_count_generic": lambda: p["title_generic_combos"],
            "subtitle_combo_incremental_generic": lambda: p["subtitle_generic_combos"],
            "subtitle_low_value_combo_ratio": lambda: p["low_value_ratio"],
            "total_unique_keyword_coverage": lambda: p["unique_keywords"],
            "hook_strength_title": lambda: hook_strength(p["title_action"], p["title_benefit"], p["title_meaningful"]),
            "hook_strength_subtitle": lambda: hook_strength(
                p["subtitle_action"], p["subtitle_benefit"], p["subtitle_meaningful"]
            ),
            "specificity_score": lambda: min(
                100, min((p["title_high_value"] + p["subtitle_incremental"]) * 15, 60)
                + min(p["language_verb_pairs"] * 20, 40)
            ),
            "benefit_density": lambda: benefit / meaningful if meaningful else 0.0,
            "brand_presence_title": lambda: 1.0 if p["branded"] else 0.0,
            "brand_combo_ratio": lambda: p["brand_ratio"],
            "generic_discovery_combo_ratio": lambda: p["generic_ratio"],
            "overbranding_indicator": lambda: 1.0 if p["brand_ratio"] > 0.7 else 0.0,
            "urgency_signal": lambda: min(100, round(math.log(p["urgency"] + 1) * 40)),
            "social_proof_signal": lambda: min(100, round(math.log(p["social_proof"] + 1) * 40)),
            "benefit_keyword_count": lambda: benefit,
            "action_verb_density": lambda: action / meaningful if meaningful else 0.0,
            "redundancy_penalty": lambda: p["repeated"] * 10,
            "informational_intent_coverage_score": lambda: intent_share("informational"),
            "commercial_intent_coverage_score": lambda: intent_share("commercial"),
            "transactional_intent_coverage_score": lambda: intent_share("transactional"),
            "navigational_noise_ratio": lambda: intent_share("navigational", "unclassified"),
            "intent_balance_score": lambda: intent_balance_score(dist),
            "intent_diversity_score": lambda: intent_diversity_score(dist),
            "intent_gap_index": lambda: intent_gap_index(dist),
            "intent_alignment_score": lambda: p["intent_coverage_score"],
            "intent_quality_score": lambda: intent_quality_score(dist, p["intent_fallback_mode"]),
        }
        calculator = calculators.get(kpi_id)
        return float(calculator()) if calculator else 0.0


def hook_strength(action_verbs: int, benefit_words: int, meaningful_tokens: int) -> float:
    if meaningful_tokens == 0:
        return 0.0
    action_score = min(action_verbs * 30, 50)
    benefit_score = min(benefit_words * 20, 30)
    density_score = min((action_verbs + benefit_words) / meaningful_tokens * 100, 20)
    return min(action_score + benefit_score + density_score, 100)


def _language_verb_pairs(tokens: List[str]) -> int:
    count = 0
    for first, second in zip(tokens, tokens[1:]):
        has_language = first in LANGUAGES or second in LANGUAGES
        has_verb = first in ACTION_VERBS or second in ACTION_VERBS
        if has_language and has_verb:
            count += 1
    return count
