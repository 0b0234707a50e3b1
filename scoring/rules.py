"""
Rule Evaluator Registry
------------------------
Per-element heuristics that score App Store metadata. Title and subtitle
drive ranking; the description only affects conversion.

  title        max 30 chars    weight 0.65
  subtitle     max 30 chars    weight 0.35
  description  max 4000 chars  weight 0.00
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from scoring.relevance import get_token_relevance
from scoring.text import (
    ASO_STOPWORDS,
    filter_stopwords,
    flesch_reading_ease,
    meaningful_combos,
    readability_level,
)


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class EvaluationContext:
    element: str
    text: str
    tokens: List[str]
    stopwords: Set[str] = field(default_factory=lambda: set(ASO_STOPWORDS))
    relevance_overrides: Dict[str, int] = field(default_factory=dict)
    max_length: int = 30
    title_tokens: List[str] = field(default_factory=list)

    def relevance(self, token: str) -> int:
        return get_token_relevance(token, self.relevance_overrides)


@dataclass
class RuleResult:
    rule_id: str
    passed: bool
    score: float                 # 0-100
    message: str
    evidence: List[str] = field(default_factory=list)
    penalty: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "passed": self.passed,
            "score": round(self.score, 2),
            "message": self.message,
            "evidence": self.evidence,
            "penalty": self.penalty,
        }


@dataclass
class RuleConfig:
    rule_id: str
    name: str
    description: str
    weight: float
    evaluator: Callable[[EvaluationContext], RuleResult]


@dataclass
class ElementConfig:
    element: str
    max_length: int
    weight: float
    rules: List[RuleConfig]


# ─── Shared Bands ────────────────────────────────────────────────────────────


def _character_usage(rule_id: str, ctx: EvaluationContext) -> RuleResult:
    length = len(ctx.text or "")
    if length == 0:
        return RuleResult(rule_id, False, 0, f"{ctx.element.capitalize()} is empty")

    usage = length / ctx.max_length * 100
    if usage > 100:
        score = 0
    elif usage < 50:
        score = 40
    elif usage < 70:
        score = 60
    elif usage < 90:
        score = 85
    else:
        score = 100

    passed = 70 <= usage <= 100
    if usage > 100:
        message = f"Exceeds the {ctx.max_length} character limit ({length} chars)"
    elif passed:
        message = f"Good character usage: {length}/{ctx.max_length} ({usage:.0f}%)"
    else:
        message = f"Only {length}/{ctx.max_length} characters used ({usage:.0f}%), add keywords"
    return RuleResult(rule_id, passed, score, message, evidence=[f"{length}/{ctx.max_length}"])


def _relevant_tokens(ctx: EvaluationContext, tokens: List[str], minimum: int) -> List[str]:
    filtered = filter_stopwords(tokens, ctx.stopwords).keywords
    seen: Dict[str, None] = {}
    for token in filtered:
        if ctx.relevance(token) >= minimum:
            seen.setdefault(token)
    return list(seen)


# ─── Title Rules ─────────────────────────────────────────────────────────────


def title_character_usage(ctx: EvaluationContext) -> RuleResult:
    return _character_usage("title_character_usage", ctx)


def title_unique_keywords(ctx: EvaluationContext) -> RuleResult:
    keywords = _relevant_tokens(ctx, ctx.tokens, minimum=1)
    count = len(keywords)
    avg = sum(ctx.relevance(k) for k in keywords) / count if count else 0.0
    score = min(100.0, min(80, count * 20) + avg * 10)
    passed = count >= 2
    message = (
        f"{count} unique keywords in title"
        if passed else
        f"Only {count} unique keyword(s) in title, target at least 2"
    )
    return RuleResult("title_unique_keywords", passed, score, message, evidence=keywords)


def title_combo_coverage(ctx: EvaluationContext) -> RuleResult:
    combos = meaningful_combos(ctx.tokens, ctx.stopwords)
    count = len(combos)
    if count == 0:
        score = 20
    elif count <= 2:
        score = 50
    elif count <= 5:
        score = 75
    else:
        score = 90
    passed = count >= 2
    message = (
        f"Title forms {count} keyword combos"
        if passed else
        f"Title forms only {count} keyword combo(s); place related keywords side by side"
    )
    return RuleResult("title_combo_coverage", passed, score, message, evidence=combos[:10])


def title_filler_penalty(ctx: EvaluationContext) -> RuleResult:
    result = filter_stopwords(ctx.tokens, ctx.stopwords)
    noise = result.noise_ratio
    if noise > 0.5:
        penalty = 30
    elif noise > 0.3:
        penalty = 15
    else:
        penalty = 0
    passed = noise <= 0.3
    message = (
        f"Low filler ratio ({noise:.0%})"
        if passed else
        f"High filler ratio ({noise:.0%}); replace filler words with keywords"
    )
    return RuleResult(
        "title_filler_penalty", passed, 100 - penalty, message,
        evidence=result.ignored, penalty=penalty,
    )


# ─── Subtitle Rules ──────────────────────────────────────────────────────────


def subtitle_character_usage(ctx: EvaluationContext) -> RuleResult:
    return _character_usage("subtitle_character_usage", ctx)


def subtitle_incremental_value(ctx: EvaluationContext) -> RuleResult:
    if not ctx.tokens:
        return RuleResult("subtitle_incremental_value", False, 0, "Subtitle is empty")

    title_relevant = set(_relevant_tokens(ctx, ctx.title_tokens, minimum=2))
    new_keywords = [
        t for t in _relevant_tokens(ctx, ctx.tokens, minimum=2)
        if t not in title_relevant
    ]
    count = len(new_keywords)
    score = {0: 20, 1: 50, 2: 75}.get(count, 95)
    passed = count >= 2
    message = (
        f"Subtitle adds {count} new high-value keywords"
        if passed else
        f"Subtitle adds only {count} new high-value keyword(s) beyond the title"
    )
    return RuleResult("subtitle_incremental_value", passed, score, message, evidence=new_keywords)


def subtitle_combo_coverage(ctx: EvaluationContext) -> RuleResult:
    if not (ctx.text or "").strip():
        return RuleResult("subtitle_combo_coverage", False, 0, "No subtitle provided")
    title_combos = set(meaningful_combos(ctx.title_tokens, ctx.stopwords))
    combined = meaningful_combos(ctx.title_tokens + ctx.tokens, ctx.stopwords)
    new_combos = [c for c in combined if c not in title_combos]
    count = len(new_combos)
    if count == 0:
        score = 20
    elif count <= 2:
        score = 50
    elif count <= 5:
        score = 80
    else:
        score = 95
    passed = count >= 2
    message = (
        f"Subtitle unlocks {count} new keyword combos"
        if passed else
        f"Subtitle unlocks only {count} new combo(s)"
    )
    return RuleResult("subtitle_combo_coverage", passed, score, message, evidence=new_combos[:10])


def subtitle_complementarity(ctx: EvaluationContext) -> RuleResult:
    if not (ctx.text or "").strip():
        return RuleResult("subtitle_complementarity", False, 0, "No subtitle provided")
    subtitle_relevant = set(_relevant_tokens(ctx, ctx.tokens, minimum=2))
    title_relevant = set(_relevant_tokens(ctx, ctx.title_tokens, minimum=2))
    shared = subtitle_relevant & title_relevant
    # no high-value subtitle tokens means nothing repeats the title
    overlap = len(shared) / len(subtitle_relevant) if subtitle_relevant else 0.0
    passed = overlap < 0.4
    message = (
        f"Subtitle complements the title ({overlap:.0%} overlap)"
        if passed else
        f"Subtitle repeats title keywords ({overlap:.0%} overlap)"
    )
    return RuleResult(
        "subtitle_complementarity", passed, (1 - overlap) * 100, message,
        evidence=sorted(shared),
    )


# ─── Description Rules ───────────────────────────────────────────────────────

HOOK_WORDS = ("discover", "experience", "transform", "achieve", "unlock", "revolutionize", "master")
CTA_VERBS = ("download", "try", "start", "get", "join", "subscribe")
_FEATURE_PATTERN = re.compile(r"\b(feature|tool|function|capability|benefit)\b", re.IGNORECASE)


def description_hook_strength(ctx: EvaluationContext) -> RuleResult:
    text = ctx.text or ""
    if not text.strip():
        return RuleResult("description_hook_strength", False, 0, "No description provided")
    first_paragraph = text.split("\n\n")[0].lower()
    first_sentence = re.split(r"[.!?]", text.strip(), maxsplit=1)[0]

    hooks = [w for w in HOOK_WORDS if re.search(rf"\b{w}\b", first_paragraph)]
    strong_opening = 50 <= len(first_sentence.strip()) <= 150

    if hooks and strong_opening:
        score = 90
    elif hooks:
        score = 75
    elif strong_opening:
        score = 70
    else:
        score = 60
    passed = score >= 70
    message = (
        "Opening hooks the reader"
        if passed else
        "Opening lacks a hook; lead with a benefit-driven first sentence"
    )
    return RuleResult("description_hook_strength", passed, score, message, evidence=hooks)


def description_feature_mentions(ctx: EvaluationContext) -> RuleResult:
    matches = _FEATURE_PATTERN.findall(ctx.text or "")
    count = len(matches)
    passed = count >= 3
    message = f"{count} feature/benefit mentions"
    return RuleResult(
        "description_feature_mentions", passed, min(100, count * 15), message,
        evidence=[m.lower() for m in matches[:10]],
    )


def description_cta_strength(ctx: EvaluationContext) -> RuleResult:
    lowered = (ctx.text or "").lower()
    found = [v for v in CTA_VERBS if re.search(rf"\b{v}\b", lowered)]
    passed = len(found) >= 2
    message = (
        f"Clear calls to action ({', '.join(found)})"
        if passed else
        "Add calls to action such as 'download' or 'start'"
    )
    return RuleResult("description_cta_strength", passed, min(100, len(found) * 25), message, evidence=found)


def description_readability(ctx: EvaluationContext) -> RuleResult:
    ease = flesch_reading_ease(ctx.text)
    if ease is None:
        return RuleResult("description_readability", False, 0, "Description is empty")
    level = readability_level(ease)
    return RuleResult(
        "description_readability", ease >= 60, ease,
        f"Readability: {level} (Flesch {ease})", evidence=[level],
    )


# ─── Registry ────────────────────────────────────────────────────────────────

RULE_REGISTRY: Dict[str, ElementConfig] = {
    "title": ElementConfig(
        element="title",
        max_length=30,
        weight=0.65,
        rules=[
            RuleConfig("title_character_usage", "Character Usage",
                       "Use 70-100% of the available title characters", 0.25, title_character_usage),
            RuleConfig("title_unique_keywords", "Unique Keywords",
                       "Count of unique, relevant keywords in the title", 0.30, title_unique_keywords),
            RuleConfig("title_combo_coverage", "Combo Coverage",
                       "Meaningful multi-word combos formed by the title", 0.30, title_combo_coverage),
            RuleConfig("title_filler_penalty", "Filler Penalty",
                       "Penalizes stopwords and filler tokens", 0.15, title_filler_penalty),
        ],
    ),
    "subtitle": ElementConfig(
        element="subtitle",
        max_length=30,
        weight=0.35,
        rules=[
            RuleConfig("subtitle_character_usage", "Character Usage",
                       "Use 70-100% of the available subtitle characters", 0.20, subtitle_character_usage),
            RuleConfig("subtitle_incremental_value", "Incremental Value",
                       "New high-value keywords not already in the title", 0.40, subtitle_incremental_value),
            RuleConfig("subtitle_combo_coverage", "Combo Coverage",
                       "New combos unlocked when subtitle joins the title", 0.25, subtitle_combo_coverage),
            RuleConfig("subtitle_complementarity", "Complementarity",
                       "Low keyword overlap with the title", 0.15, subtitle_complementarity),
        ],
    ),
    "description": ElementConfig(
        element="description",
        max_length=4000,
        weight=0.0,
        rules=[
            RuleConfig("description_hook_strength", "Hook Strength",
                       "Opening paragraph hooks the reader", 0.30, description_hook_strength),
            RuleConfig("description_feature_mentions", "Feature Mentions",
                       "Mentions of features and benefits", 0.25, description_feature_mentions),
            RuleConfig("description_cta_strength", "CTA Strength",
                       "Calls to action", 0.20, description_cta_strength),
            RuleConfig("description_readability", "Readability",
                       "Flesch reading ease", 0.25, description_readability),
        ],
    ),
}


def all_rules() -> List[RuleConfig]:
    return [rule for element in RULE_REGISTRY.values() for rule in element.rules]


def get_rule(rule_id: str) -> Optional[RuleConfig]:
    for rule in all_rules():
        if rule.rule_id == rule_id:
            return rule
    return None
