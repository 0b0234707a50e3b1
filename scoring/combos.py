"""
Keyword Combo Analysis
-----------------------
Classifies 2-4 word keyword combinations found in title/subtitle and
explores combinations the metadata does not yet cover.

  branded   -> contains a leading title token with relevance >= 2
  generic   -> discovery combo, relevance = min(2, round(avg))
  low_value -> noise, time/promo or version words
"""

import re
import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Set

from scoring.relevance import get_token_relevance
from scoring.text import analyze_text, meaningful_combos, tokenize_for_aso

logger = logging.getLogger(__name__)

MAX_COMBOS_PER_SOURCE = 500

LOW_VALUE_STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "be", "been",
    "have", "has", "had", "do", "does", "did", "will", "would", "should",
    "could", "may", "might", "can", "must", "shall",
})

_LEADING_DIGIT = re.compile(r"^\d+")
_TIME_PROMO = re.compile(r"\b(day|days|week|weeks|month|months|year|years|trial|limited|offer|sale|deal|deals)\b")
_VERSION_WORDS = re.compile(r"\b(new|latest|updated|version)\b")


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class ClassifiedCombo:
    text: str
    type: str               # branded | generic | low_value
    relevance_score: int    # 0-3

    def to_dict(self) -> Dict:
        return {"text": self.text, "type": self.type, "relevance_score": self.relevance_score}


@dataclass
class ComboCoverage:
    title_combos: List[str]
    subtitle_new_combos: List[str]
    all_combined_combos: List[str]
    title_combos_classified: List[ClassifiedCombo] = field(default_factory=list)
    subtitle_new_combos_classified: List[ClassifiedCombo] = field(default_factory=list)
    low_value_combos: List[ClassifiedCombo] = field(default_factory=list)

    @property
    def total_combos(self) -> int:
        return len(self.all_combined_combos)

    def count(self, combo_type: str) -> int:
        classified = self.title_combos_classified + self.subtitle_new_combos_classified
        return sum(1 for c in classified if c.type == combo_type)

    def to_dict(self) -> Dict:
        return {
            "total_combos": self.total_combos,
            "title_combos": self.title_combos,
            "subtitle_new_combos": self.subtitle_new_combos,
            "all_combined_combos": self.all_combined_combos,
            "title_combos_classified": [c.to_dict() for c in self.title_combos_classified],
            "subtitle_new_combos_classified": [c.to_dict() for c in self.subtitle_new_combos_classified],
            "low_value_combos": [c.to_dict() for c in self.low_value_combos],
        }


@dataclass
class GeneratedCombo:
    text: str
    keywords: List[str]
    length: int
    exists: bool
    source: str                 # title | subtitle | both | missing
    strategic_value: int = 0    # 0-100

    def to_dict(self) -> Dict:
        return {
            "text": self.text,
            "keywords": self.keywords,
            "length": self.length,
            "exists": self.exists,
            "source": self.source,
            "strategic_value": self.strategic_value,
        }


@dataclass
class ComboOpportunities:
    existing: List[GeneratedCombo]
    missing: List[GeneratedCombo]
    recommended: List[GeneratedCombo]
    total_possible: int

    @property
    def coverage(self) -> float:
        if self.total_possible == 0:
            return 0.0
        return len(self.existing) / self.total_possible * 100

    def to_dict(self) -> Dict:
        return {
            "stats": {
                "total_possible": self.total_possible,
                "existing": len(self.existing),
                "missing": len(self.missing),
                "coverage": round(self.coverage, 2),
            },
            "existing": [c.to_dict() for c in self.existing],
            "missing": [c.to_dict() for c in self.missing[:50]],
            "recommended": [c.to_dict() for c in self.recommended],
        }


# ─── Classification ──────────────────────────────────────────────────────────


def classify_combo(
    combo: str,
    title_tokens: List[str],
    relevance_overrides: Optional[Dict[str, int]] = None,
) -> ClassifiedCombo:
    words = combo.lower().split()
    relevances = [get_token_relevance(w, relevance_overrides) for w in words]
    avg = sum(relevances) / len(relevances) if relevances else 0.0

    if (
        avg == 0
        or _LEADING_DIGIT.match(combo)
        or _TIME_PROMO.search(combo.lower())
        or _VERSION_WORDS.search(combo.lower())
    ):
        return ClassifiedCombo(text=combo, type="low_value", relevance_score=0)

    brand_candidates = {
        t for t in title_tokens[:2]
        if get_token_relevance(t, relevance_overrides) >= 2
    }
    if brand_candidates.intersection(words):
        return ClassifiedCombo(text=combo, type="branded", relevance_score=min(3, round(avg)))

    return ClassifiedCombo(text=combo, type="generic", relevance_score=min(2, round(avg)))


def analyze_combo_coverage(
    title: str,
    subtitle: str,
    stopwords: Optional[Set[str]] = None,
    relevance_overrides: Optional[Dict[str, int]] = None,
) -> ComboCoverage:
    """Title combos, combos the subtitle adds on top of them, and their classes."""
    title_tokens = tokenize_for_aso(title)
    subtitle_tokens = tokenize_for_aso(subtitle)

    title_combos = meaningful_combos(title_tokens, stopwords)
    combined = meaningful_combos(title_tokens + subtitle_tokens, stopwords)
    title_set = set(title_combos)
    subtitle_new = [c for c in combined if c not in title_set]

    title_classified = [classify_combo(c, title_tokens, relevance_overrides) for c in title_combos]
    subtitle_classified = [classify_combo(c, title_tokens, relevance_overrides) for c in subtitle_new]
    low_value = [c for c in title_classified + subtitle_classified if c.type == "low_value"]

    return ComboCoverage(
        title_combos=title_combos,
        subtitle_new_combos=subtitle_new,
        all_combined_combos=combined,
        title_combos_classified=[c for c in title_classified if c.type != "low_value"],
        subtitle_new_combos_classified=[c for c in subtitle_classified if c.type != "low_value"],
        low_value_combos=low_value,
    )


# ─── Combo Generation ────────────────────────────────────────────────────────


def filter_low_value_keywords(keywords: List[str]) -> List[str]:
    return [
        kw for kw in keywords
        if len(kw.strip()) > 1 and kw.strip().lower() not in LOW_VALUE_STOPWORDS
    ]


def _combos_of(keywords: List[str], size: int, limit: int) -> List[List[str]]:
    out = []
    for combo in combinations(keywords, size):
        if len(out) >= limit:
            break
        out.append(list(combo))
    return out


def generate_all_possible_combos(
    title_keywords: List[str],
    subtitle_keywords: List[str],
    min_length: int = 2,
    max_length: int = 4,
    include_title: bool = True,
    include_subtitle: bool = True,
    include_cross: bool = True,
) -> List[str]:
    """
    Every keyword combination (order preserved, not necessarily adjacent)
    from title, subtitle and title x subtitle, capped per source.
    """
    title_kw = filter_low_value_keywords(title_keywords)
    subtitle_kw = filter_low_value_keywords(subtitle_keywords)

    seen: Dict[str, None] = {}
    generated = 0
    max_total = MAX_COMBOS_PER_SOURCE * 3

    def _emit(source: List[str], require_cross: bool = False):
        nonlocal generated
        for length in range(min_length, min(max_length, len(source)) + 1):
            if generated >= max_total:
                return
            for combo in _combos_of(source, length, max_total - generated):
                if require_cross and not (
                    any(k in title_kw for k in combo) and any(k in subtitle_kw for k in combo)
                ):
                    continue
                seen.setdefault(" ".join(combo))
                generated += 1

    if include_title:
        _emit(title_kw)
    if include_subtitle and generated < max_total:
        _emit(subtitle_kw)
    if include_cross and title_kw and subtitle_kw and generated < max_total:
        _emit(title_kw + subtitle_kw, require_cross=True)

    if generated >= max_total:
        logger.warning(f"Combo generation hit the cap of {max_total} combos")
    return list(seen)


def combo_exists_in_text(combo: str, text: str) -> bool:
    """Exact phrase, or all combo words appearing in order."""
    text = (text or "").lower()
    combo = combo.lower()
    if combo in text:
        return True

    last_index = -1
    for word in combo.split(" "):
        index = text.find(word, last_index + 1)
        if index == -1:
            return False
        last_index = index
    return True


def determine_combo_source(combo: str, title: str, subtitle: str) -> str:
    in_title = combo_exists_in_text(combo, title)
    in_subtitle = combo_exists_in_text(combo, subtitle)
    if in_title and in_subtitle:
        return "both"
    if in_title:
        return "title"
    if in_subtitle:
        return "subtitle"
    return "missing"


def strategic_value(combo: str, relevance_overrides: Optional[Dict[str, int]] = None) -> int:
    """0-100: high-relevance, 2-3 word combos score best."""
    words = combo.split()
    relevances = [get_token_relevance(w, relevance_overrides) for w in words]
    avg = sum(relevances) / len(relevances) if relevances else 0
    length_bonus = {2: 25, 3: 20, 4: 10}.get(len(words), 0)
    return int(min(100, round(avg / 3 * 75 + length_bonus)))


def analyze_combo_opportunities(
    title: str,
    subtitle: str,
    stopwords: Optional[Set[str]] = None,
    relevance_overrides: Optional[Dict[str, int]] = None,
    max_recommendations: int = 10,
) -> ComboOpportunities:
    title_kw = analyze_text(title, stopwords).keywords
    subtitle_kw = analyze_text(subtitle, stopwords).keywords
    possible = generate_all_possible_combos(title_kw, subtitle_kw)

    existing, missing = [], []
    for text in possible:
        source = determine_combo_source(text, title, subtitle)
        words = text.split(" ")
        combo = GeneratedCombo(
            text=text,
            keywords=words,
            length=len(words),
            exists=source != "missing",
            source=source,
            strategic_value=strategic_value(text, relevance_overrides),
        )
        (existing if combo.exists else missing).append(combo)

    missing.sort(key=lambda c: c.strategic_value, reverse=True)
    return ComboOpportunities(
        existing=existing,
        missing=missing,
        recommended=missing[:max_recommendations],
        total_possible=len(possible),
    )
