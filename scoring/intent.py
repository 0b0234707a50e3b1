"""
Search Intent Engine
---------------------
Classifies tokens and combos into four search intents using weighted,
prioritized patterns from the intent registry:

  score(pattern) = weight * (1 + priority / 200)

informational | commercial | transactional | navigational
"""

import re
import time
import logging
import threading
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import settings

logger = logging.getLogger(__name__)

INTENT_TYPES = ("informational", "commercial", "transactional", "navigational")

TITLE_WEIGHT = 0.6
SUBTITLE_WEIGHT = 0.4


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class IntentPatternConfig:
    pattern: str
    intent_type: str
    weight: float = 1.0            # 0.1-3.0
    priority: int = 100            # 0-200
    is_regex: bool = False
    case_sensitive: bool = False
    word_boundary: bool = True

    @property
    def score(self) -> float:
        return self.weight * (1 + self.priority / 200)


@dataclass
class TokenIntent:
    token: str
    intent_type: Optional[str]
    matched_pattern: Optional[str]
    score: float

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ComboIntent:
    combo: str
    dominant_intent: str                 # intent type | mixed | unknown
    intent_scores: Dict[str, float]
    matched_patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "combo": self.combo,
            "dominant_intent": self.dominant_intent,
            "intent_scores": {k: round(v, 3) for k, v in self.intent_scores.items()},
            "matched_patterns": self.matched_patterns,
        }


@dataclass
class IntentCoverage:
    counts: Dict[str, int]
    total_classified: int
    coverage_score: int
    dominant_intent: Optional[str]
    classifications: List[ComboIntent] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "counts": self.counts,
            "total_classified": self.total_classified,
            "coverage_score": self.coverage_score,
            "dominant_intent": self.dominant_intent,
            "classifications": [c.to_dict() for c in self.classifications],
        }


@dataclass
class SearchIntentCoverage:
    score: int
    total_tokens: int
    classified_tokens: int
    distribution: Dict[str, int]
    distribution_percentage: Dict[str, int]
    classified: List[TokenIntent] = field(default_factory=list)
    unclassified: List[str] = field(default_factory=list)
    patterns_used: int = 0
    fallback_mode: bool = False

    @property
    def unclassified_tokens(self) -> int:
        return self.total_tokens - self.classified_tokens

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "total_tokens": self.total_tokens,
            "classified_tokens": self.classified_tokens,
            "unclassified_tokens": self.unclassified_tokens,
            "distribution": self.distribution,
            "distribution_percentage": self.distribution_percentage,
            "classified": [t.to_dict() for t in self.classified],
            "unclassified": self.unclassified,
            "patterns_used": self.patterns_used,
            "fallback_mode": self.fallback_mode,
        }


@dataclass
class CombinedSearchIntentCoverage:
    title: SearchIntentCoverage
    subtitle: SearchIntentCoverage
    overall_score: int
    combined_distribution: Dict[str, int]
    combined_distribution_percentage: Dict[str, int]

    @property
    def fallback_mode(self) -> bool:
        return self.title.fallback_mode

    def to_dict(self) -> Dict:
        return {
            "title": self.title.to_dict(),
            "subtitle": self.subtitle.to_dict(),
            "overall_score": self.overall_score,
            "combined_distribution": self.combined_distribution,
            "combined_distribution_percentage": self.combined_distribution_percentage,
        }


# ─── Fallback Registry ───────────────────────────────────────────────────────

FALLBACK_PATTERNS: List[IntentPatternConfig] = [
    # informational
    IntentPatternConfig("learn", "informational", 1.2, 100),
    IntentPatternConfig("how to", "informational", 1.3, 110, word_boundary=False),
    IntentPatternConfig("guide", "informational", 1.1, 90),
    IntentPatternConfig("tutorial", "informational", 1.1, 90),
    # commercial
    IntentPatternConfig("best", "commercial", 1.5, 120),
    IntentPatternConfig("top", "commercial", 1.4, 115),
    IntentPatternConfig("compare", "commercial", 1.3, 110),
    # transactional
    IntentPatternConfig("download", "transactional", 2.0, 150),
    IntentPatternConfig("free", "transactional", 1.8, 140),
    IntentPatternConfig("get", "transactional", 1.5, 130),
    # navigational
    IntentPatternConfig("app", "navigational", 1.0, 50),
    IntentPatternConfig("official", "navigational", 1.2, 60),
]


# ─── Matching ────────────────────────────────────────────────────────────────


def match_pattern(text: str, pattern: IntentPatternConfig) -> bool:
    if not text or not pattern.pattern:
        return False
    flags = 0 if pattern.case_sensitive else re.IGNORECASE

    if pattern.is_regex:
        try:
            return re.search(pattern.pattern, text, flags) is not None
        except re.error as e:
            logger.warning(f"Invalid intent regex '{pattern.pattern}': {e}")
            return False

    if pattern.word_boundary:
        return re.search(rf"\b{re.escape(pattern.pattern)}\b", text, flags) is not None

    if pattern.case_sensitive:
        return pattern.pattern in text
    return pattern.pattern.lower() in text.lower()


def classify_token_intent(token: str, patterns: List[IntentPatternConfig]) -> Optional[TokenIntent]:
    """Best-scoring matching pattern for a token, or None."""
    best: Optional[IntentPatternConfig] = None
    for pattern in patterns:
        if match_pattern(token, pattern) and (best is None or pattern.score > best.score):
            best = pattern
    if best is None:
        return None
    return TokenIntent(token=token, intent_type=best.intent_type, matched_pattern=best.pattern, score=best.score)


def classify_combo_intent(combo: str, patterns: List[IntentPatternConfig]) -> ComboIntent:
    scores = {t: 0.0 for t in INTENT_TYPES}
    matched = []
    for pattern in patterns:
        if pattern.intent_type in scores and match_pattern(combo, pattern):
            scores[pattern.intent_type] += pattern.score
            matched.append(pattern.pattern)

    present = sorted(((t, s) for t, s in scores.items() if s > 0), key=lambda x: x[1], reverse=True)
    if not present:
        dominant = "unknown"
    elif len(present) == 1:
        dominant = present[0][0]
    else:
        total = sum(s for _, s in present)
        dominant = present[0][0] if present[0][1] / total > 0.5 else "mixed"

    return ComboIntent(combo=combo, dominant_intent=dominant, intent_scores=scores, matched_patterns=matched)


# ─── Coverage ────────────────────────────────────────────────────────────────


def compute_intent_coverage(texts: List[str], patterns: List[IntentPatternConfig]) -> IntentCoverage:
    counts = {t: 0 for t in INTENT_TYPES}
    classifications = []
    for text in texts:
        token_intent = classify_token_intent(text, patterns)
        if token_intent:
            counts[token_intent.intent_type] += 1
        classifications.append(classify_combo_intent(text, patterns))

    total = sum(counts.values())
    present = sum(1 for c in counts.values() if c > 0)
    dominant = None
    best = 0
    for intent_type, count in counts.items():
        if count > best:
            dominant, best = intent_type, count

    return IntentCoverage(
        counts=counts,
        total_classified=total,
        coverage_score=round(present / 4 * 100),
        dominant_intent=dominant,
        classifications=classifications,
    )


def _percentages(distribution: Dict[str, int], total: int) -> Dict[str, int]:
    return {k: (round(v / total * 100) if total else 0) for k, v in distribution.items()}


def compute_search_intent_coverage(
    tokens: List[str],
    patterns: List[IntentPatternConfig],
    fallback_mode: bool = False,
) -> SearchIntentCoverage:
    distribution = {t: 0 for t in INTENT_TYPES}
    distribution["unclassified"] = 0
    classified, unclassified = [], []

    for token in tokens:
        match = classify_token_intent(token, patterns)
        if match:
            distribution[match.intent_type] += 1
            classified.append(match)
        else:
            distribution["unclassified"] += 1
            unclassified.append(token)

    total = len(tokens)
    return SearchIntentCoverage(
        score=round(len(classified) / total * 100) if total else 0,
        total_tokens=total,
        classified_tokens=len(classified),
        distribution=distribution,
        distribution_percentage=_percentages(distribution, total),
        classified=classified,
        unclassified=unclassified,
        patterns_used=len(patterns),
        fallback_mode=fallback_mode,
    )


def compute_combined_search_intent_coverage(
    title_tokens: List[str],
    subtitle_tokens: List[str],
    patterns: List[IntentPatternConfig],
    fallback_mode: bool = False,
) -> CombinedSearchIntentCoverage:
    title = compute_search_intent_coverage(title_tokens, patterns, fallback_mode)
    subtitle = compute_search_intent_coverage(subtitle_tokens, patterns, fallback_mode)

    combined = {k: title.distribution[k] + subtitle.distribution[k] for k in title.distribution}
    return CombinedSearchIntentCoverage(
        title=title,
        subtitle=subtitle,
        overall_score=round(title.score * TITLE_WEIGHT + subtitle.score * SUBTITLE_WEIGHT),
        combined_distribution=combined,
        combined_distribution_percentage=_percentages(combined, len(title_tokens) + len(subtitle_tokens)),
    )


def dominant_intent(distribution: Dict[str, int]) -> Optional[str]:
    ranked = sorted(((t, distribution.get(t, 0)) for t in INTENT_TYPES), key=lambda x: x[1], reverse=True)
    return ranked[0][0] if ranked and ranked[0][1] > 0 else None


# ─── Cache ───────────────────────────────────────────────────────────────────


class IntentPatternCache:
    """Process-local TTL cache of resolved pattern lists keyed by scope context."""

    def __init__(self, ttl_seconds: float = settings.INTENT_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[IntentPatternConfig], bool]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Tuple[List[IntentPatternConfig], bool]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, patterns, fallback = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return patterns, fallback

    def set(self, key: str, patterns: List[IntentPatternConfig], fallback: bool = False) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), list(patterns), fallback)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def pattern_from_row(row: Any) -> IntentPatternConfig:
    """Build a config from an ORM row or dict."""
    get = row.get if isinstance(row, dict) else lambda k, d=None: getattr(row, k, d)
    return IntentPatternConfig(
        pattern=get("pattern"),
        intent_type=get("intent_type"),
        weight=float(get("weight", 1.0) or 1.0),
        priority=int(get("priority", 100) or 0),
        is_regex=bool(get("is_regex", False)),
        case_sensitive=bool(get("case_sensitive", False)),
        word_boundary=bool(get("word_boundary", True)),
    )
