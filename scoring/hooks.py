"""
Hook Pattern Detection
-----------------------
Finds persuasive "hooks" in metadata text, grouped into six categories
with phrase lists tuned per vertical.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from scoring.ruleset import clamp_multiplier

HOOK_CATEGORIES = (
    "learning_educational",
    "outcome_benefit",
    "status_authority",
    "ease_of_use",
    "time_to_result",
    "trust_safety",
)

POINTS_PER_MATCH = 35


# ─── Pattern Maps ────────────────────────────────────────────────────────────

BASE_HOOK_PATTERNS: Dict[str, List[str]] = {
    "learning_educational": ["learn", "discover", "explore", "understand", "guide", "tips"],
    "outcome_benefit": ["save time", "save money", "achieve goals", "improve", "boost", "get results"],
    "status_authority": ["#1", "award winning", "trusted by millions", "top rated", "editors choice", "proven"],
    "ease_of_use": ["easy", "simple", "intuitive", "user friendly", "effortless", "quick setup"],
    "time_to_result": ["instant", "fast", "in minutes", "right away", "start today", "same day"],
    "trust_safety": ["secure", "safe", "private", "trusted", "verified", "protected"],
}

VERTICAL_HOOK_PATTERNS: Dict[str, Dict[str, List[str]]] = {
    "language_learning": {
        "learning_educational": ["learn", "master", "study", "practice", "lessons", "course", "tutorial", "education"],
        "outcome_benefit": ["speak fluently", "become fluent", "travel confidently", "expand vocabulary",
                            "perfect pronunciation", "sound natural", "career boost"],
        "status_authority": ["#1 language app", "expert approved", "award winning", "used by millions",
                             "proven method", "recommended by teachers"],
        "ease_of_use": ["easy to learn", "beginner friendly", "step by step", "guided", "bite-sized lessons",
                        "just 5 minutes"],
        "time_to_result": ["in 30 days", "fast results", "quick progress", "within weeks", "daily practice"],
        "trust_safety": ["trusted", "safe learning", "privacy protected", "authentic content", "verified"],
    },
    "rewards": {
        "learning_educational": ["how to earn", "maximize rewards", "discover offers", "find deals"],
        "outcome_benefit": ["earn cash", "get paid", "extra income", "cashback", "gift cards", "rewards"],
        "status_authority": ["#1 rewards app", "top earning app", "highest rated", "millions earned",
                             "verified payouts"],
        "ease_of_use": ["easy to earn", "tap to earn", "play and earn", "automatic", "no hassle", "effortless"],
        "time_to_result": ["instant payout", "fast cash out", "same day", "earn today", "within 24 hours"],
        "trust_safety": ["legitimate", "real money", "guaranteed payout", "no scam", "secure", "verified"],
    },
    "finance": {
        "learning_educational": ["learn investing", "financial education", "understand markets", "budget better",
                                 "track spending"],
        "outcome_benefit": ["save money", "grow wealth", "build portfolio", "earn interest", "financial freedom",
                            "reduce fees"],
        "status_authority": ["bank grade", "fdic insured", "regulated", "licensed", "trusted by millions",
                             "industry leader"],
        "ease_of_use": ["easy banking", "simple investing", "seamless", "hassle free", "quick setup", "automated"],
        "time_to_result": ["instant transfer", "same day", "fast approval", "real time", "within minutes"],
        "trust_safety": ["secure", "encrypted", "insured", "bank level security", "fraud protection", "compliant"],
    },
    "dating": {
        "learning_educational": ["discover matches", "explore profiles", "find compatible"],
        "outcome_benefit": ["find love", "meet singles", "make connections", "real relationships",
                            "find your match", "lasting relationship"],
        "status_authority": ["#1 dating app", "most popular", "millions of users", "success stories",
                             "award winning"],
        "ease_of_use": ["easy matching", "simple swipe", "quick setup", "effortless", "intuitive"],
        "time_to_result": ["match today", "instant matches", "start chatting now", "meet tonight", "fast matching"],
        "trust_safety": ["verified profiles", "safe dating", "real people", "screened", "moderated", "privacy first"],
    },
    "productivity": {
        "learning_educational": ["learn to organize", "master productivity", "discover techniques"],
        "outcome_benefit": ["get organized", "boost productivity", "save time", "stay focused", "work smarter",
                            "complete tasks"],
        "status_authority": ["#1 productivity app", "trusted by professionals", "used by fortune 500",
                             "industry standard", "award winning"],
        "ease_of_use": ["easy to use", "simple", "intuitive", "streamlined", "no learning curve", "quick setup"],
        "time_to_result": ["instant organization", "immediate results", "get started now", "quick sync",
                           "right away"],
        "trust_safety": ["secure", "encrypted", "private", "reliable", "backed up", "protected"],
    },
    "health": {
        "learning_educational": ["learn fitness", "understand nutrition", "track progress", "monitor health"],
        "outcome_benefit": ["lose weight", "get fit", "build muscle", "sleep better", "boost energy",
                            "live healthier"],
        "status_authority": ["doctor recommended", "scientifically proven", "certified trainers",
                             "expert designed", "trusted by athletes"],
        "ease_of_use": ["easy tracking", "simple workouts", "guided", "step by step", "beginner friendly"],
        "time_to_result": ["see results fast", "in 30 days", "quick progress", "within weeks", "start today"],
        "trust_safety": ["secure", "private", "confidential", "hipaa compliant", "protected data"],
    },
    "entertainment": {
        "learning_educational": ["discover content", "explore shows", "find favorites", "browse library"],
        "outcome_benefit": ["unlimited entertainment", "endless content", "binge watch", "have fun", "ad-free",
                            "exclusive content"],
        "status_authority": ["#1 streaming app", "award winning shows", "original content", "most popular"],
        "ease_of_use": ["easy streaming", "simple interface", "one click", "quick access", "seamless"],
        "time_to_result": ["watch now", "instant streaming", "start watching", "play instantly", "no wait"],
        "trust_safety": ["family friendly", "parental controls", "safe", "secure", "trusted"],
    },
}


@dataclass
class HookCategoryResult:
    category: str
    matched: List[str]
    weight: float
    score: float

    def to_dict(self) -> Dict:
        return {
            "category": self.category,
            "matched": self.matched,
            "weight": round(self.weight, 2),
            "score": round(self.score, 2),
        }


@dataclass
class HookAnalysis:
    vertical: str
    categories: Dict[str, HookCategoryResult] = field(default_factory=dict)

    @property
    def matched_categories(self) -> List[str]:
        return [c for c, r in self.categories.items() if r.matched]

    @property
    def missing_categories(self) -> List[str]:
        return [c for c in HOOK_CATEGORIES if not self.categories.get(c) or not self.categories[c].matched]

    @property
    def coverage(self) -> float:
        return len(self.matched_categories) / len(HOOK_CATEGORIES) * 100

    @property
    def score(self) -> float:
        if not self.categories:
            return 0.0
        return sum(r.score for r in self.categories.values()) / len(HOOK_CATEGORIES)

    def to_dict(self) -> Dict:
        return {
            "vertical": self.vertical,
            "coverage": round(self.coverage, 2),
            "score": round(self.score, 2),
            "matched_categories": self.matched_categories,
            "missing_categories": self.missing_categories,
            "categories": {c: r.to_dict() for c, r in self.categories.items()},
        }


def get_hook_patterns(vertical: Optional[str]) -> Dict[str, List[str]]:
    """Vertical map if one exists, base otherwise."""
    return VERTICAL_HOOK_PATTERNS.get(vertical or "", BASE_HOOK_PATTERNS)


def _phrase_in(text: str, phrase: str) -> bool:
    phrase = phrase.lower()
    if phrase[0].isalnum() and phrase[-1].isalnum():
        return re.search(rf"\b{re.escape(phrase)}\b", text) is not None
    return phrase in text


def detect_hooks(
    text: str,
    vertical: Optional[str] = None,
    hook_overrides: Optional[Dict[str, float]] = None,
    extra_keywords: Optional[Dict[str, List[str]]] = None,
) -> HookAnalysis:
    lowered = (text or "").lower()
    patterns = get_hook_patterns(vertical)
    hook_overrides = hook_overrides or {}
    extra_keywords = extra_keywords or {}

    analysis = HookAnalysis(vertical=vertical if vertical in VERTICAL_HOOK_PATTERNS else "base")
    for category in HOOK_CATEGORIES:
        phrases = list(patterns.get(category, [])) + list(extra_keywords.get(category, []))
        matched = sorted({p for p in phrases if p and _phrase_in(lowered, p)})
        weight = clamp_multiplier(hook_overrides.get(category))
        score = min(100.0, len(matched) * POINTS_PER_MATCH * weight)
        analysis.categories[category] = HookCategoryResult(category, matched, weight, score)
    return analysis
