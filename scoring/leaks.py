"""
Vertical Leak Detection
------------------------
Flags ruleset entries that belong to a different vertical than the app's
store category (e.g. language-learning tokens boosted for a finance app).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

LEARNING_TOKENS = ("learn", "study", "lesson", "course", "fluency")
LEARNING_EXAMPLES = ("learn spanish", "language lessons", "fluency")

EXPECTED_VERTICALS: Dict[str, List[str]] = {
    "Education": ["language_learning", "base"],
    "Finance": ["finance", "base"],
    "Business": ["finance", "productivity", "base"],
    "Entertainment": ["entertainment", "rewards", "base"],
    "Lifestyle": ["rewards", "health", "dating", "base"],
    "Health & Fitness": ["health", "base"],
    "Productivity": ["productivity", "base"],
    "Social Networking": ["dating", "base"],
}


@dataclass
class LeakWarning:
    type: str            # pattern_leak | recommendation_leak | vertical_mismatch
    severity: str        # low | medium | high
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "severity": self.severity, "message": self.message, "details": self.details}


def _intent_keys_contain(ruleset: Any, *needles: str) -> bool:
    keys = (getattr(ruleset, "intent_overrides", None) or {}).keys()
    return any(n in key for key in keys for n in needles)


def _language_learning_leak(ruleset: Any, category: Optional[str]) -> List[LeakWarning]:
    if category == "Education":
        return []
    warnings = []
    if _intent_keys_contain(ruleset, "learning"):
        warnings.append(LeakWarning(
            "pattern_leak", "medium",
            "Language-learning intent patterns detected in non-Education app",
            {"category": category, "vertical": ruleset.vertical_id},
        ))
    tokens = ruleset.token_relevance_overrides or {}
    if any(tokens.get(t) == 3 for t in LEARNING_TOKENS):
        warnings.append(LeakWarning(
            "pattern_leak", "low",
            "Language-learning token patterns detected in non-Education app",
            {"category": category},
        ))
    return warnings


def _reward_leak(ruleset: Any, category: Optional[str]) -> List[LeakWarning]:
    if category in ("Entertainment", "Lifestyle"):
        return []
    if _intent_keys_contain(ruleset, "earning", "redemption"):
        return [LeakWarning(
            "pattern_leak", "medium",
            "Reward intent patterns detected in non-reward app",
            {"category": category, "vertical": ruleset.vertical_id},
        )]
    return []


def _finance_leak(ruleset: Any, category: Optional[str]) -> List[LeakWarning]:
    if category in ("Finance", "Business"):
        return []
    if _intent_keys_contain(ruleset, "investing", "trading"):
        return [LeakWarning(
            "pattern_leak", "medium",
            "Finance intent patterns detected in non-finance app",
            {"category": category, "vertical": ruleset.vertical_id},
        )]
    return []


def _recommendation_leak(ruleset: Any, category: Optional[str]) -> List[LeakWarning]:
    if category == "Education":
        return []
    warnings = []
    for rec_id, rec in (ruleset.recommendation_overrides or {}).items():
        template = (rec.get("message") or "").lower()
        if any(example in template for example in LEARNING_EXAMPLES):
            warnings.append(LeakWarning(
                "recommendation_leak", "high",
                "Hard-coded language-learning examples in non-Education app recommendations",
                {"recommendation_id": rec_id, "category": category, "template": template},
            ))
    return warnings


def detect_vertical_leak(ruleset: Any, category: Optional[str]) -> List[LeakWarning]:
    warnings: List[LeakWarning] = []
    warnings.extend(_language_learning_leak(ruleset, category))
    warnings.extend(_reward_leak(ruleset, category))
    warnings.extend(_finance_leak(ruleset, category))
    warnings.extend(_recommendation_leak(ruleset, category))
    return warnings


def detect_vertical_mismatch(ruleset: Any, category: Optional[str]) -> Optional[LeakWarning]:
    vertical = getattr(ruleset, "vertical_id", None)
    if not vertical or not category:
        return None
    expected = EXPECTED_VERTICALS.get(category)
    if expected is None or vertical in expected:
        return None
    return LeakWarning(
        "vertical_mismatch", "high",
        f"Vertical '{vertical}' does not match app category '{category}'",
        {"vertical": vertical, "category": category, "expected_verticals": expected},
    )
