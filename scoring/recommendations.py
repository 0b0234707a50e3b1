"""
Vertical Recommendation Templates
----------------------------------
Reusable advice per vertical. A template fires when its hook category is
missing from the metadata or none of its token family appears.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


@dataclass
class RecommendationTemplate:
    id: str
    trigger: str
    message: str
    severity: str                       # info | warning | critical
    category: str                       # hook | intent | token | structure | generic
    hook_category: Optional[str] = None
    token_family: FrozenSet[str] = field(default_factory=frozenset)

    def is_triggered(self, missing_hooks: List[str], tokens: List[str]) -> bool:
        if self.hook_category:
            return self.hook_category in missing_hooks
        if self.token_family:
            return not self.token_family.intersection(tokens)
        return False


@dataclass
class VerticalRecommendation:
    id: str
    message: str
    severity: str
    category: str
    overridden: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "severity": self.severity,
            "category": self.category,
            "overridden": self.overridden,
        }


def _t(id, trigger, message, severity, category, hook=None, tokens=()):
    return RecommendationTemplate(id, trigger, message, severity, category, hook, frozenset(tokens))


BASE_RECOMMENDATIONS: Dict[str, RecommendationTemplate] = {t.id: t for t in [
    _t("missing_outcome_hook", "No outcome or benefit hooks",
       "Lead with a concrete outcome users get from the app instead of listing features.",
       "warning", "hook", hook="outcome_benefit"),
    _t("missing_ease_hook", "No ease-of-use hooks",
       "Signal how easy the app is to start with ('simple', 'quick setup', 'step by step').",
       "info", "hook", hook="ease_of_use"),
    _t("missing_trust_hook", "No trust signals",
       "Add a trust signal such as 'secure', 'trusted' or 'verified' to reduce install hesitation.",
       "info", "hook", hook="trust_safety"),
    _t("missing_authority_hook", "No authority signals",
       "Mention social proof or awards ('award winning', 'trusted by millions') if they apply.",
       "info", "hook", hook="status_authority"),
]}

VERTICAL_RECOMMENDATIONS: Dict[str, Dict[str, RecommendationTemplate]] = {
    "language_learning": {t.id: t for t in [
        _t("missing_learning_hook", "No educational hooks detected in title/subtitle",
           "Your title lacks educational hooks such as 'learn', 'practice', or 'speak fluently'. "
           "Adding 1-2 learning-focused terms improves educational intent visibility.",
           "warning", "hook", hook="learning_educational"),
        _t("missing_language_term", "No language-specific terms in metadata",
           "Consider adding language names (e.g., 'Spanish', 'French', 'English') to match users "
           "looking for specific language courses.",
           "info", "token",
           tokens=("english", "spanish", "french", "german", "italian", "japanese", "korean", "chinese")),
        _t("missing_skill_focus", "No skill-specific focus",
           "Specify which skills your app focuses on (e.g., 'conversation', 'vocabulary', 'pronunciation').",
           "info", "token", tokens=("conversation", "vocabulary", "pronunciation", "grammar", "speaking")),
    ]},
    "rewards": {t.id: t for t in [
        _t("missing_earning_term", "No earning-related terms detected",
           "Add at least one earning-related term (e.g., 'earn', 'cash', 'rewards', 'paid'). "
           "This is core to rewards visibility.",
           "critical", "token", tokens=("earn", "cash", "rewards", "paid", "money", "cashback")),
        _t("missing_reward_type", "No specific reward types mentioned",
           "Specify reward types (e.g., 'gift cards', 'PayPal cash') so users know what they can earn.",
           "warning", "intent", tokens=("gift", "cards", "paypal", "amazon", "coupons")),
        _t("missing_trust_signal", "No trust/legitimacy signals",
           "Rewards apps benefit from trust signals like 'real money' or 'guaranteed payout'.",
           "warning", "hook", hook="trust_safety"),
        _t("missing_ease_hook", "No ease-of-earning hooks",
           "Add ease-of-use hooks like 'easy to earn' or 'no hassle' to reduce perceived effort.",
           "info", "hook", hook="ease_of_use"),
    ]},
    "finance": {t.id: t for t in [
        _t("missing_trust_term", "No trust/security terms detected",
           "Finance apps require trust signals ('secure', 'safe', 'insured'). Add at least one.",
           "critical", "token", tokens=("secure", "safe", "insured", "protected", "encrypted", "fdic")),
        _t("missing_action_verb", "No financial action verbs",
           "Include verbs like 'invest', 'save', 'budget' or 'track' to clarify the primary function.",
           "warning", "intent", tokens=("invest", "save", "budget", "track", "trade", "bank")),
        _t("missing_outcome", "No outcome-focused messaging",
           "Add 1-2 benefit statements like 'grow wealth' or 'save money'.",
           "info", "hook", hook="outcome_benefit"),
    ]},
    "dating": {t.id: t for t in [
        _t("missing_social_term", "No social connection terms",
           "Dating apps score better with connection terms ('meet', 'match', 'chat', 'connect').",
           "warning", "token", tokens=("meet", "match", "chat", "connect", "singles", "date", "dating")),
        _t("missing_safety_signal", "No safety/verification terms",
           "Add safety signals like 'verified profiles' or 'safe dating'.",
           "warning", "hook", hook="trust_safety"),
    ]},
    "productivity": {t.id: t for t in [
        _t("missing_task_term", "No task or organization terms",
           "Name the job your app does ('tasks', 'notes', 'planner', 'calendar').",
           "warning", "token", tokens=("tasks", "todo", "notes", "planner", "calendar", "organize")),
        _t("missing_outcome", "No outcome-focused messaging",
           "Add an outcome such as 'stay focused' or 'save time'.",
           "info", "hook", hook="outcome_benefit"),
    ]},
    "health": {t.id: t for t in [
        _t("missing_health_term", "No fitness or wellness terms",
           "Add the activity your app supports ('workout', 'fitness', 'sleep', 'meditation').",
           "warning", "token", tokens=("workout", "fitness", "sleep", "meditation", "health", "yoga", "running")),
        _t("missing_time_hook", "No time-to-result hooks",
           "Health users respond to timelines ('in 30 days', 'see results fast').",
           "info", "hook", hook="time_to_result"),
    ]},
    "entertainment": {t.id: t for t in [
        _t("missing_content_term", "No content type terms",
           "Say what users can watch or play ('movies', 'shows', 'music', 'games').",
           "warning", "token", tokens=("movies", "shows", "music", "games", "videos", "series", "podcasts")),
        _t("missing_instant_hook", "No instant-access hooks",
           "Add instant-gratification hooks like 'watch now' or 'play instantly'.",
           "info", "hook", hook="time_to_result"),
    ]},
}


def get_recommendation_templates(vertical: Optional[str]) -> Dict[str, RecommendationTemplate]:
    """Vertical templates layered over the base set."""
    templates = dict(BASE_RECOMMENDATIONS)
    templates.update(VERTICAL_RECOMMENDATIONS.get(vertical or "", {}))
    return templates


def build_vertical_recommendations(
    vertical: Optional[str],
    hook_analysis: Any,
    tokens: List[str],
    ruleset: Any = None,
) -> List[VerticalRecommendation]:
    missing_hooks = list(getattr(hook_analysis, "missing_categories", []) or [])
    overrides = (getattr(ruleset, "recommendation_overrides", None) or {}) if ruleset else {}

    out = []
    for template in get_recommendation_templates(vertical).values():
        if not template.is_triggered(missing_hooks, tokens):
            continue
        override = overrides.get(template.id) or {}
        message = override.get("message") or template.message
        out.append(VerticalRecommendation(
            id=template.id,
            message=message,
            severity=template.severity,
            category=template.category,
            overridden=bool(override.get("message")),
        ))

    out.sort(key=lambda r: SEVERITY_ORDER.get(r.severity, 99))
    return out
