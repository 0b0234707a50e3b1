"""
Registry Seeds
---------------
Idempotent upserts for the rule evaluator registry and the base intent
pattern library. Re-running a seed only touches rows whose values drifted.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from db.models import IntentPattern, RuleEvaluator
from scoring.rules import RULE_REGISTRY

logger = logging.getLogger(__name__)


@dataclass
class SeedReport:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.unchanged

    def to_dict(self) -> Dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated, "unchanged": self.unchanged}


# ─── Rule Evaluators ─────────────────────────────────────────────────────────

# rule_id -> (family, severity, threshold_low, threshold_high, kpi_ids, formula_id, help_text, tags)
RULE_METADATA: Dict[str, tuple] = {
    "title_character_usage": (
        "ranking", "strong", 0.7, 1.0, ["title_char_usage"], "title_element_score",
        "Titles using 70-100% of 30 characters index the most keywords.", ["title", "length"],
    ),
    "title_unique_keywords": (
        "ranking", "critical", 2, 5, ["title_high_value_keyword_count"], "title_element_score",
        "Each unique relevant keyword in the title is a ranking signal.", ["title", "keywords"],
    ),
    "title_combo_coverage": (
        "ranking", "strong", 1, 4, ["title_combo_count_generic"], "title_element_score",
        "Adjacent keywords form combos that match multi-word searches.", ["title", "combos"],
    ),
    "title_filler_penalty": (
        "diagnostic", "moderate", 0.2, 0.5, ["title_noise_ratio"], "title_element_score",
        "Stopwords and filler spend characters without ranking value.", ["title", "noise"],
    ),
    "subtitle_character_usage": (
        "ranking", "moderate", 0.7, 1.0, ["subtitle_char_usage"], "subtitle_element_score",
        "Subtitles using 70-100% of 30 characters index the most keywords.", ["subtitle", "length"],
    ),
    "subtitle_incremental_value": (
        "ranking", "critical", 1, 3, ["subtitle_high_value_incremental_keywords"], "subtitle_element_score",
        "Keywords already in the title add nothing when repeated in the subtitle.", ["subtitle", "keywords"],
    ),
    "subtitle_combo_coverage": (
        "coverage", "strong", 1, 4, ["subtitle_combo_incremental_generic"], "subtitle_element_score",
        "Title + subtitle together unlock cross-element combos.", ["subtitle", "combos"],
    ),
    "subtitle_complementarity": (
        "diagnostic", "moderate", 0.2, 0.5, ["redundancy_penalty"], "subtitle_element_score",
        "Low overlap with the title widens the indexed keyword set.", ["subtitle", "overlap"],
    ),
    "description_hook_strength": (
        "conversion", "strong", None, None, ["hook_strength_title"], "description_conversion_score",
        "The first lines of the description decide whether users keep reading.", ["description", "hook"],
    ),
    "description_feature_mentions": (
        "conversion", "moderate", 3, 10, ["benefit_density"], "description_conversion_score",
        "Bullet features and benefits help users scan the description.", ["description", "features"],
    ),
    "description_cta_strength": (
        "conversion", "moderate", 1, 3, ["action_verb_density"], "description_conversion_score",
        "Explicit calls to action lift conversion.", ["description", "cta"],
    ),
    "description_readability": (
        "conversion", "optional", 50, 70, [], "description_conversion_score",
        "Flesch reading ease between 50 and 70 reads well on mobile.", ["description", "readability"],
    ),
}


def rule_seed_rows() -> List[Dict[str, Any]]:
    rows = []
    for element, config in RULE_REGISTRY.items():
        for rule in config.rules:
            family, severity, low, high, kpi_ids, formula_id, help_text, tags = RULE_METADATA[rule.rule_id]
            rows.append({
                "rule_id": rule.rule_id,
                "name": rule.name,
                "description": rule.description,
                "scope": element,
                "family": family,
                "weight_default": rule.weight,
                "severity_default": severity,
                "threshold_low": low,
                "threshold_high": high,
                "kpi_ids": kpi_ids,
                "formula_id": formula_id,
                "help_text": help_text,
                "tags": tags,
            })
    return rows


# ─── Intent Patterns ─────────────────────────────────────────────────────────

# (intent_type, pattern, weight, priority, word_boundary, example)
BASE_INTENT_PATTERNS = [
    ("informational", "learn", 1.2, 100, True, "learn spanish"),
    ("informational", "how to", 1.3, 110, False, "how to cook"),
    ("informational", "guide", 1.1, 90, True, "workout guide"),
    ("informational", "tutorial", 1.1, 90, True, "guitar tutorial"),
    ("informational", "tips", 1.0, 80, True, "fitness tips"),
    ("informational", "tricks", 1.0, 80, True, "cooking tricks"),
    ("informational", "master", 1.1, 85, True, "master chess"),
    ("informational", "understand", 1.0, 75, True, "understand math"),
    ("informational", "discover", 1.0, 75, True, "discover recipes"),
    ("informational", "study", 1.1, 85, True, "study biology"),
    ("commercial", "best", 1.5, 120, True, "best fitness app"),
    ("commercial", "top", 1.4, 115, True, "top 10 apps"),
    ("commercial", "compare", 1.3, 110, True, "compare prices"),
    ("commercial", "vs", 1.2, 100, True, "app a vs app b"),
    ("commercial", "versus", 1.2, 100, True, "android versus ios"),
    ("commercial", "review", 1.3, 105, True, "app review"),
    ("commercial", "rating", 1.2, 95, True, "5-star rating"),
    ("commercial", "recommended", 1.4, 110, True, "highly recommended"),
    ("commercial", "popular", 1.3, 100, True, "most popular"),
    ("commercial", "leading", 1.2, 95, True, "leading solution"),
    ("transactional", "download", 2.0, 150, True, "download now"),
    ("transactional", "install", 1.9, 145, True, "install app"),
    ("transactional", "get", 1.5, 130, True, "get started"),
    ("transactional", "grab", 1.4, 125, True, "grab it"),
    ("transactional", "obtain", 1.3, 120, True, "obtain access"),
    ("transactional", "acquire", 1.3, 120, True, "acquire license"),
    ("transactional", "setup", 1.2, 115, True, "quick setup"),
    ("transactional", "activate", 1.3, 120, True, "activate account"),
    ("transactional", "launch", 1.2, 115, True, "launch app"),
    ("transactional", "start", 1.3, 120, True, "start free"),
    ("navigational", "official", 1.2, 60, True, "official app"),
    ("navigational", "app", 1.0, 50, True, "instagram app"),
    ("navigational", "original", 1.1, 55, True, "original version"),
    ("navigational", "real", 1.0, 50, True, "real deal"),
    ("navigational", "licensed", 1.1, 55, True, "licensed software"),
    ("navigational", "authorized", 1.2, 60, True, "authorized dealer"),
    ("navigational", "branded", 1.0, 50, True, "branded merchandise"),
    ("navigational", "by", 0.9, 45, True, "app by company"),
    ("navigational", "from", 0.9, 45, True, "from developer"),
    ("navigational", "made by", 1.0, 50, False, "made by team"),
]


def intent_seed_rows() -> List[Dict[str, Any]]:
    return [
        {
            "intent_type": intent_type,
            "pattern": pattern,
            "weight": weight,
            "priority": priority,
            "is_regex": False,
            "case_sensitive": False,
            "word_boundary": word_boundary,
            "example": example,
        }
        for intent_type, pattern, weight, priority, word_boundary, example in BASE_INTENT_PATTERNS
    ]


# ─── Upserts ─────────────────────────────────────────────────────────────────


def _apply(row, values: Dict[str, Any]) -> bool:
    changed = False
    for key, value in values.items():
        if getattr(row, key) != value:
            setattr(row, key, value)
            changed = True
    return changed


def seed_rule_evaluators(session: Session) -> SeedReport:
    report = SeedReport()
    existing = {r.rule_id: r for r in session.query(RuleEvaluator).all()}
    for values in rule_seed_rows():
        row = existing.get(values["rule_id"])
        if row is None:
            session.add(RuleEvaluator(**values))
            report.inserted += 1
        elif _apply(row, values):
            report.updated += 1
        else:
            report.unchanged += 1
    session.commit()
    logger.info(f"Seeded rule evaluators: {report.to_dict()}")
    return report


def seed_intent_patterns(session: Session) -> SeedReport:
    report = SeedReport()
    existing = {
        r.pattern: r
        for r in session.query(IntentPattern).filter(IntentPattern.scope == "base").all()
    }
    for values in intent_seed_rows():
        row = existing.get(values["pattern"])
        if row is None:
            session.add(IntentPattern(scope="base", is_active=True, **values))
            report.inserted += 1
        elif _apply(row, values):
            report.updated += 1
        else:
            report.unchanged += 1
    session.commit()
    logger.info(f"Seeded intent patterns: {report.to_dict()}")
    return report


def seed_all(session: Session) -> Dict[str, SeedReport]:
    return {
        "rules": seed_rule_evaluators(session),
        "intents": seed_intent_patterns(session),
    }
