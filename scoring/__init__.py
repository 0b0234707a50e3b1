"""
Metadata scoring engine: rules, formulas, KPIs, intent, hooks and rulesets.
"""

from .audit import MetadataAuditEngine, AuditResult, ElementScore
from .kpi import KpiEngine, KpiEngineResult
from .intent import (
    IntentPatternConfig, IntentPatternCache, FALLBACK_PATTERNS,
    classify_combo_intent, compute_combined_search_intent_coverage,
)
from .ruleset import NormalizedRuleSet, MergedRuleSet, normalize_layer, merge_rulesets, code_ruleset
from .leaks import LeakWarning, detect_vertical_leak, detect_vertical_mismatch

__all__ = [
    "MetadataAuditEngine", "AuditResult", "ElementScore",
    "KpiEngine", "KpiEngineResult",
    "IntentPatternConfig", "IntentPatternCache", "FALLBACK_PATTERNS",
    "classify_combo_intent", "compute_combined_search_intent_coverage",
    "NormalizedRuleSet", "MergedRuleSet", "normalize_layer", "merge_rulesets", "code_ruleset",
    "LeakWarning", "detect_vertical_leak", "detect_vertical_mismatch",
]
