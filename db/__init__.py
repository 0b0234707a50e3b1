from .database import init_db, get_db, get_db_dependency, engine, SessionLocal
from .models import (
    Base, RuleEvaluator, RuleEvaluatorOverride,
    TokenRelevanceOverride, HookPatternOverride, StopwordOverride,
    KpiWeightOverride, FormulaOverride, RecommendationTemplateOverride,
    IntentPattern, IntentPatternOverride,
    MonitoredApp, AuditSnapshot, CompetitorApp, MetadataDraft,
    OVERRIDE_MODELS,
)

__all__ = [
    "init_db", "get_db", "get_db_dependency", "engine", "SessionLocal",
    "Base", "RuleEvaluator", "RuleEvaluatorOverride",
    "TokenRelevanceOverride", "HookPatternOverride", "StopwordOverride",
    "KpiWeightOverride", "FormulaOverride", "RecommendationTemplateOverride",
    "IntentPattern", "IntentPatternOverride",
    "MonitoredApp", "AuditSnapshot", "CompetitorApp", "MetadataDraft",
    "OVERRIDE_MODELS",
]
