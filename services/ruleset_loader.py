"""
Ruleset Loader
---------------
Reads active override rows per scope, normalizes each layer and merges
them into the effective ruleset for one (vertical, market, org, app)
context. Results live in a process-local TTL cache.
"""

import time
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from db.models import (
    IntentPattern,
    OVERRIDE_MODELS,
    RuleEvaluatorOverride,
)
from scoring.intent import FALLBACK_PATTERNS, IntentPatternCache, IntentPatternConfig, pattern_from_row
from scoring.leaks import detect_vertical_leak, detect_vertical_mismatch
from scoring.ruleset import (
    MergedRuleSet,
    NormalizedRuleSet,
    clamp_multiplier,
    code_ruleset,
    merge_rulesets,
    normalize_layer,
)

logger = logging.getLogger(__name__)

_intent_cache = IntentPatternCache()


def cache_key(*parts: Optional[str]) -> str:
    return ":".join(p or "" for p in parts)


def _scope_filter(model, scope: str, vertical=None, market=None, organization_id=None):
    filters = [model.scope == scope, model.is_active.is_(True)]
    if scope == "vertical":
        filters.append(model.vertical == vertical)
    elif scope == "market":
        filters.append(model.market == market)
    elif scope == "client":
        filters.append(model.organization_id == organization_id)
    return filters


class RulesetLoader:
    """
    Usage:
        loader = RulesetLoader(SessionLocal)
        ruleset = loader.load(vertical="finance", market="us")
    """

    def __init__(self, session_factory: Callable[[], Session], ttl_seconds: float = settings.RULESET_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[float, MergedRuleSet]] = {}
        self._lock = threading.Lock()

    def load(
        self,
        vertical: Optional[str] = None,
        market: Optional[str] = None,
        organization_id: Optional[str] = None,
        app_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> MergedRuleSet:
        key = cache_key(vertical, market, organization_id, app_id)
        with self._lock:
            entry = self._cache.get(key)
        if entry and self._clock() - entry[0] <= self.ttl_seconds:
            return self._with_leak_warnings(entry[1], category, key)

        try:
            session = self.session_factory()
            try:
                ruleset = self._build(session, vertical, market, organization_id, app_id)
            finally:
                session.close()
        except SQLAlchemyError as e:
            logger.error(f"Ruleset load failed for '{key}', using code defaults: {e}")
            ruleset = code_ruleset(vertical, market)
            ruleset.organization_id = organization_id
            ruleset.app_id = app_id

        with self._lock:
            self._cache[key] = (self._clock(), ruleset)
        return self._with_leak_warnings(ruleset, category, key)

    @staticmethod
    def _with_leak_warnings(ruleset: MergedRuleSet, category: Optional[str], key: str) -> MergedRuleSet:
        # cached rulesets are shared across categories; warnings go on a copy
        if not category:
            return ruleset
        warnings = detect_vertical_leak(ruleset, category)
        mismatch = detect_vertical_mismatch(ruleset, category)
        if mismatch:
            warnings.append(mismatch)
        if warnings:
            logger.warning(f"{len(warnings)} leak warning(s) for ruleset '{key}' in category '{category}'")
        return replace(ruleset, leak_warnings=warnings)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()
        _intent_cache.clear()
        logger.info("Ruleset caches invalidated")

    def _build(self, session, vertical, market, organization_id, app_id) -> MergedRuleSet:
        base = self._layer(session, "base")
        if base.is_empty():
            base = NormalizedRuleSet(scope="base", source="code")
        base.vertical, base.market = vertical, market

        vertical_layer = self._layer(session, "vertical", vertical=vertical) if vertical else None
        market_layer = self._layer(session, "market", market=market) if market else None
        client_layer = (
            self._layer(session, "client", organization_id=organization_id) if organization_id else None
        )
        if vertical_layer is not None:
            intents = self._intent_rows(session, "vertical", vertical=vertical)
            vertical_layer.intent_overrides.update(
                normalize_layer({"intent": intents}, scope="vertical").intent_overrides
            )

        layers = [l if l is not None and not l.is_empty() else None for l in (vertical_layer, market_layer, client_layer)]
        merged = merge_rulesets(base, *layers, app_id=app_id)
        merged.vertical_id = vertical
        merged.market_id = market
        merged.organization_id = organization_id
        return merged

    def _layer(self, session, scope, vertical=None, market=None, organization_id=None) -> NormalizedRuleSet:
        rows: Dict[str, List[Any]] = {}
        for kind, model in OVERRIDE_MODELS.items():
            rows[kind] = session.query(model).filter(
                *_scope_filter(model, scope, vertical, market, organization_id)
            ).all()
        rows["rule"] = session.query(RuleEvaluatorOverride).filter(
            *_scope_filter(RuleEvaluatorOverride, scope, vertical, market, organization_id)
        ).all()
        return normalize_layer(
            rows, scope=scope, vertical=vertical, market=market,
            organization_id=organization_id, source="database",
        )

    @staticmethod
    def _intent_rows(session, scope, vertical=None):
        return session.query(IntentPattern).filter(
            IntentPattern.scope == scope,
            IntentPattern.vertical == vertical,
            IntentPattern.is_active.is_(True),
        ).all()


# ─── Intent Patterns ─────────────────────────────────────────────────────────


def _scope_matches(row, vertical, market, organization_id, app_id) -> bool:
    return {
        "base": True,
        "vertical": row.vertical == vertical and vertical is not None,
        "market": row.market == market and market is not None,
        "client": row.organization_id == organization_id and organization_id is not None,
        "app": row.app_id == app_id and app_id is not None,
    }.get(row.scope, False)


def load_intent_patterns(
    session: Session,
    vertical: Optional[str] = None,
    market: Optional[str] = None,
    organization_id: Optional[str] = None,
    app_id: Optional[str] = None,
    use_cache: bool = True,
) -> Tuple[List[IntentPatternConfig], bool]:
    """
    Active patterns visible to the context, with per-scope overrides applied.
    Returns (patterns, fallback_mode).
    """
    key = cache_key(vertical, market, organization_id, app_id)
    if use_cache:
        cached = _intent_cache.get(key)
        if cached is not None:
            return cached

    try:
        rows = session.query(IntentPattern).filter(IntentPattern.is_active.is_(True)).all()
        patterns = []
        for row in rows:
            if not _scope_matches(row, vertical, market, organization_id, app_id):
                continue
            config = pattern_from_row(row)
            active = True
            for override in row.overrides:
                if not _scope_matches(override, vertical, market, organization_id, app_id):
                    continue
                if not override.is_active:
                    active = False
                    break
                config.weight *= clamp_multiplier(override.weight_multiplier)
                if override.priority_override is not None:
                    config.priority = override.priority_override
            if active:
                patterns.append(config)
    except SQLAlchemyError as e:
        logger.error(f"Intent pattern load failed, using fallback patterns: {e}")
        patterns = []

    fallback = not patterns
    if fallback:
        patterns = list(FALLBACK_PATTERNS)
        logger.info("Intent registry empty for context, using fallback patterns")

    _intent_cache.set(key, patterns, fallback)
    return patterns, fallback


def clear_intent_cache() -> None:
    _intent_cache.clear()
