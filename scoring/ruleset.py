"""
Ruleset Normalizer & Merger
----------------------------
Turns raw override rows into engine-ready layers and merges them with
scope precedence:

  base -> vertical -> market -> client   (last layer wins)

Stopwords are the one exception: they merge as a union across layers.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from config.settings import settings

logger = logging.getLogger(__name__)

SCOPES = ("base", "vertical", "market", "client")


def clamp_multiplier(
    value: Optional[float],
    low: float = settings.MIN_WEIGHT_MULTIPLIER,
    high: float = settings.MAX_WEIGHT_MULTIPLIER,
) -> float:
    if value is None:
        return 1.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 1.0
    if value != value:  # NaN
        return 1.0
    return min(high, max(low, value))


def clamp_relevance(value: Any) -> int:
    return max(0, min(3, int(value)))


def _get(row: Any, name: str, default: Any = None) -> Any:
    """Read a field from either an ORM row or a plain dict."""
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class NormalizedRuleSet:
    """One scope layer, ready to merge."""
    scope: str = "base"
    source: str = "code"                       # code | database
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    token_overrides: Dict[str, int] = field(default_factory=dict)
    hook_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    stopwords: List[str] = field(default_factory=list)
    kpi_weight_overrides: Dict[str, float] = field(default_factory=dict)
    formula_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recommendation_templates: Dict[str, str] = field(default_factory=dict)
    rule_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    intent_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any([
            self.token_overrides, self.hook_overrides, self.stopwords,
            self.kpi_weight_overrides, self.formula_overrides,
            self.recommendation_templates, self.rule_overrides, self.intent_overrides,
        ])


@dataclass
class MergedRuleSet:
    """Effective ruleset for one (vertical, market, organization, app) context."""
    vertical_id: Optional[str] = None
    market_id: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None
    token_relevance_overrides: Dict[str, int] = field(default_factory=dict)
    hook_overrides: Dict[str, float] = field(default_factory=dict)
    hook_keywords: Dict[str, List[str]] = field(default_factory=dict)
    stopwords: List[str] = field(default_factory=list)
    kpi_overrides: Dict[str, Dict[str, float]] = field(default_factory=dict)
    formula_overrides: Dict[str, float] = field(default_factory=dict)
    recommendation_overrides: Dict[str, Dict[str, str]] = field(default_factory=dict)
    rule_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    intent_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    source: str = "code"
    leak_warnings: List[Any] = field(default_factory=list)

    def all_stopwords(self) -> List[str]:
        return list(self.stopwords)

    def has_active_overrides(self) -> bool:
        return bool(
            self.token_relevance_overrides or self.hook_overrides or self.stopwords
            or self.kpi_overrides or self.formula_overrides
            or self.recommendation_overrides or self.rule_overrides
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vertical_id": self.vertical_id,
            "market_id": self.market_id,
            "organization_id": self.organization_id,
            "app_id": self.app_id,
            "source": self.source,
            "token_relevance_overrides": self.token_relevance_overrides,
            "hook_overrides": self.hook_overrides,
            "hook_keywords": self.hook_keywords,
            "stopwords": self.stopwords,
            "kpi_overrides": self.kpi_overrides,
            "formula_overrides": self.formula_overrides,
            "recommendation_overrides": self.recommendation_overrides,
            "rule_overrides": self.rule_overrides,
            "intent_overrides": self.intent_overrides,
            "leak_warnings": [
                w.to_dict() if hasattr(w, "to_dict") else w for w in self.leak_warnings
            ],
        }


# ─── Normalization ───────────────────────────────────────────────────────────


def normalize_layer(
    rows_by_kind: Dict[str, Iterable[Any]],
    scope: str = "base",
    vertical: Optional[str] = None,
    market: Optional[str] = None,
    organization_id: Optional[str] = None,
    source: str = "database",
) -> NormalizedRuleSet:
    """
    Build one layer from override rows keyed by kind:
    token_relevance | hook | stopword | kpi_weight | formula | recommendation | rule | intent
    Inactive rows are dropped; values are clamped to their legal ranges.
    """
    if scope not in SCOPES:
        raise ValueError(f"Unknown ruleset scope '{scope}'")

    layer = NormalizedRuleSet(
        scope=scope, source=source, vertical=vertical,
        market=market, organization_id=organization_id,
    )

    def active(rows):
        return [r for r in (rows or []) if _get(r, "is_active", True)]

    for row in active(rows_by_kind.get("token_relevance")):
        token = (_get(row, "token") or "").strip().lower()
        if token:
            layer.token_overrides[token] = clamp_relevance(_get(row, "relevance", 1))

    for row in active(rows_by_kind.get("hook")):
        category = _get(row, "hook_category")
        if category:
            layer.hook_overrides[category] = {
                "weight": clamp_multiplier(_get(row, "weight_multiplier")),
                "keywords": [k.strip().lower() for k in (_get(row, "keywords") or []) if k.strip()],
            }

    stopwords = set()
    for row in active(rows_by_kind.get("stopword")):
        for word in _get(row, "stopwords") or []:
            if word and word.strip():
                stopwords.add(word.strip().lower())
    layer.stopwords = sorted(stopwords)

    for row in active(rows_by_kind.get("kpi_weight")):
        kpi_id = _get(row, "kpi_id")
        if kpi_id:
            layer.kpi_weight_overrides[kpi_id] = clamp_multiplier(_get(row, "weight_multiplier"))

    for row in active(rows_by_kind.get("formula")):
        formula_id = _get(row, "formula_id")
        payload = _get(row, "payload") or {}
        if formula_id:
            layer.formula_overrides[formula_id] = {
                "multiplier": payload.get("multiplier"),
                "component_weights": payload.get("component_weights") or {},
            }

    for row in active(rows_by_kind.get("recommendation")):
        rec_id = _get(row, "recommendation_id")
        message = _get(row, "message")
        if rec_id and message:
            layer.recommendation_templates[rec_id] = message

    for row in active(rows_by_kind.get("rule")):
        rule_id = _get(row, "rule_id")
        if rule_id:
            layer.rule_overrides[rule_id] = {
                "weight_multiplier": clamp_multiplier(_get(row, "weight_multiplier")),
                "severity": _get(row, "severity_override"),
                "threshold_low": _get(row, "threshold_low_override"),
                "threshold_high": _get(row, "threshold_high_override"),
            }

    for row in active(rows_by_kind.get("intent")):
        pattern = _get(row, "pattern")
        if pattern:
            layer.intent_overrides[pattern] = {
                "intent_type": _get(row, "intent_type"),
                "weight": _get(row, "weight", 1.0),
            }

    return layer


# ─── Merge ───────────────────────────────────────────────────────────────────


def merge_rulesets(
    base: NormalizedRuleSet,
    vertical: Optional[NormalizedRuleSet] = None,
    market: Optional[NormalizedRuleSet] = None,
    client: Optional[NormalizedRuleSet] = None,
    app_id: Optional[str] = None,
) -> MergedRuleSet:
    layers = [layer for layer in (base, vertical, market, client) if layer is not None]
    db_layers = [l for l in layers if l.source == "database"]

    if not db_layers:
        source = "code"
    elif len(db_layers) == len(layers):
        source = "database"
    else:
        source = "hybrid"

    merged = MergedRuleSet(
        vertical_id=(vertical.vertical if vertical else None) or base.vertical,
        market_id=(market.market if market else None) or base.market,
        organization_id=client.organization_id if client else None,
        app_id=app_id,
        source=source,
    )

    stopwords = set()
    for layer in layers:
        merged.token_relevance_overrides.update(layer.token_overrides)

        for category, override in layer.hook_overrides.items():
            merged.hook_overrides[category] = override["weight"]
            if override.get("keywords"):
                merged.hook_keywords[category] = list(override["keywords"])

        stopwords.update(layer.stopwords)

        for kpi_id, multiplier in layer.kpi_weight_overrides.items():
            merged.kpi_overrides[kpi_id] = {"weight": multiplier}

        for formula_id, override in layer.formula_overrides.items():
            multiplier = clamp_multiplier(override.get("multiplier"))
            if multiplier != 1:
                merged.formula_overrides[formula_id] = multiplier
            for component_id, weight in (override.get("component_weights") or {}).items():
                merged.formula_overrides[f"{formula_id}.{component_id}"] = clamp_multiplier(weight)

        for rec_id, message in layer.recommendation_templates.items():
            merged.recommendation_overrides[rec_id] = {"message": message}

        merged.rule_overrides.update({k: dict(v) for k, v in layer.rule_overrides.items()})
        merged.intent_overrides.update({k: dict(v) for k, v in layer.intent_overrides.items()})

    merged.stopwords = sorted(stopwords)

    logger.debug(
        f"Merged ruleset source={merged.source} vertical={merged.vertical_id} "
        f"market={merged.market_id} tokens={len(merged.token_relevance_overrides)} "
        f"formulas={len(merged.formula_overrides)} stopwords={len(merged.stopwords)}"
    )
    return merged


def code_ruleset(vertical: Optional[str] = None, market: Optional[str] = None) -> MergedRuleSet:
    """Ruleset with no database overrides at all."""
    return merge_rulesets(NormalizedRuleSet(scope="base", source="code", vertical=vertical, market=market))
