"""
Admin Registry Service
-----------------------
CRUD over the rule evaluator registry, scope-based override tables and
the intent pattern registry. Every mutation invalidates ruleset caches.

Scope keys: exactly the key(s) a scope requires must be set.
  base -> none    vertical -> vertical    market -> market
  client -> organization_id               app -> app_id (intent only)
"""

import re
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config.settings import settings
from db.models import (
    IntentPattern,
    OVERRIDE_MODELS,
    RuleEvaluator,
    RuleEvaluatorOverride,
)
from scoring.intent import INTENT_TYPES
from scoring.rules import RULE_REGISTRY

logger = logging.getLogger(__name__)

SCOPE_KEYS = {
    "base": (),
    "vertical": ("vertical",),
    "market": ("market",),
    "client": ("organization_id",),
    "app": ("app_id",),
}
RULE_SCOPES = ("title", "subtitle", "description", "coverage", "intent", "global")
RULE_FAMILIES = ("ranking", "conversion", "diagnostic", "coverage")
SEVERITIES = ("critical", "strong", "moderate", "optional", "info")

RULE_EDITABLE_FIELDS = (
    "name", "description", "weight_default", "severity_default", "threshold_low",
    "threshold_high", "kpi_ids", "formula_id", "help_text", "tags", "is_active", "is_deprecated",
)

OVERRIDE_FIELDS = {
    "token_relevance": ("token", "relevance"),
    "hook": ("hook_category", "weight_multiplier", "keywords"),
    "stopword": ("stopwords",),
    "kpi_weight": ("kpi_id", "weight_multiplier"),
    "formula": ("formula_id", "payload"),
    "recommendation": ("recommendation_id", "message"),
}
OVERRIDE_REQUIRED = {
    "token_relevance": ("token", "relevance"),
    "hook": ("hook_category",),
    "stopword": ("stopwords",),
    "kpi_weight": ("kpi_id",),
    "formula": ("formula_id",),
    "recommendation": ("recommendation_id", "message"),
}
SCOPE_FIELDS = ("scope", "vertical", "market", "organization_id")
INTENT_FIELDS = (
    "pattern", "intent_type", "example", "description", "scope", "vertical", "market",
    "organization_id", "app_id", "weight", "priority", "is_regex", "case_sensitive",
    "word_boundary", "is_active",
)


# ─── Errors ──────────────────────────────────────────────────────────────────


class RegistryError(Exception):
    pass


class RegistryValidationError(RegistryError):
    pass


class RegistryNotFoundError(RegistryError):
    pass


class RegistryConflictError(RegistryError):
    pass


# ─── Validation ──────────────────────────────────────────────────────────────


def validate_scope_keys(payload: Dict[str, Any], allow_app: bool = False) -> None:
    scope = payload.get("scope") or "base"
    if scope not in SCOPE_KEYS or (scope == "app" and not allow_app):
        raise RegistryValidationError(f"Invalid scope '{scope}'")

    required = SCOPE_KEYS[scope]
    keys = ("vertical", "market", "organization_id") + (("app_id",) if allow_app else ())
    for key in keys:
        is_set = bool(payload.get(key))
        if key in required and not is_set:
            raise RegistryValidationError(f"Scope '{scope}' requires '{key}'")
        if key not in required and is_set:
            raise RegistryValidationError(f"Scope '{scope}' must not set '{key}'")


def validate_multiplier(value: Any, name: str = "weight_multiplier") -> None:
    if value is None:
        return
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise RegistryValidationError(f"'{name}' must be a number")
    if not settings.MIN_WEIGHT_MULTIPLIER <= value <= settings.MAX_WEIGHT_MULTIPLIER:
        raise RegistryValidationError(
            f"'{name}' must be between {settings.MIN_WEIGHT_MULTIPLIER} and {settings.MAX_WEIGHT_MULTIPLIER}"
        )


def _validate_override_payload(kind: str, payload: Dict[str, Any]) -> None:
    if kind == "token_relevance" and "relevance" in payload:
        relevance = payload["relevance"]
        if not isinstance(relevance, int) or not 0 <= relevance <= 3:
            raise RegistryValidationError("'relevance' must be an integer between 0 and 3")
    if kind in ("hook", "kpi_weight"):
        validate_multiplier(payload.get("weight_multiplier"))
    if kind == "stopword" and "stopwords" in payload:
        if not isinstance(payload["stopwords"], list):
            raise RegistryValidationError("'stopwords' must be a list")
    if kind == "formula" and "payload" in payload:
        body = payload["payload"] or {}
        if not isinstance(body, dict):
            raise RegistryValidationError("'payload' must be an object")
        validate_multiplier(body.get("multiplier"), "multiplier")
        for component, weight in (body.get("component_weights") or {}).items():
            validate_multiplier(weight, f"component_weights.{component}")


def _validate_intent_payload(payload: Dict[str, Any]) -> None:
    if "intent_type" in payload and payload["intent_type"] not in INTENT_TYPES:
        raise RegistryValidationError(f"Invalid intent_type '{payload['intent_type']}'")
    if "weight" in payload and payload["weight"] is not None:
        weight = float(payload["weight"])
        if not 0.1 <= weight <= 3.0:
            raise RegistryValidationError("'weight' must be between 0.1 and 3.0")
    if "priority" in payload and payload["priority"] is not None:
        if not 0 <= int(payload["priority"]) <= 200:
            raise RegistryValidationError("'priority' must be between 0 and 200")
    if payload.get("is_regex") and payload.get("pattern"):
        try:
            re.compile(payload["pattern"])
        except re.error as e:
            raise RegistryValidationError(f"Invalid regex pattern: {e}")


def _pick(payload: Dict[str, Any], fields) -> Dict[str, Any]:
    return {k: payload[k] for k in fields if k in payload}


def serialize_row(row) -> Dict[str, Any]:
    out = {}
    for column in row.__table__.columns:
        value = getattr(row, column.name)
        out[column.name] = value.isoformat() if isinstance(value, datetime) else value
    return out


# ─── Service ─────────────────────────────────────────────────────────────────


class RegistryService:
    """
    Usage:
        service = RegistryService(session, on_change=loader.invalidate)
        service.create_override("token_relevance", {"token": "budget", "relevance": 3})
    """

    def __init__(self, session: Session, on_change: Optional[Callable[[], None]] = None):
        self.session = session
        self.on_change = on_change

    def _commit(self):
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise RegistryConflictError(f"Conflicting registry entry: {e.orig}")
        if self.on_change:
            self.on_change()

    # ── rule evaluators ──

    def list_rule_evaluators(self, scope: Optional[str] = None, family: Optional[str] = None,
                             include_inactive: bool = False) -> List[RuleEvaluator]:
        query = self.session.query(RuleEvaluator)
        if scope:
            query = query.filter(RuleEvaluator.scope == scope)
        if family:
            query = query.filter(RuleEvaluator.family == family)
        if not include_inactive:
            query = query.filter(RuleEvaluator.is_active.is_(True))
        return query.order_by(RuleEvaluator.scope, RuleEvaluator.rule_id).all()

    def get_rule_evaluator(self, rule_id: str) -> RuleEvaluator:
        row = self.session.query(RuleEvaluator).filter(RuleEvaluator.rule_id == rule_id).first()
        if row is None:
            raise RegistryNotFoundError(f"Rule evaluator '{rule_id}' not found")
        return row

    def update_rule_evaluator(self, rule_id: str, payload: Dict[str, Any]) -> RuleEvaluator:
        row = self.get_rule_evaluator(rule_id)
        updates = _pick(payload, RULE_EDITABLE_FIELDS)
        unknown = set(payload) - set(RULE_EDITABLE_FIELDS)
        if unknown:
            raise RegistryValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        if "severity_default" in updates and updates["severity_default"] not in SEVERITIES:
            raise RegistryValidationError(f"Invalid severity '{updates['severity_default']}'")
        if "weight_default" in updates and not 0 <= float(updates["weight_default"]) <= 1:
            raise RegistryValidationError("'weight_default' must be between 0 and 1")
        low = updates.get("threshold_low", row.threshold_low)
        high = updates.get("threshold_high", row.threshold_high)
        if low is not None and high is not None and low > high:
            raise RegistryValidationError("'threshold_low' must not exceed 'threshold_high'")

        for key, value in updates.items():
            setattr(row, key, value)
        self._commit()
        logger.info(f"Updated rule evaluator '{rule_id}': {sorted(updates)}")
        return row

    def effective_rule_evaluators(self, vertical: Optional[str] = None, market: Optional[str] = None,
                                  organization_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Registry rows with the most specific active override applied."""
        overrides = self.session.query(RuleEvaluatorOverride).filter(
            RuleEvaluatorOverride.is_active.is_(True)
        ).all()
        applicable = {}
        for scope, key, value in (("base", None, None), ("vertical", "vertical", vertical),
                                  ("market", "market", market), ("client", "organization_id", organization_id)):
            for override in overrides:
                if override.scope != scope:
                    continue
                if key and (value is None or getattr(override, key) != value):
                    continue
                applicable[override.rule_id] = override

        out = []
        for row in self.list_rule_evaluators(include_inactive=True):
            override = applicable.get(row.rule_id)
            multiplier = override.weight_multiplier if override and override.weight_multiplier else 1.0
            entry = serialize_row(row)
            entry.update({
                "weight_multiplier": multiplier,
                "effective_weight": round(row.weight_default * multiplier, 4),
                "effective_severity": (override.severity_override if override else None) or row.severity_default,
                "effective_threshold_low": (
                    override.threshold_low_override if override and override.threshold_low_override is not None
                    else row.threshold_low
                ),
                "effective_threshold_high": (
                    override.threshold_high_override if override and override.threshold_high_override is not None
                    else row.threshold_high
                ),
                "override_scope": override.scope if override else None,
            })
            out.append(entry)
        return out

    def engine_rule_overrides(self, vertical=None, market=None, organization_id=None) -> Dict[str, Dict[str, Any]]:
        """Effective registry state in the shape MetadataAuditEngine expects."""
        return {
            e["rule_id"]: {
                "weight": e["weight_default"],
                "weight_multiplier": e["weight_multiplier"],
                "is_active": e["is_active"],
                "is_deprecated": e["is_deprecated"],
            }
            for e in self.effective_rule_evaluators(vertical, market, organization_id)
        }

    # ── rule evaluator overrides ──

    def list_rule_overrides(self, rule_id: Optional[str] = None, scope: Optional[str] = None,
                            include_inactive: bool = False) -> List[RuleEvaluatorOverride]:
        query = self.session.query(RuleEvaluatorOverride)
        if rule_id:
            query = query.filter(RuleEvaluatorOverride.rule_id == rule_id)
        if scope:
            query = query.filter(RuleEvaluatorOverride.scope == scope)
        if not include_inactive:
            query = query.filter(RuleEvaluatorOverride.is_active.is_(True))
        return query.order_by(RuleEvaluatorOverride.id).all()

    def create_rule_override(self, payload: Dict[str, Any]) -> RuleEvaluatorOverride:
        if not payload.get("rule_id"):
            raise RegistryValidationError("'rule_id' is required")
        self.get_rule_evaluator(payload["rule_id"])
        validate_scope_keys(payload)
        validate_multiplier(payload.get("weight_multiplier"))
        if payload.get("severity_override") and payload["severity_override"] not in SEVERITIES:
            raise RegistryValidationError(f"Invalid severity '{payload['severity_override']}'")

        row = RuleEvaluatorOverride(**_pick(payload, SCOPE_FIELDS + (
            "rule_id", "weight_multiplier", "severity_override", "threshold_low_override",
            "threshold_high_override", "notes", "is_active",
        )))
        self.session.add(row)
        self._commit()
        logger.info(f"Created rule override #{row.id} for '{row.rule_id}' ({row.scope})")
        return row

    def update_rule_override(self, override_id: int, payload: Dict[str, Any]) -> RuleEvaluatorOverride:
        row = self.session.get(RuleEvaluatorOverride, override_id)
        if row is None:
            raise RegistryNotFoundError(f"Rule override {override_id} not found")
        merged = {k: getattr(row, k) for k in SCOPE_FIELDS}
        merged.update(_pick(payload, SCOPE_FIELDS))
        validate_scope_keys(merged)
        validate_multiplier(payload.get("weight_multiplier"))

        for key, value in _pick(payload, SCOPE_FIELDS + (
            "weight_multiplier", "severity_override", "threshold_low_override",
            "threshold_high_override", "notes", "is_active",
        )).items():
            setattr(row, key, value)
        row.version = (row.version or 1) + 1
        self._commit()
        return row

    def delete_rule_override(self, override_id: int) -> None:
        row = self.session.get(RuleEvaluatorOverride, override_id)
        if row is None:
            raise RegistryNotFoundError(f"Rule override {override_id} not found")
        self.session.delete(row)
        self._commit()

    # ── generic overrides ──

    @staticmethod
    def _model(kind: str):
        model = OVERRIDE_MODELS.get(kind)
        if model is None:
            raise RegistryNotFoundError(f"Unknown override kind '{kind}'")
        return model

    def list_overrides(self, kind: str, scope: Optional[str] = None, vertical: Optional[str] = None,
                       market: Optional[str] = None, organization_id: Optional[str] = None,
                       include_inactive: bool = False) -> List[Any]:
        model = self._model(kind)
        query = self.session.query(model)
        for column, value in (("scope", scope), ("vertical", vertical), ("market", market),
                              ("organization_id", organization_id)):
            if value:
                query = query.filter(getattr(model, column) == value)
        if not include_inactive:
            query = query.filter(model.is_active.is_(True))
        return query.order_by(model.id).all()

    def create_override(self, kind: str, payload: Dict[str, Any]) -> Any:
        model = self._model(kind)
        missing = [f for f in OVERRIDE_REQUIRED[kind] if payload.get(f) in (None, "")]
        if missing:
            raise RegistryValidationError(f"Missing field(s): {', '.join(missing)}")
        validate_scope_keys(payload)
        _validate_override_payload(kind, payload)

        values = _pick(payload, SCOPE_FIELDS + OVERRIDE_FIELDS[kind] + ("is_active",))
        if kind == "token_relevance":
            values["token"] = values["token"].strip().lower()
        row = model(**values)
        self.session.add(row)
        self._commit()
        logger.info(f"Created {kind} override #{row.id} ({row.scope})")
        return row

    def update_override(self, kind: str, override_id: int, payload: Dict[str, Any]) -> Any:
        model = self._model(kind)
        row = self.session.get(model, override_id)
        if row is None:
            raise RegistryNotFoundError(f"{kind} override {override_id} not found")
        merged = {k: getattr(row, k) for k in SCOPE_FIELDS}
        merged.update(_pick(payload, SCOPE_FIELDS))
        validate_scope_keys(merged)
        _validate_override_payload(kind, payload)

        values = _pick(payload, SCOPE_FIELDS + OVERRIDE_FIELDS[kind] + ("is_active",))
        if kind == "token_relevance" and values.get("token"):
            values["token"] = values["token"].strip().lower()
        for key, value in values.items():
            setattr(row, key, value)
        row.version = (row.version or 1) + 1
        self._commit()
        return row

    def delete_override(self, kind: str, override_id: int) -> None:
        model = self._model(kind)
        row = self.session.get(model, override_id)
        if row is None:
            raise RegistryNotFoundError(f"{kind} override {override_id} not found")
        self.session.delete(row)
        self._commit()

    # ── intent patterns ──

    def list_intent_patterns(self, intent_type: Optional[str] = None, scope: Optional[str] = None,
                             vertical: Optional[str] = None, include_inactive: bool = False) -> List[IntentPattern]:
        query = self.session.query(IntentPattern)
        if intent_type:
            query = query.filter(IntentPattern.intent_type == intent_type)
        if scope:
            query = query.filter(IntentPattern.scope == scope)
        if vertical:
            query = query.filter(IntentPattern.vertical == vertical)
        if not include_inactive:
            query = query.filter(IntentPattern.is_active.is_(True))
        return query.order_by(IntentPattern.priority.desc(), IntentPattern.pattern).all()

    def create_intent_pattern(self, payload: Dict[str, Any]) -> IntentPattern:
        if not payload.get("pattern") or not payload.get("intent_type"):
            raise RegistryValidationError("'pattern' and 'intent_type' are required")
        validate_scope_keys(payload, allow_app=True)
        _validate_intent_payload(payload)

        self._check_intent_unique(payload)

        row = IntentPattern(**_pick(payload, INTENT_FIELDS))
        self.session.add(row)
        self._commit()
        logger.info(f"Created intent pattern '{row.pattern}' ({row.intent_type}, {row.scope})")
        return row

    def _check_intent_unique(self, values: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
        # NULL scope keys never collide in a unique index, so check explicitly
        query = self.session.query(IntentPattern).filter(IntentPattern.pattern == values["pattern"])
        for column in ("scope", "vertical", "market", "organization_id", "app_id"):
            value = values.get(column) or ("base" if column == "scope" else None)
            attr = getattr(IntentPattern, column)
            query = query.filter(attr.is_(None) if value is None else attr == value)
        if exclude_id is not None:
            query = query.filter(IntentPattern.id != exclude_id)
        if query.first() is not None:
            raise RegistryConflictError(f"Intent pattern '{values['pattern']}' already exists in this scope")

    def update_intent_pattern(self, pattern_id: int, payload: Dict[str, Any]) -> IntentPattern:
        row = self.session.get(IntentPattern, pattern_id)
        if row is None:
            raise RegistryNotFoundError(f"Intent pattern {pattern_id} not found")
        merged = {k: getattr(row, k) for k in SCOPE_FIELDS + ("app_id", "pattern", "is_regex")}
        merged.update(_pick(payload, INTENT_FIELDS))
        validate_scope_keys(merged, allow_app=True)
        _validate_intent_payload(merged if "pattern" in payload or "is_regex" in payload else payload)
        self._check_intent_unique(merged, exclude_id=row.id)

        for key, value in _pick(payload, INTENT_FIELDS).items():
            setattr(row, key, value)
        self._commit()
        return row

    def delete_intent_pattern(self, pattern_id: int) -> None:
        row = self.session.get(IntentPattern, pattern_id)
        if row is None:
            raise RegistryNotFoundError(f"Intent pattern {pattern_id} not found")
        self.session.delete(row)
        self._commit()


def code_rule_catalog() -> List[Dict[str, Any]]:
    """Rules as defined in code, for display when the registry is not seeded."""
    return [
        {"rule_id": r.rule_id, "name": r.name, "description": r.description,
         "scope": element, "weight_default": r.weight}
        for element, config in RULE_REGISTRY.items()
        for r in config.rules
    ]


