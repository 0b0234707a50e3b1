"""
FastAPI Route Handlers
ASO Insight Dashboard
"""

import logging
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from agents.audit import MetadataAuditAgent
from agents.competitors import CompetitiveInput, CompetitorGapAgent
from agents.metadata import AppMetadataAgent, MetadataFetchError, MetadataRequest
from api.schemas import (
    AppAuditRequest, AuditRequest, CompetitiveAnalysisRequest, CompetitorRequest,
    ComboRequest, ContextFields, CopilotRequest, DraftRequest, DraftResolveRequest,
    HealthResponse, IntentClassifyRequest, IntentCoverageRequest, IntentPatternRequest,
    IntentPatternUpdate, KpiRequest, MonitoredAppRequest, RuleEvaluatorUpdate,
    RuleOverrideRequest, RuleOverrideUpdate,
)
from config.settings import settings
from db.database import SessionLocal, get_db_dependency
from models.schemas import AppMetadata
from scoring.audit import MetadataAuditEngine
from scoring.combos import analyze_combo_coverage, analyze_combo_opportunities
from scoring.formulas import FORMULA_REGISTRY
from scoring.hooks import get_hook_patterns
from scoring.intent import (
    classify_combo_intent,
    compute_combined_search_intent_coverage,
    dominant_intent,
)
from scoring.kpi import FAMILY_DEFINITIONS, KPI_DEFINITIONS, KpiEngine
from scoring.recommendations import get_recommendation_templates
from scoring.text import get_stopwords, tokenize_for_aso
from services.drafts import (
    DraftNotFoundError, DraftService, DraftValidationError,
    draft_to_dict, resolve_conflict,
)
from services.edge_functions import ALLOWED_FUNCTIONS, EdgeFunctionClient, EdgeFunctionError
from services.monitoring import (
    MonitoredAppNotFoundError, MonitoringError, MonitoringService,
    app_to_dict, competitor_to_dict, snapshot_to_dict,
)
from services.registry import (
    RegistryConflictError, RegistryNotFoundError, RegistryService, RegistryValidationError,
    code_rule_catalog, serialize_row,
)
from services.ruleset_loader import RulesetLoader, load_intent_patterns

logger = logging.getLogger(__name__)

router = APIRouter()

ruleset_loader = RulesetLoader(SessionLocal)
_edge_client: Optional[EdgeFunctionClient] = None


def get_edge_client() -> EdgeFunctionClient:
    global _edge_client
    if _edge_client is None:
        _edge_client = EdgeFunctionClient()
    return _edge_client


@contextmanager
def service_errors():
    """Map service exceptions onto HTTP status codes."""
    try:
        yield
    except (RegistryValidationError, DraftValidationError, MonitoringError) as e:
        if isinstance(e, MonitoredAppNotFoundError):
            raise HTTPException(status_code=404, detail=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except (RegistryNotFoundError, DraftNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RegistryConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (EdgeFunctionError, MetadataFetchError) as e:
        raise HTTPException(status_code=502, detail=str(e))


# ─── Context Helpers ─────────────────────────────────────────────────────────


def _registry(db: Session) -> RegistryService:
    return RegistryService(db, on_change=ruleset_loader.invalidate)


def _engine(db: Session, ctx: ContextFields, category: Optional[str] = None,
            rule_overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> MetadataAuditEngine:
    ruleset = ruleset_loader.load(
        vertical=ctx.vertical, market=ctx.market, organization_id=ctx.organization_id,
        app_id=ctx.app_id, category=category,
    )
    patterns, fallback = load_intent_patterns(
        db, vertical=ctx.vertical, market=ctx.market,
        organization_id=ctx.organization_id, app_id=ctx.app_id,
    )
    registry_overrides = _registry(db).engine_rule_overrides(ctx.vertical, ctx.market, ctx.organization_id)
    for rule_id, override in (rule_overrides or {}).items():
        registry_overrides[rule_id] = {**registry_overrides.get(rule_id, {}), **override}
    return MetadataAuditEngine(
        ruleset=ruleset,
        rule_overrides=registry_overrides,
        intent_patterns=patterns,
        intent_fallback_mode=fallback,
    )


# ─── Health ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
def health_check(db: Session = Depends(get_db_dependency)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database failure: {e}")
        database = "unavailable"
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        timestamp=datetime.utcnow(),
        database=database,
    )


# ─── Audit ───────────────────────────────────────────────────────────────────

@router.post("/audit", tags=["Audit"])
def audit_metadata(request: AuditRequest, db: Session = Depends(get_db_dependency)):
    """Full metadata audit with the ruleset resolved for the request context."""
    with service_errors():
        engine = _engine(db, request, request.category, request.rule_overrides)
        result = engine.evaluate(request.model_dump())
    return result.to_dict()


@router.post("/audit/kpis", tags=["Audit"])
def audit_kpis(request: KpiRequest, db: Session = Depends(get_db_dependency)):
    engine = _engine(db, request)
    intent = compute_combined_search_intent_coverage(
        tokenize_for_aso(request.title), tokenize_for_aso(request.subtitle),
        engine.intent_patterns, engine.intent_fallback_mode,
    )
    result = KpiEngine.evaluate(
        request.title, request.subtitle, platform=request.platform, locale=request.locale,
        intent_coverage=intent, ruleset=engine.ruleset,
    )
    return result.to_dict()


@router.post("/audit/intent-coverage", tags=["Audit"])
def audit_intent_coverage(request: IntentCoverageRequest, db: Session = Depends(get_db_dependency)):
    patterns, fallback = load_intent_patterns(
        db, vertical=request.vertical, market=request.market,
        organization_id=request.organization_id, app_id=request.app_id,
    )
    coverage = compute_combined_search_intent_coverage(
        tokenize_for_aso(request.title), tokenize_for_aso(request.subtitle), patterns, fallback,
    )
    return coverage.to_dict()


@router.post("/audit/combos", tags=["Audit"])
def audit_combos(request: ComboRequest):
    ruleset = ruleset_loader.load(
        vertical=request.vertical, market=request.market,
        organization_id=request.organization_id, app_id=request.app_id,
    )
    stopwords = get_stopwords(ruleset.stopwords)
    relevance = ruleset.token_relevance_overrides
    response = {"coverage": analyze_combo_coverage(request.title, request.subtitle, stopwords, relevance).to_dict()}
    if request.include_opportunities:
        response["opportunities"] = analyze_combo_opportunities(
            request.title, request.subtitle, stopwords, relevance
        ).to_dict()
    return response


# ─── Registries ──────────────────────────────────────────────────────────────

@router.get("/registry/rules", tags=["Registry"])
def list_rules(scope: Optional[str] = None, family: Optional[str] = None,
               include_inactive: bool = False, db: Session = Depends(get_db_dependency)):
    rows = _registry(db).list_rule_evaluators(scope, family, include_inactive)
    if not rows and not scope and not family:
        return code_rule_catalog()
    return [serialize_row(r) for r in rows]


@router.get("/registry/rules/effective", tags=["Registry"])
def effective_rules(vertical: Optional[str] = None, market: Optional[str] = None,
                    organization_id: Optional[str] = None, db: Session = Depends(get_db_dependency)):
    return _registry(db).effective_rule_evaluators(vertical, market, organization_id)


@router.get("/registry/rules/{rule_id}", tags=["Registry"])
def get_rule(rule_id: str, db: Session = Depends(get_db_dependency)):
    with service_errors():
        return serialize_row(_registry(db).get_rule_evaluator(rule_id))


@router.patch("/registry/rules/{rule_id}", tags=["Registry"])
def update_rule(rule_id: str, request: RuleEvaluatorUpdate, db: Session = Depends(get_db_dependency)):
    with service_errors():
        row = _registry(db).update_rule_evaluator(rule_id, request.model_dump(exclude_unset=True))
        return serialize_row(row)


@router.get("/registry/formulas", tags=["Registry"])
def list_formulas():
    return [f.to_dict() for f in FORMULA_REGISTRY]


@router.get("/registry/kpis", tags=["Registry"])
def list_kpis():
    return {
        "families": [asdict(f) for f in FAMILY_DEFINITIONS],
        "kpis": [asdict(k) for k in KPI_DEFINITIONS],
    }


@router.get("/registry/hooks/{vertical}", tags=["Registry"])
def hook_patterns(vertical: str):
    return {"vertical": vertical, "patterns": get_hook_patterns(vertical)}


@router.get("/registry/recommendations/{vertical}", tags=["Registry"])
def recommendation_templates(vertical: str):
    return [
        {
            "id": t.id,
            "trigger": t.trigger,
            "message": t.message,
            "severity": t.severity,
            "category": t.category,
            "hook_category": t.hook_category,
            "token_family": sorted(t.token_family),
        }
        for t in get_recommendation_templates(vertical).values()
    ]


# ─── Overrides ───────────────────────────────────────────────────────────────

@router.get("/overrides/rules", tags=["Overrides"])
def list_rule_overrides(rule_id: Optional[str] = None, scope: Optional[str] = None,
                        include_inactive: bool = False, db: Session = Depends(get_db_dependency)):
    return [serialize_row(r) for r in _registry(db).list_rule_overrides(rule_id, scope, include_inactive)]


@router.post("/overrides/rules", status_code=201, tags=["Overrides"])
def create_rule_override(request: RuleOverrideRequest, db: Session = Depends(get_db_dependency)):
    with service_errors():
        return serialize_row(_registry(db).create_rule_override(request.model_dump()))


@router.patch("/overrides/rules/{override_id}", tags=["Overrides"])
def update_rule_override(override_id: int, request: RuleOverrideUpdate, db: Session = Depends(get_db_dependency)):
    with service_errors():
        row = _registry(db).update_rule_override(override_id, request.model_dump(exclude_unset=True))
        return serialize_row(row)


@router.delete("/overrides/rules/{override_id}", status_code=204, tags=["Overrides"])
def delete_rule_override(override_id: int, db: Session = Depends(get_db_dependency)):
    with service_errors():
        _registry(db).delete_rule_override(override_id)


@router.get("/ruleset", tags=["Overrides"])
def merged_ruleset(vertical: Optional[str] = None, market: Optional[str] = None,
                   organization_id: Optional[str] = None, app_id: Optional[str] = None,
                   category: Optional[str] = None):
    return ruleset_loader.load(vertical, market, organization_id, app_id, category).to_dict()


@router.get("/overrides/{kind}", tags=["Overrides"])
def list_overrides(kind: str, scope: Optional[str] = None, vertical: Optional[str] = None,
                   market: Optional[str] = None, organization_id: Optional[str] = None,
                   include_inactive: bool = False, db: Session = Depends(get_db_dependency)):
    with service_errors():
        rows = _registry(db).list_overrides(kind, scope, vertical, market, organization_id, include_inactive)
        return [serialize_row(r) for r in rows]


@router.post("/overrides/{kind}", status_code=201, tags=["Overrides"])
def create_override(kind: str, payload: Dict[str, Any], db: Session = Depends(get_db_dependency)):
    with service_errors():
        return serialize_row(_registry(db).create_override(kind, payload))


@router.patch("/overrides/{kind}/{override_id}", tags=["Overrides"])
def update_override(kind: str, override_id: int, payload: Dict[str, Any],
                    db: Session = Depends(get_db_dependency)):
    with service_errors():
        return serialize_row(_registry(db).update_override(kind, override_id, payload))


@router.delete("/overrides/{kind}/{override_id}", status_code=204, tags=["Overrides"])
def delete_override(kind: str, override_id: int, db: Session = Depends(get_db_dependency)):
    with service_errors():
        _registry(db).delete_override(kind, override_id)


# ─── Intent ──────────────────────────────────────────────────────────────────

@router.get("/intent/patterns", tags=["Intent"])
def list_intent_patterns(intent_type: Optional[str] = None, scope: Optional[str] = None,
                         vertical: Optional[str] = None, include_inactive: bool = False,
                         db: Session = Depends(get_db_dependency)):
    rows = _registry(db).list_intent_patterns(intent_type, scope, vertical, include_inactive)
    return [serialize_row(r) for r in rows]


@router.post("/intent/patterns", status_code=201, tags=["Intent"])
def create_intent_pattern(request: IntentPatternRequest, db: Session = Depends(get_db_dependency)):
    with service_errors():
        return serialize_row(_registry(db).create_intent_pattern(request.model_dump()))


@router.patch("/intent/patterns/{pattern_id}", tags=["Intent"])
def update_intent_pattern(pattern_id: int, request: IntentPatternUpdate, db: Session = Depends(get_db_dependency)):
    with service_errors():
        row = _registry(db).update_intent_pattern(pattern_id, request.model_dump(exclude_unset=True))
        return serialize_row(row)


@router.delete("/intent/patterns/{pattern_id}", status_code=204, tags=["Intent"])
def delete_intent_pattern(pattern_id: int, db: Session = Depends(get_db_dependency)):
    with service_errors():
        _registry(db).delete_intent_pattern(pattern_id)


@router.post("/intent/classify", tags=["Intent"])
def classify_intents(request: IntentClassifyRequest, db: Session = Depends(get_db_dependency)):
    patterns, fallback = load_intent_patterns(
        db, vertical=request.vertical, market=request.market,
        organization_id=request.organization_id, app_id=request.app_id,
    )
    classified = [classify_combo_intent(combo, patterns) for combo in request.combos]
    distribution: Dict[str, int] = {}
    for item in classified:
        distribution[item.dominant_intent] = distribution.get(item.dominant_intent, 0) + 1
    return {
        "fallback_mode": fallback,
        "combos": [c.to_dict() for c in classified],
        "distribution": distribution,
        "dominant_intent": dominant_intent(distribution),
    }


# ─── Drafts ──────────────────────────────────────────────────────────────────

@router.post("/drafts", status_code=201, tags=["Drafts"])
def save_draft(request: DraftRequest, db: Session = Depends(get_db_dependency)):
    with service_errors():
        row = DraftService(db).save_draft(**request.model_dump())
        return draft_to_dict(row)


@router.get("/drafts", tags=["Drafts"])
def list_drafts(user_id: str, app_id: Optional[str] = None, db: Session = Depends(get_db_dependency)):
    return DraftService(db).list_drafts(user_id, app_id)


@router.get("/drafts/latest", tags=["Drafts"])
def latest_draft(user_id: str, app_id: str, draft_type: Optional[str] = None,
                 db: Session = Depends(get_db_dependency)):
    row = DraftService(db).get_latest_draft(user_id, app_id, draft_type)
    if row is None:
        raise HTTPException(status_code=404, detail="No draft found.")
    return draft_to_dict(row)


@router.post("/drafts/resolve", tags=["Drafts"])
def resolve_drafts(request: DraftResolveRequest):
    resolution = resolve_conflict(
        request.local.model_dump() if request.local else None,
        request.cloud.model_dump() if request.cloud else None,
    )
    if resolution is None:
        raise HTTPException(status_code=400, detail="Provide at least one of 'local' or 'cloud'.")
    return resolution.to_dict()


@router.get("/drafts/{draft_id}", tags=["Drafts"])
def get_draft(draft_id: int, user_id: Optional[str] = None, db: Session = Depends(get_db_dependency)):
    with service_errors():
        return draft_to_dict(DraftService(db).get_draft(draft_id, user_id))


@router.delete("/drafts/{draft_id}", status_code=204, tags=["Drafts"])
def delete_draft(draft_id: int, user_id: Optional[str] = None, db: Session = Depends(get_db_dependency)):
    with service_errors():
        DraftService(db).delete_draft(draft_id, user_id)


# ─── Monitoring ──────────────────────────────────────────────────────────────

@router.post("/apps", status_code=201, tags=["Monitoring"])
def save_app(request: MonitoredAppRequest, db: Session = Depends(get_db_dependency)):
    payload = request.model_dump()
    app = MonitoringService(db).save_monitored_app(
        payload.pop("organization_id"), payload.pop("app_id"), payload.pop("app_name"),
        platform=payload.pop("platform"), **payload,
    )
    return app_to_dict(app)


@router.get("/apps", tags=["Monitoring"])
def list_apps(organization_id: Optional[str] = None, db: Session = Depends(get_db_dependency)):
    return [app_to_dict(a) for a in MonitoringService(db).list_monitored_apps(organization_id)]


@router.get("/apps/{monitored_app_id}", tags=["Monitoring"])
def get_app(monitored_app_id: int, db: Session = Depends(get_db_dependency)):
    service = MonitoringService(db)
    with service_errors():
        app = service.get_monitored_app(monitored_app_id)
    return {**app_to_dict(app), "score_trend": service.score_trend(monitored_app_id)}


@router.delete("/apps/{monitored_app_id}", status_code=204, tags=["Monitoring"])
def delete_app(monitored_app_id: int, db: Session = Depends(get_db_dependency)):
    with service_errors():
        MonitoringService(db).delete_monitored_app(monitored_app_id)


@router.post("/apps/{monitored_app_id}/audit", tags=["Monitoring"])
def audit_app(monitored_app_id: int, request: AppAuditRequest, db: Session = Depends(get_db_dependency)):
    """Audit a monitored app (inline metadata or a live fetch) and store a snapshot."""
    service = MonitoringService(db)
    with service_errors():
        app = service.get_monitored_app(monitored_app_id)
        market = request.market or app.locale
        if request.mode == "manual":
            if not request.title:
                raise HTTPException(status_code=400, detail="'title' is required for manual audits.")
            metadata = AppMetadata(
                app_id=app.app_id, title=request.title, subtitle=request.subtitle or "",
                description=request.description or "", platform=app.platform, locale=market,
                app_name=app.app_name, category=app.category, vertical=app.vertical,
            )
        else:
            metadata = AppMetadataAgent(mode=request.mode).fetch(MetadataRequest(
                app_id=app.app_id, mode=request.mode, country=market,
                platform=app.platform, vertical=app.vertical,
            ))

    agent = MetadataAuditAgent(
        loader=ruleset_loader,
        organization_id=app.organization_id,
        rule_overrides=_registry(db).engine_rule_overrides(metadata.vertical, metadata.locale, app.organization_id),
    )
    result = agent.execute(metadata)
    if not result.success:
        raise HTTPException(status_code=500, detail=f"Audit failed: {result.error}")

    bundle = result.data
    with service_errors():
        snapshot = service.record_audit_snapshot(
            app, metadata, bundle.result, source="manual" if request.mode == "manual" else "live",
        )
    return {"snapshot": snapshot_to_dict(snapshot), "audit": bundle.result.to_dict()}


@router.get("/apps/{monitored_app_id}/snapshots", tags=["Monitoring"])
def list_snapshots(monitored_app_id: int, limit: int = 20, include_result: bool = False,
                   db: Session = Depends(get_db_dependency)):
    service = MonitoringService(db)
    with service_errors():
        service.get_monitored_app(monitored_app_id)
    return [snapshot_to_dict(s, include_result) for s in service.list_audit_snapshots(monitored_app_id, limit)]


@router.post("/apps/{monitored_app_id}/competitors", status_code=201, tags=["Monitoring"])
def add_competitor(monitored_app_id: int, request: CompetitorRequest, db: Session = Depends(get_db_dependency)):
    with service_errors():
        competitor = MonitoringService(db).add_competitor(monitored_app_id, **request.model_dump())
    return competitor_to_dict(competitor)


@router.get("/apps/{monitored_app_id}/competitors", tags=["Monitoring"])
def list_competitors(monitored_app_id: int, db: Session = Depends(get_db_dependency)):
    return [competitor_to_dict(c) for c in MonitoringService(db).list_competitors(monitored_app_id)]


@router.post("/apps/{monitored_app_id}/competitive-analysis", tags=["Monitoring"])
def competitive_analysis(monitored_app_id: int, request: CompetitiveAnalysisRequest,
                         db: Session = Depends(get_db_dependency)):
    """Keyword gaps against stored competitors, using the latest audit snapshot as our metadata."""
    service = MonitoringService(db)
    with service_errors():
        app = service.get_monitored_app(monitored_app_id)
    snapshots = service.list_audit_snapshots(monitored_app_id, limit=1)
    if not snapshots:
        raise HTTPException(status_code=400, detail="Audit the app before running competitive analysis.")
    competitors = service.list_competitors(monitored_app_id)
    if not competitors:
        raise HTTPException(status_code=400, detail="Add at least one competitor first.")

    latest = snapshots[0]
    ours = AppMetadata(
        app_id=app.app_id, title=latest.title or "", subtitle=latest.subtitle or "",
        description=latest.description or "", platform=app.platform, locale=latest.locale,
        app_name=app.app_name, category=app.category, vertical=app.vertical,
    )
    theirs = [
        AppMetadata(
            app_id=c.app_id, title=c.title or c.app_name, subtitle=c.subtitle or "",
            description=c.description or "", app_name=c.app_name, platform=app.platform,
        )
        for c in competitors
    ]
    ruleset = ruleset_loader.load(app.vertical, latest.locale, app.organization_id, app.app_id)
    agent = CompetitorGapAgent(
        density_threshold=request.density_threshold, max_gaps=request.max_gaps, ruleset=ruleset,
    )
    result = agent.execute(CompetitiveInput(app=ours, competitors=theirs))
    if not result.success:
        raise HTTPException(status_code=500, detail=f"Competitive analysis failed: {result.error}")
    return result.data.to_dict()


# ─── Copilot ─────────────────────────────────────────────────────────────────

@router.post("/copilot/{function_name}", tags=["Copilot"])
def copilot(function_name: str, request: CopilotRequest,
            client: EdgeFunctionClient = Depends(get_edge_client)):
    if function_name not in ALLOWED_FUNCTIONS:
        raise HTTPException(status_code=404, detail=f"Function '{function_name}' is not available.")
    with service_errors():
        return client.invoke(function_name, request.payload)
