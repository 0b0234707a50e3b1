"""
Pydantic schemas for API request/response validation.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime


# ─── Shared ──────────────────────────────────────────────────────────────────

class ContextFields(BaseModel):
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None


class MetadataFields(ContextFields):
    title: str = Field(..., max_length=255)
    subtitle: str = ""
    description: str = ""
    platform: str = Field("ios", description="ios | android")
    locale: str = "us"
    category: Optional[str] = None


# ─── Audit ───────────────────────────────────────────────────────────────────

class AuditRequest(MetadataFields):
    rule_overrides: Dict[str, Dict[str, Any]] = {}


class KpiRequest(MetadataFields):
    pass


class IntentCoverageRequest(ContextFields):
    title: str
    subtitle: str = ""


class ComboRequest(ContextFields):
    title: str
    subtitle: str = ""
    include_opportunities: bool = False


class IntentClassifyRequest(ContextFields):
    combos: List[str] = Field(..., min_length=1)


# ─── Registry ────────────────────────────────────────────────────────────────

class RuleEvaluatorUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    weight_default: Optional[float] = Field(None, ge=0, le=1)
    severity_default: Optional[str] = None
    threshold_low: Optional[float] = None
    threshold_high: Optional[float] = None
    kpi_ids: Optional[List[str]] = None
    formula_id: Optional[str] = None
    help_text: Optional[str] = None
    tags: Optional[List[str]] = None
    is_active: Optional[bool] = None
    is_deprecated: Optional[bool] = None


class ScopeFields(BaseModel):
    scope: str = Field("base", description="base | vertical | market | client")
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None


class RuleOverrideRequest(ScopeFields):
    rule_id: str
    weight_multiplier: Optional[float] = 1.0
    severity_override: Optional[str] = None
    threshold_low_override: Optional[float] = None
    threshold_high_override: Optional[float] = None
    notes: Optional[str] = None
    is_active: bool = True


class RuleOverrideUpdate(BaseModel):
    weight_multiplier: Optional[float] = None
    severity_override: Optional[str] = None
    threshold_low_override: Optional[float] = None
    threshold_high_override: Optional[float] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class IntentPatternRequest(BaseModel):
    pattern: str = Field(..., min_length=1, max_length=255)
    intent_type: str
    example: Optional[str] = None
    description: Optional[str] = None
    scope: str = "base"
    vertical: Optional[str] = None
    market: Optional[str] = None
    organization_id: Optional[str] = None
    app_id: Optional[str] = None
    weight: float = 1.0
    priority: int = 100
    is_regex: bool = False
    case_sensitive: bool = False
    word_boundary: bool = True
    is_active: bool = True


class IntentPatternUpdate(BaseModel):
    pattern: Optional[str] = None
    intent_type: Optional[str] = None
    example: Optional[str] = None
    description: Optional[str] = None
    weight: Optional[float] = None
    priority: Optional[int] = None
    is_regex: Optional[bool] = None
    case_sensitive: Optional[bool] = None
    word_boundary: Optional[bool] = None
    is_active: Optional[bool] = None


# ─── Drafts ──────────────────────────────────────────────────────────────────

class DraftRequest(BaseModel):
    user_id: str
    organization_id: str
    app_id: str
    draft_type: str = Field(..., description="keywords | single-locale | multi-locale")
    draft_data: Dict[str, Any]
    draft_label: Optional[str] = None


class DraftSnapshot(BaseModel):
    draft_data: Dict[str, Any]
    saved_at: datetime


class DraftResolveRequest(BaseModel):
    local: Optional[DraftSnapshot] = None
    cloud: Optional[DraftSnapshot] = None


# ─── Monitoring ──────────────────────────────────────────────────────────────

class MonitoredAppRequest(BaseModel):
    organization_id: str
    app_id: str
    app_name: str
    platform: str = "ios"
    developer_name: Optional[str] = None
    category: Optional[str] = None
    vertical: Optional[str] = None
    locale: Optional[str] = "us"
    audit_enabled: Optional[bool] = True
    tags: List[str] = []
    notes: Optional[str] = None


class AppAuditRequest(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    mode: str = Field("manual", description="manual | mock | itunes | html")
    market: Optional[str] = None


class CompetitorRequest(BaseModel):
    app_id: str
    app_name: str
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None


class CompetitiveAnalysisRequest(BaseModel):
    density_threshold: float = Field(0.5, gt=0, le=1)
    max_gaps: int = Field(25, ge=1, le=200)


# ─── Copilot ─────────────────────────────────────────────────────────────────

class CopilotRequest(BaseModel):
    payload: Dict[str, Any] = {}


# ─── Responses ───────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    database: str = "ok"


