"""
SQLAlchemy ORM Models
ASO Insight Dashboard
"""

from sqlalchemy import (
    Column, Integer, Float, String, Text, Boolean,
    DateTime, ForeignKey, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base
from datetime import datetime

Base = declarative_base()


# ─── Override Scope Mixin ────────────────────────────────────────────────────


class ScopedOverrideMixin:
    """Columns shared by every scope-based override table."""
    scope = Column(String(20), nullable=False, default="base")  # base | vertical | market | client
    vertical = Column(String(100))
    market = Column(String(20))
    organization_id = Column(String(64))
    version = Column(Integer, default=1, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ─── Rule Evaluator Registry ─────────────────────────────────────────────────


class RuleEvaluator(Base):
    __tablename__ = "aso_rule_evaluators"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_id = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    scope = Column(String(20), nullable=False)        # title | subtitle | description | coverage | intent | global
    family = Column(String(20), nullable=False)       # ranking | conversion | diagnostic | coverage
    weight_default = Column(Float, nullable=False, default=0.0)
    severity_default = Column(String(20), nullable=False, default="moderate")
    threshold_low = Column(Float)
    threshold_high = Column(Float)
    kpi_ids = Column(JSON, default=list)
    formula_id = Column(String(100))
    help_text = Column(Text)
    tags = Column(JSON, default=list)
    is_active = Column(Boolean, default=True, nullable=False)
    is_deprecated = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (Index("ix_rule_evaluator_scope", "scope", "family"),)


class RuleEvaluatorOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_rule_evaluator_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_id = Column(String(100), nullable=False)
    weight_multiplier = Column(Float, default=1.0)
    severity_override = Column(String(20))
    threshold_low_override = Column(Float)
    threshold_high_override = Column(Float)
    notes = Column(Text)

    __table_args__ = (
        Index("ix_rule_override_rule", "rule_id"),
        Index("ix_rule_override_scope", "scope", "vertical", "market", "organization_id"),
    )


# ─── Ruleset Override Tables ─────────────────────────────────────────────────


class TokenRelevanceOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_token_relevance_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(100), nullable=False)
    relevance = Column(Integer, nullable=False)  # 0-3

    __table_args__ = (Index("ix_token_override_scope", "scope", "vertical", "market"),)


class HookPatternOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_hook_pattern_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hook_category = Column(String(50), nullable=False)
    weight_multiplier = Column(Float, default=1.0)
    keywords = Column(JSON, default=list)

    __table_args__ = (Index("ix_hook_override_scope", "scope", "vertical", "market"),)


class StopwordOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_stopword_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stopwords = Column(JSON, default=list)

    __table_args__ = (Index("ix_stopword_override_scope", "scope", "vertical", "market"),)


class KpiWeightOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_kpi_weight_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kpi_id = Column(String(100), nullable=False)
    weight_multiplier = Column(Float, default=1.0)

    __table_args__ = (Index("ix_kpi_override_scope", "scope", "vertical", "market"),)


class FormulaOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_formula_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    formula_id = Column(String(100), nullable=False)
    payload = Column(JSON, default=dict)  # {"multiplier": 1.2, "component_weights": {...}}

    __table_args__ = (Index("ix_formula_override_scope", "scope", "vertical", "market"),)


class RecommendationTemplateOverride(ScopedOverrideMixin, Base):
    __tablename__ = "aso_recommendation_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recommendation_id = Column(String(100), nullable=False)
    message = Column(Text, nullable=False)

    __table_args__ = (Index("ix_recommendation_override_scope", "scope", "vertical", "market"),)


# ─── Intent Registry ─────────────────────────────────────────────────────────


class IntentPattern(Base):
    __tablename__ = "aso_intent_patterns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pattern = Column(String(255), nullable=False)
    intent_type = Column(String(20), nullable=False)  # informational | commercial | transactional | navigational
    example = Column(Text)
    description = Column(Text)
    scope = Column(String(20), nullable=False, default="base")  # base | vertical | market | client | app
    vertical = Column(String(100))
    market = Column(String(20))
    organization_id = Column(String(64))
    app_id = Column(String(64))
    weight = Column(Float, default=1.0, nullable=False)
    priority = Column(Integer, default=100, nullable=False)
    is_regex = Column(Boolean, default=False, nullable=False)
    case_sensitive = Column(Boolean, default=False, nullable=False)
    word_boundary = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    overrides = relationship("IntentPatternOverride", back_populates="pattern", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint(
            "pattern", "scope", "vertical", "market", "organization_id", "app_id",
            name="uq_intent_pattern_scope",
        ),
        Index("ix_intent_pattern_type", "intent_type"),
    )


class IntentPatternOverride(Base):
    __tablename__ = "aso_intent_pattern_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pattern_id = Column(Integer, ForeignKey("aso_intent_patterns.id"), nullable=False)
    scope = Column(String(20), nullable=False)
    vertical = Column(String(100))
    market = Column(String(20))
    organization_id = Column(String(64))
    app_id = Column(String(64))
    weight_multiplier = Column(Float, default=1.0)
    is_active = Column(Boolean, default=True, nullable=False)
    priority_override = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pattern = relationship("IntentPattern", back_populates="overrides")

    __table_args__ = (Index("ix_intent_override_pattern", "pattern_id"),)


# ─── Monitoring ──────────────────────────────────────────────────────────────


class MonitoredApp(Base):
    __tablename__ = "monitored_apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    organization_id = Column(String(64), nullable=False)
    app_id = Column(String(64), nullable=False)
    platform = Column(String(10), nullable=False, default="ios")
    app_name = Column(String(255), nullable=False)
    developer_name = Column(String(255))
    category = Column(String(100))
    vertical = Column(String(100))
    locale = Column(String(20), default="us")
    audit_enabled = Column(Boolean, default=True)
    latest_audit_score = Column(Integer)
    latest_audit_at = Column(DateTime)
    tags = Column(JSON, default=list)
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    snapshots = relationship("AuditSnapshot", back_populates="app", cascade="all, delete-orphan")
    competitors = relationship("CompetitorApp", back_populates="app", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("organization_id", "app_id", "platform", name="uq_monitored_app"),
    )


class AuditSnapshot(Base):
    __tablename__ = "aso_audit_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitored_app_id = Column(Integer, ForeignKey("monitored_apps.id"), nullable=False)
    organization_id = Column(String(64), nullable=False)
    app_id = Column(String(64), nullable=False)
    platform = Column(String(10), nullable=False)
    locale = Column(String(20), default="us")
    source = Column(String(20), default="cache")  # live | cache | manual
    title = Column(Text)
    subtitle = Column(Text)
    description = Column(Text)
    audit_result = Column(JSON, nullable=False)
    overall_score = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    app = relationship("MonitoredApp", back_populates="snapshots")

    __table_args__ = (Index("ix_snapshot_app_created", "monitored_app_id", "created_at"),)


class CompetitorApp(Base):
    __tablename__ = "competitor_apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitored_app_id = Column(Integer, ForeignKey("monitored_apps.id"), nullable=False)
    app_id = Column(String(64), nullable=False)
    app_name = Column(String(255), nullable=False)
    title = Column(Text)
    subtitle = Column(Text)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

    app = relationship("MonitoredApp", back_populates="competitors")

    __table_args__ = (
        UniqueConstraint("monitored_app_id", "app_id", name="uq_competitor_app"),
    )


# ─── Drafts ──────────────────────────────────────────────────────────────────


class MetadataDraft(Base):
    __tablename__ = "metadata_drafts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    organization_id = Column(String(64), nullable=False)
    app_id = Column(String(64), nullable=False)
    draft_type = Column(String(20), nullable=False)  # keywords | single-locale | multi-locale
    draft_label = Column(String(255))
    draft_data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "app_id", "draft_type", "draft_label", name="uq_metadata_draft"),
        Index("ix_draft_user_app", "user_id", "app_id"),
        Index("ix_draft_updated", "updated_at"),
    )


OVERRIDE_MODELS = {
    "token_relevance": TokenRelevanceOverride,
    "hook": HookPatternOverride,
    "stopword": StopwordOverride,
    "kpi_weight": KpiWeightOverride,
    "formula": FormulaOverride,
    "recommendation": RecommendationTemplateOverride,
}
