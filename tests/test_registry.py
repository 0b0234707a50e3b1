"""
Registry service, seeds and the database-backed ruleset / intent loaders.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from sqlalchemy import text
from db.database import init_db
from db.models import IntentPattern, IntentPatternOverride, RuleEvaluator
from services.registry import (
    RegistryConflictError,
    RegistryNotFoundError,
    RegistryService,
    RegistryValidationError,
    code_rule_catalog,
    validate_scope_keys,
)
from services.ruleset_loader import RulesetLoader, load_intent_patterns
from services.seeds import (
    BASE_INTENT_PATTERNS,
    RULE_METADATA,
    rule_seed_rows,
    seed_all,
    seed_intent_patterns,
    seed_rule_evaluators,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def registry(session):
    seed_rule_evaluators(session)
    return RegistryService(session)


# ─── Seeds ───────────────────────────────────────────────────────────────────

class TestSeeds:
    def test_every_rule_has_metadata(self):
        assert {r["rule_id"] for r in rule_seed_rows()} == set(RULE_METADATA)

    def test_base_library_covers_every_intent(self):
        assert len(BASE_INTENT_PATTERNS) == 40
        assert {p[0] for p in BASE_INTENT_PATTERNS} == {
            "informational", "commercial", "transactional", "navigational",
        }

    def test_rule_seed_is_idempotent(self, session):
        first = seed_rule_evaluators(session)
        second = seed_rule_evaluators(session)
        assert first.inserted == 12
        assert second.to_dict() == {"inserted": 0, "updated": 0, "unchanged": 12}

    def test_drifted_rows_are_updated(self, session):
        seed_rule_evaluators(session)
        row = session.query(RuleEvaluator).filter_by(rule_id="title_combo_coverage").one()
        row.weight_default = 0.9
        session.commit()
        report = seed_rule_evaluators(session)
        assert report.updated == 1
        assert row.weight_default == 0.30

    def test_intent_seed_is_idempotent(self, session):
        assert seed_intent_patterns(session).inserted == 40
        assert seed_intent_patterns(session).unchanged == 40
        assert session.query(IntentPattern).count() == 40

    def test_seed_all(self, session):
        reports = seed_all(session)
        assert reports["rules"].total == 12
        assert reports["intents"].total == 40

    def test_init_db_can_seed(self, db_engine, session):
        reports = init_db(bind=db_engine, seed=True)
        assert reports["rules"].inserted == 12
        assert session.query(RuleEvaluator).count() == 12
        assert init_db(bind=db_engine) == {}

    def test_sqlite_enforces_foreign_keys(self, session):
        assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1


# ─── Rule Evaluators ─────────────────────────────────────────────────────────

class TestRuleEvaluators:
    def test_list_filters(self, registry):
        assert len(registry.list_rule_evaluators()) == 12
        assert len(registry.list_rule_evaluators(scope="title")) == 4
        assert {r.family for r in registry.list_rule_evaluators(family="conversion")} == {"conversion"}

    def test_update(self, registry):
        row = registry.update_rule_evaluator("title_filler_penalty", {"weight_default": 0.2, "is_active": False})
        assert row.weight_default == 0.2
        assert len(registry.list_rule_evaluators()) == 11

    def test_update_rejects_unknown_fields(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.update_rule_evaluator("title_filler_penalty", {"rule_id": "x"})

    def test_update_rejects_bad_values(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.update_rule_evaluator("title_filler_penalty", {"severity_default": "extreme"})
        with pytest.raises(RegistryValidationError):
            registry.update_rule_evaluator("title_filler_penalty", {"weight_default": 1.5})
        with pytest.raises(RegistryValidationError):
            registry.update_rule_evaluator("title_filler_penalty", {"threshold_low": 0.9, "threshold_high": 0.1})

    def test_missing_rule(self, registry):
        with pytest.raises(RegistryNotFoundError):
            registry.get_rule_evaluator("nope")

    def test_code_catalog(self):
        catalog = code_rule_catalog()
        assert len(catalog) == 12
        assert catalog[0]["scope"] == "title"


class TestRuleOverrides:
    def test_most_specific_scope_wins(self, registry):
        registry.create_rule_override({"rule_id": "title_combo_coverage", "scope": "base", "weight_multiplier": 1.2})
        registry.create_rule_override({
            "rule_id": "title_combo_coverage", "scope": "vertical", "vertical": "finance",
            "weight_multiplier": 1.5, "severity_override": "critical",
        })
        effective = {e["rule_id"]: e for e in registry.effective_rule_evaluators(vertical="finance")}
        combo = effective["title_combo_coverage"]
        assert combo["weight_multiplier"] == 1.5
        assert combo["effective_weight"] == pytest.approx(0.45)
        assert combo["effective_severity"] == "critical"
        assert combo["override_scope"] == "vertical"

        base_only = {e["rule_id"]: e for e in registry.effective_rule_evaluators()}
        assert base_only["title_combo_coverage"]["weight_multiplier"] == 1.2

    def test_engine_shape(self, registry):
        registry.update_rule_evaluator("title_filler_penalty", {"is_active": False})
        overrides = registry.engine_rule_overrides()
        assert overrides["title_filler_penalty"]["is_active"] is False
        assert overrides["title_unique_keywords"]["weight"] == 0.30

    def test_validation(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.create_rule_override({"rule_id": "title_combo_coverage", "scope": "vertical"})
        with pytest.raises(RegistryValidationError):
            registry.create_rule_override({"rule_id": "title_combo_coverage", "weight_multiplier": 5})
        with pytest.raises(RegistryValidationError):
            registry.create_rule_override({"rule_id": "title_combo_coverage", "market": "us"})
        with pytest.raises(RegistryNotFoundError):
            registry.create_rule_override({"rule_id": "nope"})

    def test_update_bumps_version(self, registry):
        row = registry.create_rule_override({"rule_id": "title_combo_coverage", "weight_multiplier": 1.2})
        updated = registry.update_rule_override(row.id, {"weight_multiplier": 0.8})
        assert updated.version == 2
        assert updated.weight_multiplier == 0.8

    def test_delete(self, registry):
        row = registry.create_rule_override({"rule_id": "title_combo_coverage"})
        registry.delete_rule_override(row.id)
        assert registry.list_rule_overrides() == []
        with pytest.raises(RegistryNotFoundError):
            registry.delete_rule_override(row.id)

    def test_on_change_callback(self, session):
        seed_rule_evaluators(session)
        calls = []
        registry = RegistryService(session, on_change=lambda: calls.append(1))
        registry.create_rule_override({"rule_id": "title_combo_coverage"})
        assert calls


# ─── Generic Overrides ───────────────────────────────────────────────────────

class TestOverrides:
    def test_token_is_normalized(self, registry):
        row = registry.create_override("token_relevance", {"token": " Duolingo ", "relevance": 3})
        assert row.token == "duolingo"

    def test_required_fields(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.create_override("recommendation", {"recommendation_id": "x"})

    def test_payload_validation(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.create_override("token_relevance", {"token": "x", "relevance": 9})
        with pytest.raises(RegistryValidationError):
            registry.create_override("stopword", {"stopwords": "lite"})
        with pytest.raises(RegistryValidationError):
            registry.create_override("formula", {
                "formula_id": "metadata_overall_score", "payload": {"multiplier": 10},
            })

    def test_unknown_kind(self, registry):
        with pytest.raises(RegistryNotFoundError):
            registry.list_overrides("galaxy")

    def test_list_filters_by_scope(self, registry):
        registry.create_override("stopword", {"stopwords": ["lite"]})
        registry.create_override("stopword", {"stopwords": ["max"], "scope": "market", "market": "gb"})
        assert len(registry.list_overrides("stopword")) == 2
        assert len(registry.list_overrides("stopword", scope="market")) == 1

    def test_update_and_delete(self, registry):
        row = registry.create_override("kpi_weight", {"kpi_id": "urgency_signal", "weight_multiplier": 1.2})
        registry.update_override("kpi_weight", row.id, {"weight_multiplier": 1.4})
        assert row.weight_multiplier == 1.4
        registry.delete_override("kpi_weight", row.id)
        with pytest.raises(RegistryNotFoundError):
            registry.update_override("kpi_weight", row.id, {})

    def test_token_is_normalized_on_update(self, registry):
        row = registry.create_override("token_relevance", {"token": "budget", "relevance": 3})
        registry.update_override("token_relevance", row.id, {"token": " Savings "})
        assert row.token == "savings"


# ─── Intent Patterns ─────────────────────────────────────────────────────────

class TestIntentPatterns:
    def test_duplicate_in_same_scope_conflicts(self, registry):
        registry.create_intent_pattern({"pattern": "tutor", "intent_type": "informational"})
        with pytest.raises(RegistryConflictError):
            registry.create_intent_pattern({"pattern": "tutor", "intent_type": "commercial"})

    def test_same_pattern_in_other_scope(self, registry):
        registry.create_intent_pattern({"pattern": "tutor", "intent_type": "informational"})
        row = registry.create_intent_pattern({
            "pattern": "tutor", "intent_type": "commercial", "scope": "vertical", "vertical": "language_learning",
        })
        assert row.scope == "vertical"

    def test_validation(self, registry):
        with pytest.raises(RegistryValidationError):
            registry.create_intent_pattern({"pattern": "x", "intent_type": "curious"})
        with pytest.raises(RegistryValidationError):
            registry.create_intent_pattern({"pattern": "x", "intent_type": "commercial", "weight": 5})
        with pytest.raises(RegistryValidationError):
            registry.create_intent_pattern({"pattern": "([", "intent_type": "commercial", "is_regex": True})
        with pytest.raises(RegistryValidationError):
            registry.create_intent_pattern({"pattern": "x", "intent_type": "commercial", "scope": "app"})

    def test_list_ordered_by_priority(self, registry):
        registry.create_intent_pattern({"pattern": "low", "intent_type": "commercial", "priority": 10})
        registry.create_intent_pattern({"pattern": "high", "intent_type": "commercial", "priority": 190})
        assert [p.pattern for p in registry.list_intent_patterns()] == ["high", "low"]

    def test_update_and_delete(self, registry):
        row = registry.create_intent_pattern({"pattern": "tutor", "intent_type": "informational"})
        registry.update_intent_pattern(row.id, {"priority": 150})
        assert row.priority == 150
        registry.delete_intent_pattern(row.id)
        assert registry.list_intent_patterns() == []

    def test_rename_into_existing_pattern_conflicts(self, registry):
        registry.create_intent_pattern({"pattern": "how to", "intent_type": "informational"})
        row = registry.create_intent_pattern({"pattern": "learn", "intent_type": "informational"})
        with pytest.raises(RegistryConflictError):
            registry.update_intent_pattern(row.id, {"pattern": "how to"})
        assert sorted(p.pattern for p in registry.list_intent_patterns()) == ["how to", "learn"]


def test_scope_keys():
    validate_scope_keys({"scope": "client", "organization_id": "org-1"})
    with pytest.raises(RegistryValidationError):
        validate_scope_keys({"scope": "client"})
    with pytest.raises(RegistryValidationError):
        validate_scope_keys({"scope": "galaxy"})


# ─── Loaders ─────────────────────────────────────────────────────────────────

class TestRulesetLoader:
    def test_empty_database_is_code_ruleset(self, session_factory):
        ruleset = RulesetLoader(session_factory).load(vertical="finance", market="us")
        assert ruleset.source == "code"
        assert ruleset.vertical_id == "finance"

    def test_layers_merge_by_scope(self, session_factory, session):
        registry = RegistryService(session)
        registry.create_override("token_relevance", {"token": "budget", "relevance": 1})
        registry.create_override("token_relevance", {
            "token": "budget", "relevance": 3, "scope": "vertical", "vertical": "finance",
        })
        registry.create_override("stopword", {"stopwords": ["lite"]})
        registry.create_override("stopword", {"stopwords": ["max"], "scope": "market", "market": "gb"})

        ruleset = RulesetLoader(session_factory).load(vertical="finance", market="gb")
        assert ruleset.source == "database"
        assert ruleset.token_relevance_overrides == {"budget": 3}
        assert ruleset.stopwords == ["lite", "max"]

    def test_cache_and_invalidate(self, session_factory, session):
        clock = FakeClock()
        loader = RulesetLoader(session_factory, ttl_seconds=60, clock=clock)
        first = loader.load()
        RegistryService(session).create_override("stopword", {"stopwords": ["lite"]})
        assert loader.load() is first

        loader.invalidate()
        assert loader.load().stopwords == ["lite"]

    def test_cache_expires(self, session_factory):
        clock = FakeClock()
        loader = RulesetLoader(session_factory, ttl_seconds=60, clock=clock)
        first = loader.load()
        clock.now = 61
        assert loader.load() is not first

    def test_category_leak_warnings(self, session_factory):
        ruleset = RulesetLoader(session_factory).load(vertical="language_learning", category="Finance")
        assert "vertical_mismatch" in {w.type for w in ruleset.leak_warnings}

    def test_leak_warnings_follow_category(self, session_factory):
        loader = RulesetLoader(session_factory)
        finance = loader.load(vertical="language_learning", category="Finance")
        education = loader.load(vertical="language_learning", category="Education")
        assert "vertical_mismatch" in {w.type for w in finance.leak_warnings}
        assert "vertical_mismatch" not in {w.type for w in education.leak_warnings}
        assert loader.load(vertical="language_learning").leak_warnings == []


class TestIntentLoader:
    def test_fallback_when_empty(self, session):
        patterns, fallback = load_intent_patterns(session)
        assert fallback is True
        assert patterns

    def test_scoped_patterns(self, session):
        registry = RegistryService(session)
        registry.create_intent_pattern({"pattern": "learn", "intent_type": "informational"})
        registry.create_intent_pattern({
            "pattern": "invest", "intent_type": "transactional", "scope": "vertical", "vertical": "finance",
        })
        base, fallback = load_intent_patterns(session, use_cache=False)
        assert fallback is False
        assert [p.pattern for p in base] == ["learn"]

        finance, _ = load_intent_patterns(session, vertical="finance", use_cache=False)
        assert {p.pattern for p in finance} == {"learn", "invest"}

    def test_overrides_adjust_and_disable(self, session):
        registry = RegistryService(session)
        learn = registry.create_intent_pattern({"pattern": "learn", "intent_type": "informational", "weight": 1.0})
        guide = registry.create_intent_pattern({"pattern": "guide", "intent_type": "informational"})
        session.add(IntentPatternOverride(
            pattern_id=learn.id, scope="vertical", vertical="finance",
            weight_multiplier=1.5, priority_override=180,
        ))
        session.add(IntentPatternOverride(pattern_id=guide.id, scope="vertical", vertical="finance", is_active=False))
        session.commit()

        patterns, _ = load_intent_patterns(session, vertical="finance", use_cache=False)
        assert [p.pattern for p in patterns] == ["learn"]
        assert patterns[0].weight == pytest.approx(1.5)
        assert patterns[0].priority == 180
