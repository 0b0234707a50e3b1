"""
End-to-end pipeline tests using the mock metadata catalog.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from agents.base import AgentResult, FunctionAgent, Orchestrator
from agents.competitors import (
    CompetitiveInput,
    CompetitorGapAgent,
    competitor_density,
    quantile_normalize,
)
from agents.metadata import AppMetadataAgent
from models.schemas import AppMetadata, AuditBundle
from utils.pipeline import PipelineError, run_audit_pipeline, run_competitive_pipeline

DUOLINGO = "570060128"
COMPETITORS = ["1039455640", "1090779584", "1260192681"]


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def competitive_input():
    fetched = AppMetadataAgent(mode="mock").run([{"app_id": a} for a in [DUOLINGO, *COMPETITORS]])
    return CompetitiveInput(app=fetched[0], competitors=fetched[1:])


@pytest.fixture
def analysis(competitive_input):
    return CompetitorGapAgent().run(competitive_input)


# ─── Orchestrator ────────────────────────────────────────────────────────────

class TestOrchestrator:
    def test_outputs_chain(self):
        pipeline = Orchestrator([
            FunctionAgent("double", lambda x: x * 2),
            FunctionAgent("inc", lambda x: x + 1),
        ])
        result = pipeline.execute(5)
        assert result.success
        assert result.data == 11
        assert result.agent_name == "inc"
        assert len(pipeline.run_history) == 2

    def test_stops_on_failure(self):
        pipeline = Orchestrator([
            FunctionAgent("boom", lambda x: 1 / 0),
            FunctionAgent("never", lambda x: x),
        ])
        result = pipeline.execute(1)
        assert not result.success
        assert result.metadata["error_type"] == "ZeroDivisionError"
        assert len(pipeline.run_history) == 1
        assert pipeline.failed == [result]

    def test_continue_returns_last_success(self):
        pipeline = Orchestrator([
            FunctionAgent("first", lambda x: x + 1),
            FunctionAgent("boom", lambda x: 1 / 0),
        ], stop_on_failure=False)
        result = pipeline.execute(1)
        assert result.agent_name == "first"
        assert result.data == 2
        assert "boom" in pipeline.summary()

    def test_result_dict(self):
        result = FunctionAgent("noop", lambda x: x).execute("data")
        data = result.to_dict()
        assert data["agent"] == "noop"
        assert data["success"] is True
        assert data["error"] is None
        assert data["items"] == 1
        assert isinstance(result, AgentResult)

    def test_item_count(self):
        assert FunctionAgent("batch", lambda x: [x, x, x]).execute(1).item_count == 3
        assert FunctionAgent("none", lambda x: None).execute(1).item_count == 0

    def test_report(self):
        pipeline = Orchestrator([
            FunctionAgent("fetch", lambda x: [x, x]),
            FunctionAgent("boom", lambda x: 1 / 0),
        ], name="audit")
        pipeline.execute(1)
        report = pipeline.report()
        assert report["pipeline"] == "audit"
        assert report["succeeded"] == 1
        assert report["failed"] == ["boom"]
        assert [s["items"] for s in report["steps"]] == [2, 0]
        assert report["elapsed_seconds"] is not None


# ─── Gap Helpers ─────────────────────────────────────────────────────────────

class TestGapHelpers:
    def test_quantile_normalize(self):
        assert quantile_normalize([]) == []
        assert quantile_normalize([5.0]) == [0.0]
        assert quantile_normalize([3.0, 1.0, 2.0]) == [1.0, 0.0, 0.5]

    def test_density(self):
        density = competitor_density([{"budget", "money"}, {"budget"}])
        assert density == {"budget": 1.0, "money": 0.5}
        assert competitor_density([]) == {}


# ─── Competitor Gap Agent ────────────────────────────────────────────────────

class TestCompetitorGapAgent:
    def test_coverage_share(self, analysis):
        # 4 of the 12 distinct competitor keywords appear in our title/subtitle
        assert analysis.keyword_coverage_share == pytest.approx(4 / 12)
        assert analysis.shared_keywords == ["french", "language", "learn", "spanish"]

    def test_gaps(self, analysis):
        gaps = {g.keyword: g for g in analysis.gaps}
        assert set(gaps) == {"german", "languages", "speak"}
        assert gaps["german"].competitors == ["Babbel", "Busuu"]
        assert gaps["speak"].competitors == ["Babbel", "Mondly"]
        assert all(g.competitor_density == pytest.approx(2 / 3) for g in analysis.gaps)
        assert sorted(g.gap_score for g in analysis.gaps) == [0.0, 0.5, 1.0]

    def test_gaps_ranked_by_weight(self, analysis):
        weights = [g.tfidf_weight for g in analysis.gaps]
        assert weights == sorted(weights, reverse=True)

    def test_strict_threshold(self, competitive_input):
        analysis = CompetitorGapAgent(density_threshold=1.0).run(competitive_input)
        assert analysis.gaps == []

    def test_max_gaps(self, competitive_input):
        analysis = CompetitorGapAgent(max_gaps=1).run(competitive_input)
        assert analysis.gap_count == 1

    def test_competitor_scores_sorted(self, analysis):
        scores = [c.overall_score for c in analysis.competitor_scores]
        assert len(scores) == 3
        assert scores == sorted(scores, reverse=True)
        assert all(0 <= s <= 100 for s in scores)

    def test_dict_input(self, competitive_input):
        analysis = CompetitorGapAgent().run({
            "app": competitive_input.app,
            "competitors": competitive_input.competitors,
        })
        assert analysis.app_id == DUOLINGO

    def test_no_competitors(self):
        app = AppMetadata(app_id="1", title="Budget Planner", subtitle="Track money")
        analysis = CompetitorGapAgent().run(CompetitiveInput(app=app))
        assert analysis.keyword_coverage_share == 0.0
        assert analysis.gaps == []
        assert analysis.competitor_scores == []


# ─── Pipelines ───────────────────────────────────────────────────────────────

class TestPipelines:
    def test_audit_pipeline(self):
        bundle = run_audit_pipeline({"app_id": DUOLINGO}, mode="mock")
        assert isinstance(bundle, AuditBundle)
        assert bundle.metadata.vertical == "language_learning"
        assert bundle.ruleset.source == "code"
        assert 0 <= bundle.result.overall_score <= 100
        assert bundle.to_dict()["metadata"]["app_id"] == DUOLINGO

    def test_audit_pipeline_manual(self):
        bundle = run_audit_pipeline({
            "app_id": "42",
            "mode": "manual",
            "vertical": "finance",
            "metadata": {"title": "Budget Buddy: Money Tracker", "subtitle": "Save money & track spending"},
        })
        assert bundle.metadata.vertical == "finance"
        assert bundle.result.overall_score > 0

    def test_audit_pipeline_failure(self):
        with pytest.raises(PipelineError) as exc:
            run_audit_pipeline({"app_id": "1"}, mode="mock")
        assert "AppMetadataAgent" in str(exc.value)
        assert exc.value.report["pipeline"] == "audit"
        assert exc.value.report["failed"] == ["AppMetadataAgent"]

    def test_competitive_pipeline(self):
        analysis = run_competitive_pipeline(
            {"app_id": DUOLINGO},
            [{"app_id": a} for a in COMPETITORS],
            mode="mock",
        )
        assert analysis.app_id == DUOLINGO
        assert {g.keyword for g in analysis.gaps} == {"german", "languages", "speak"}
        assert "3 keyword gaps" in analysis.summary()

    def test_competitive_pipeline_needs_competitors(self):
        with pytest.raises(PipelineError):
            run_competitive_pipeline({"app_id": DUOLINGO}, [], mode="mock")
