"""
Pipeline runner: wires the agents together.

Architecture:
  audit:        AppMetadataAgent -> MetadataAuditAgent
  competitive:  AppMetadataAgent -> split(app, competitors) -> CompetitorGapAgent
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from agents.audit import MetadataAuditAgent
from agents.base import FunctionAgent, Orchestrator
from agents.competitors import CompetitiveInput, CompetitorGapAgent
from agents.metadata import AppMetadataAgent, MetadataRequest
from config.settings import settings
from models.schemas import AppMetadata, AuditBundle, CompetitiveAnalysis
from scoring.ruleset import MergedRuleSet
from services.ruleset_loader import RulesetLoader

logger = logging.getLogger(__name__)

RequestLike = Union[MetadataRequest, Dict[str, Any]]


class PipelineError(RuntimeError):
    def __init__(self, message: str, report: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.report = report or {}


def _as_request(value: RequestLike, mode: Optional[str]) -> RequestLike:
    if mode and isinstance(value, dict):
        return {**value, "mode": mode}
    return value


def run_audit_pipeline(
    request: RequestLike,
    mode: Optional[str] = None,
    ruleset: Optional[MergedRuleSet] = None,
    loader: Optional[RulesetLoader] = None,
    session_factory: Optional[Callable[[], Any]] = None,
    organization_id: Optional[str] = None,
) -> AuditBundle:
    """
    Fetch metadata for one app and audit it.

    Parameters
    ----------
    request : MetadataRequest | dict
        {app_id, mode?, country?, platform?, vertical?, metadata?}
    mode : str, optional
        Forces every fetch to 'mock' | 'itunes' | 'html' | 'manual'.
    ruleset / loader :
        Explicit ruleset wins; otherwise the loader resolves DB overrides;
        otherwise code defaults are used.
    """
    pipeline = Orchestrator([
        AppMetadataAgent(mode=mode),
        MetadataAuditAgent(
            ruleset=ruleset,
            loader=loader,
            session_factory=session_factory,
            organization_id=organization_id,
        ),
    ], name="audit")
    result = pipeline.execute(_as_request(request, mode))
    if not result.success:
        raise PipelineError(f"Audit pipeline failed at {result.agent_name}: {result.error}", pipeline.report())

    logger.info(pipeline.summary())
    return result.data


def run_competitive_pipeline(
    app: RequestLike,
    competitors: List[RequestLike],
    mode: Optional[str] = None,
    ruleset: Optional[MergedRuleSet] = None,
    density_threshold: float = settings.KEYWORD_DENSITY_THRESHOLD,
    max_gaps: int = settings.MAX_GAP_KEYWORDS,
) -> CompetitiveAnalysis:
    """Fetch the app and its competitors, then compute keyword gaps and scores."""
    if not competitors:
        raise PipelineError("Competitive analysis needs at least one competitor")

    def split(fetched: List[AppMetadata]) -> CompetitiveInput:
        return CompetitiveInput(app=fetched[0], competitors=fetched[1:])

    pipeline = Orchestrator([
        AppMetadataAgent(mode=mode),
        FunctionAgent("SplitCompetitors", split),
        CompetitorGapAgent(density_threshold=density_threshold, max_gaps=max_gaps, ruleset=ruleset),
    ], name="competitive")
    requests_ = [_as_request(r, mode) for r in [app, *competitors]]
    result = pipeline.execute(requests_)
    if not result.success:
        raise PipelineError(f"Competitive pipeline failed at {result.agent_name}: {result.error}", pipeline.report())

    logger.info(pipeline.summary())
    return result.data
