"""
Metadata Audit Agent
---------------------
Resolves the effective ruleset for an app's context and runs the
metadata audit engine over it.

Ruleset resolution order:
  1. explicit ruleset passed to the agent
  2. RulesetLoader (DB overrides merged over code defaults)
  3. code defaults for the app's vertical / market
"""

import logging
from typing import Any, Callable, List, Optional, Union

from agents.base import Agent
from models.schemas import AppMetadata, AuditBundle
from scoring.audit import MetadataAuditEngine
from scoring.ruleset import MergedRuleSet, code_ruleset
from services.ruleset_loader import RulesetLoader, load_intent_patterns

logger = logging.getLogger(__name__)


class MetadataAuditAgent(Agent):
    """
    Input:  AppMetadata | List[AppMetadata]
    Output: AuditBundle | List[AuditBundle]
    """

    def __init__(
        self,
        ruleset: Optional[MergedRuleSet] = None,
        loader: Optional[RulesetLoader] = None,
        session_factory: Optional[Callable[[], Any]] = None,
        organization_id: Optional[str] = None,
        rule_overrides: Optional[dict] = None,
    ):
        super().__init__("MetadataAuditAgent")
        self.ruleset = ruleset
        self.loader = loader
        self.session_factory = session_factory or (loader.session_factory if loader else None)
        self.organization_id = organization_id
        self.rule_overrides = rule_overrides

    def resolve_ruleset(self, metadata: AppMetadata) -> MergedRuleSet:
        if self.ruleset is not None:
            return self.ruleset
        if self.loader is not None:
            return self.loader.load(
                vertical=metadata.vertical,
                market=metadata.locale,
                organization_id=self.organization_id,
                app_id=metadata.app_id,
                category=metadata.category,
            )
        return code_ruleset(metadata.vertical, metadata.locale)

    def _intent_patterns(self, metadata: AppMetadata):
        if self.session_factory is None:
            return None, None
        session = self.session_factory()
        try:
            return load_intent_patterns(
                session,
                vertical=metadata.vertical,
                market=metadata.locale,
                organization_id=self.organization_id,
                app_id=metadata.app_id,
            )
        finally:
            session.close()

    def audit(self, metadata: AppMetadata) -> AuditBundle:
        ruleset = self.resolve_ruleset(metadata)
        patterns, fallback = self._intent_patterns(metadata)
        engine = MetadataAuditEngine(
            ruleset=ruleset,
            rule_overrides=self.rule_overrides,
            intent_patterns=patterns,
            intent_fallback_mode=fallback,
        )
        result = engine.evaluate(metadata)
        self.logger.info(
            f"Audited '{metadata.title}': {result.overall_score}/100 (ruleset {ruleset.source})"
        )
        return AuditBundle(metadata=metadata, result=result, ruleset=ruleset)

    def run(self, data: Union[AppMetadata, List[AppMetadata]]):
        if isinstance(data, list):
            return [self.audit(m) for m in data]
        return self.audit(data)
