"""
Metadata Audit Engine
----------------------
Runs the rule registry over title, subtitle and description and assembles
a full audit:

  overall     = title * 0.65 + subtitle * 0.35   (formula metadata_overall_score)
  conversion  = description rules                (formula description_conversion_score)

plus keyword/combo/intent/hook coverage, KPIs, dimension scores, vertical
recommendations and ruleset leak warnings.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from scoring.combos import ComboCoverage, analyze_combo_coverage
from scoring.formulas import (
    brand_balance_score,
    evaluate_threshold,
    evaluate_weighted,
)
from scoring.hooks import HookAnalysis, detect_hooks
from scoring.intent import (
    FALLBACK_PATTERNS,
    CombinedSearchIntentCoverage,
    IntentPatternConfig,
    compute_combined_search_intent_coverage,
)
from scoring.kpi import KpiEngine, KpiEngineResult
from scoring.leaks import detect_vertical_leak, detect_vertical_mismatch
from scoring.recommendations import VerticalRecommendation, build_vertical_recommendations
from scoring.ruleset import clamp_multiplier
from scoring.rules import RULE_REGISTRY, EvaluationContext, RuleConfig, RuleResult
from scoring.text import analyze_text, get_stopwords, tokenize_for_aso

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _round_floats(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 2)
    if isinstance(value, dict):
        return {k: _round_floats(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_round_floats(v) for v in value]
    return value


# ─── Data Structures ─────────────────────────────────────────────────────────


@dataclass
class ElementScore:
    element: str
    score: int
    rule_results: List[RuleResult]
    weights: Dict[str, float] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.rule_results if r.passed)

    def to_dict(self) -> Dict:
        return {
            "element": self.element,
            "score": self.score,
            "passed": self.passed_count,
            "total": len(self.rule_results),
            "weights": self.weights,
            "rules": [r.to_dict() for r in self.rule_results],
            "recommendations": self.recommendations,
            "insights": self.insights,
        }


@dataclass
class AuditResult:
    overall_score: int
    elements: Dict[str, ElementScore]
    description_conversion_score: int
    keyword_coverage: Dict[str, Any]
    combo_coverage: ComboCoverage
    intent_coverage: CombinedSearchIntentCoverage
    hook_analysis: HookAnalysis
    kpis: KpiEngineResult
    dimension_scores: Dict[str, float]
    vertical_recommendations: List[VerticalRecommendation] = field(default_factory=list)
    leak_warnings: List[Any] = field(default_factory=list)
    ruleset_source: str = "code"
    vertical: Optional[str] = None
    audited_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def recommendations(self) -> List[str]:
        out = []
        for element in ("title", "subtitle", "description"):
            if element in self.elements:
                out.extend(self.elements[element].recommendations)
        return out

    def to_dict(self) -> Dict:
        return _round_floats({
            "overall_score": self.overall_score,
            "description_conversion_score": self.description_conversion_score,
            "elements": {k: e.to_dict() for k, e in self.elements.items()},
            "recommendations": self.recommendations,
            "keyword_coverage": self.keyword_coverage,
            "combo_coverage": self.combo_coverage.to_dict(),
            "intent_coverage": self.intent_coverage.to_dict(),
            "hook_analysis": self.hook_analysis.to_dict(),
            "kpis": self.kpis.to_dict(),
            "dimension_scores": self.dimension_scores,
            "vertical_recommendations": [r.to_dict() for r in self.vertical_recommendations],
            "leak_warnings": [w.to_dict() if hasattr(w, "to_dict") else w for w in self.leak_warnings],
            "ruleset_source": self.ruleset_source,
            "vertical": self.vertical,
            "audited_at": self.audited_at.isoformat(),
        })

    def summary(self) -> str:
        lines = [
            "=" * 70,
            "  METADATA AUDIT REPORT",
            "=" * 70,
            f"  Overall Score   : {self.overall_score}/100",
            f"  Conversion Score: {self.description_conversion_score}/100",
            f"  KPI Score       : {self.kpis.overall_score}/100",
            f"  Ruleset         : {self.ruleset_source} ({self.vertical or 'base'})",
            "=" * 70,
            "",
            "📊 ELEMENTS",
            "-" * 70,
        ]
        for element in self.elements.values():
            lines.append(f"  {element.element:<12} {element.score:>3}/100  ({element.passed_count}/{len(element.rule_results)} rules passed)")
            for rule in element.rule_results:
                mark = "✅" if rule.passed else "❌"
                lines.append(f"     {mark} {rule.rule_id:<32} {rule.score:>5.0f}  {rule.message}")

        lines += ["", "🧭 DIMENSIONS", "-" * 70]
        for name, score in self.dimension_scores.items():
            lines.append(f"  {name:<16} {score:>6.1f}")

        if self.recommendations:
            lines += ["", "💡 RECOMMENDATIONS", "-" * 70]
            lines.extend(f"  • {r}" for r in self.recommendations)

        if self.vertical_recommendations:
            lines += ["", "🎯 VERTICAL ADVICE", "-" * 70]
            lines.extend(f"  [{r.severity}] {r.message}" for r in self.vertical_recommendations)

        if self.leak_warnings:
            lines += ["", "⚠️  RULESET WARNINGS", "-" * 70]
            lines.extend(f"  [{w.severity}] {w.message}" for w in self.leak_warnings)

        lines.append("=" * 70)
        return "\n".join(lines)


# ─── Engine ──────────────────────────────────────────────────────────────────


class MetadataAuditEngine:
    """
    Stateless evaluator. `rule_overrides` maps rule_id to registry fields
    (weight, weight_multiplier, is_active, is_deprecated) and wins over the
    ruleset's own rule overrides.
    """

    def __init__(
        self,
        ruleset: Any = None,
        rule_overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        intent_patterns: Optional[List[IntentPatternConfig]] = None,
        intent_fallback_mode: Optional[bool] = None,
    ):
        self.ruleset = ruleset
        self.rule_overrides: Dict[str, Dict[str, Any]] = {}
        if ruleset is not None:
            self.rule_overrides.update(getattr(ruleset, "rule_overrides", None) or {})
        for rule_id, override in (rule_overrides or {}).items():
            self.rule_overrides[rule_id] = {**self.rule_overrides.get(rule_id, {}), **override}

        self.intent_patterns = intent_patterns or FALLBACK_PATTERNS
        self.intent_fallback_mode = (
            intent_patterns is None if intent_fallback_mode is None else intent_fallback_mode
        )
        self.stopwords = get_stopwords(getattr(ruleset, "stopwords", None) if ruleset else None)
        self.relevance_overrides = dict(getattr(ruleset, "token_relevance_overrides", None) or {}) if ruleset else {}

    # ── rule weighting ──

    def _active_rules(self, element: str) -> Dict[str, float]:
        weights = {}
        for rule in RULE_REGISTRY[element].rules:
            override = self.rule_overrides.get(rule.rule_id, {})
            if override.get("is_active") is False or override.get("is_deprecated"):
                continue
            base = override.get("weight")
            base = rule.weight if base is None else float(base)
            weights[rule.rule_id] = base * clamp_multiplier(override.get("weight_multiplier"))
        total = sum(weights.values())
        if total <= 0:
            return {k: 0.0 for k in weights}
        return {k: v / total for k, v in weights.items()}

    def _run_rule(self, rule: RuleConfig, ctx: EvaluationContext) -> RuleResult:
        try:
            return rule.evaluator(ctx)
        except Exception as e:
            logger.error(f"Rule '{rule.rule_id}' failed on {ctx.element}: {e}")
            return RuleResult(rule.rule_id, False, 0, f"Rule evaluation failed: {e}")

    def evaluate_element(self, element: str, text: str, title_tokens: Optional[List[str]] = None) -> ElementScore:
        config = RULE_REGISTRY[element]
        ctx = EvaluationContext(
            element=element,
            text=text or "",
            tokens=tokenize_for_aso(text),
            stopwords=self.stopwords,
            relevance_overrides=self.relevance_overrides,
            max_length=config.max_length,
            title_tokens=title_tokens or [],
        )
        weights = self._active_rules(element)
        results, recommendations, insights = [], [], []
        score = 0.0
        for rule in config.rules:
            if rule.rule_id not in weights:
                continue
            result = self._run_rule(rule, ctx)
            results.append(result)
            score += result.score * weights[rule.rule_id]
            if not result.passed:
                recommendations.append(f"[{element.upper()}] {result.message}")
            elif result.evidence:
                insights.append(f"{rule.name}: {result.message}")

        return ElementScore(
            element=element,
            score=int(round(score)),
            rule_results=results,
            weights={k: round(v, 4) for k, v in weights.items()},
            recommendations=recommendations,
            insights=insights,
        )

    # ── full audit ──

    def evaluate(self, metadata: Any) -> AuditResult:
        title = _field(metadata, "title", "") or ""
        subtitle = _field(metadata, "subtitle", "") or ""
        description = _field(metadata, "description", "") or ""
        platform = _field(metadata, "platform", "ios") or "ios"
        locale = _field(metadata, "locale", "us") or "us"
        category = _field(metadata, "category")
        vertical = _field(metadata, "vertical") or (
            getattr(self.ruleset, "vertical_id", None) if self.ruleset else None
        )

        title_tokens = tokenize_for_aso(title)
        elements = {
            "title": self.evaluate_element("title", title),
            "subtitle": self.evaluate_element("subtitle", subtitle, title_tokens),
            "description": self.evaluate_element("description", description, title_tokens),
        }

        title_score = elements["title"].score
        subtitle_score = elements["subtitle"].score
        overall = evaluate_weighted(
            "metadata_overall_score",
            {"title_score": title_score, "subtitle_score": subtitle_score},
            self.ruleset,
        )
        overall = int(round(max(0.0, min(100.0, overall))))

        conversion_values = {r.rule_id: r.score for r in elements["description"].rule_results}
        conversion = evaluate_weighted("description_conversion_score", conversion_values, self.ruleset)
        conversion = int(round(max(0.0, min(100.0, conversion))))

        combos = analyze_combo_coverage(title, subtitle, self.stopwords, self.relevance_overrides)
        subtitle_tokens = tokenize_for_aso(subtitle)
        intent = compute_combined_search_intent_coverage(
            title_tokens, subtitle_tokens, self.intent_patterns, self.intent_fallback_mode
        )
        hooks = detect_hooks(
            f"{title} {subtitle}",
            vertical,
            getattr(self.ruleset, "hook_overrides", None) if self.ruleset else None,
            getattr(self.ruleset, "hook_keywords", None) if self.ruleset else None,
        )
        kpis = KpiEngine.evaluate(
            title, subtitle, platform=platform, locale=locale,
            combo_coverage=combos, intent_coverage=intent, ruleset=self.ruleset,
        )

        branded = combos.count("branded")
        generic = combos.count("generic")
        dimensions = {
            "relevance": evaluate_weighted(
                "metadata_dimension_relevance",
                {"title_score": title_score, "subtitle_score": subtitle_score},
                self.ruleset,
            ),
            "learning": evaluate_threshold("metadata_dimension_learning", generic),
            "structure": evaluate_weighted("metadata_dimension_structure", {"title_score": title_score}, self.ruleset),
            "brand_balance": brand_balance_score(branded, generic),
        }

        leak_warnings = list(getattr(self.ruleset, "leak_warnings", None) or []) if self.ruleset else []
        # warnings are category-specific; the audited category wins
        if self.ruleset is not None and category:
            leak_warnings = detect_vertical_leak(self.ruleset, category)
            mismatch = detect_vertical_mismatch(self.ruleset, category)
            if mismatch:
                leak_warnings.append(mismatch)

        result = AuditResult(
            overall_score=overall,
            elements=elements,
            description_conversion_score=conversion,
            keyword_coverage=self._keyword_coverage(title, subtitle, description),
            combo_coverage=combos,
            intent_coverage=intent,
            hook_analysis=hooks,
            kpis=kpis,
            dimension_scores=dimensions,
            vertical_recommendations=build_vertical_recommendations(
                vertical, hooks, title_tokens + subtitle_tokens, self.ruleset
            ),
            leak_warnings=leak_warnings,
            ruleset_source=getattr(self.ruleset, "source", "code") if self.ruleset else "code",
            vertical=vertical,
        )
        logger.info(
            f"Audit complete: overall={overall} title={title_score} "
            f"subtitle={subtitle_score} conversion={conversion}"
        )
        return result

    def _keyword_coverage(self, title: str, subtitle: str, description: str) -> Dict[str, Any]:
        title_analysis = analyze_text(title, self.stopwords)
        subtitle_analysis = analyze_text(subtitle, self.stopwords)
        description_analysis = analyze_text(description, self.stopwords)

        title_keywords = list(dict.fromkeys(title_analysis.keywords))
        seen = set(title_keywords)
        subtitle_new = [k for k in dict.fromkeys(subtitle_analysis.keywords) if k not in seen]
        seen.update(subtitle_new)
        description_new = [k for k in dict.fromkeys(description_analysis.keywords) if k not in seen]

        return {
            "total_unique_keywords": len(seen) + len(description_new),
            "title_keywords": title_keywords,
            "subtitle_new_keywords": subtitle_new,
            "description_new_keywords": description_new[:50],
            "title_ignored_count": len(title_analysis.ignored),
            "subtitle_ignored_count": len(subtitle_analysis.ignored),
            "description_ignored_count": len(description_analysis.ignored),
        }
