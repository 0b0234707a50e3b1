"""
Competitor Gap Agent
---------------------
Compares an app's indexable metadata (title + subtitle) with a set of
competitors and surfaces keyword gaps.

Algorithm:
  1. Tokenize every title + subtitle, drop stopwords (ruleset-aware).
  2. Coverage share = |ours ∩ theirs| / |theirs| over the union of
     competitor keywords.
  3. Competitor density of keyword k = (# competitors using k) / N.
  4. Gap candidates: density >= tau and k absent from our title/subtitle.
  5. Weight each candidate by its mean TF-IDF over competitor metadata
     (title + subtitle + description), rank by weight then density and
     quantile-normalize the weights to a [0,1] gap score.
  6. Audit every competitor with the same ruleset for a score table.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer

from agents.base import Agent
from config.settings import settings
from models.schemas import AppMetadata, CompetitiveAnalysis, CompetitorScore, KeywordGap
from scoring.audit import MetadataAuditEngine
from scoring.text import analyze_text, get_stopwords

logger = logging.getLogger(__name__)


@dataclass
class CompetitiveInput:
    app: AppMetadata
    competitors: List[AppMetadata] = field(default_factory=list)


# ─── Normalization ───────────────────────────────────────────────────────────


def quantile_normalize(values: List[float]) -> List[float]:
    """
    Quantile rank normalization: maps values to [0, 1] rank positions.
    Robust to heavy tails and outliers.
    """
    if len(values) == 0:
        return []
    arr = np.array(values)
    n = len(arr)
    ranks = arr.argsort().argsort()
    return [float(r) for r in ranks / max(n - 1, 1)]


# ─── Keyword Statistics ──────────────────────────────────────────────────────


def indexable_keywords(metadata: AppMetadata, stopwords: Set[str]) -> Set[str]:
    return set(analyze_text(f"{metadata.title} {metadata.subtitle}", stopwords).keywords)


def competitor_density(keyword_sets: List[Set[str]]) -> Dict[str, float]:
    if not keyword_sets:
        return {}
    counts: Dict[str, int] = {}
    for keywords in keyword_sets:
        for kw in keywords:
            counts[kw] = counts.get(kw, 0) + 1
    n = len(keyword_sets)
    return {kw: c / n for kw, c in counts.items()}


def tfidf_weights(documents: List[str], stopwords: Set[str]) -> Dict[str, float]:
    """Mean TF-IDF weight per keyword across the documents."""
    docs = [d for d in documents if analyze_text(d, stopwords).keywords]
    if not docs:
        return {}
    tfidf = TfidfVectorizer(
        tokenizer=lambda text: analyze_text(text, stopwords).keywords,
        lowercase=False,
        token_pattern=None,
    )
    matrix = tfidf.fit_transform(docs)
    vocab = tfidf.get_feature_names_out()
    means = np.asarray(matrix.mean(axis=0)).flatten()
    return {term: float(w) for term, w in zip(vocab, means)}


# ─── CompetitorGapAgent ──────────────────────────────────────────────────────


class CompetitorGapAgent(Agent):
    """
    Input:  CompetitiveInput (or dict with 'app' and 'competitors')
    Output: CompetitiveAnalysis
    """

    def __init__(
        self,
        density_threshold: float = settings.KEYWORD_DENSITY_THRESHOLD,
        max_gaps: int = settings.MAX_GAP_KEYWORDS,
        ruleset: Any = None,
    ):
        super().__init__("CompetitorGapAgent")
        self.density_threshold = density_threshold
        self.max_gaps = max_gaps
        self.ruleset = ruleset

    def run(self, data) -> CompetitiveAnalysis:
        if isinstance(data, dict):
            data = CompetitiveInput(app=data["app"], competitors=list(data.get("competitors", [])))
        app, competitors = data.app, data.competitors

        stopwords = get_stopwords(getattr(self.ruleset, "stopwords", None))
        ours = indexable_keywords(app, stopwords)
        theirs = [indexable_keywords(c, stopwords) for c in competitors]
        union: Set[str] = set().union(*theirs) if theirs else set()

        coverage = len(ours & union) / len(union) if union else 0.0
        density = competitor_density(theirs)
        weights = tfidf_weights(
            [f"{c.title} {c.subtitle} {c.description}" for c in competitors], stopwords
        )

        candidates = [
            kw for kw, d in density.items()
            if d >= self.density_threshold and kw not in ours
        ]
        candidates.sort(key=lambda kw: (-weights.get(kw, 0.0), -density[kw], kw))
        candidates = candidates[:self.max_gaps]
        scores = quantile_normalize([weights.get(kw, 0.0) for kw in candidates])

        gaps = [
            KeywordGap(
                keyword=kw,
                competitor_density=density[kw],
                tfidf_weight=weights.get(kw, 0.0),
                gap_score=score,
                competitors=[c.name for c, kws in zip(competitors, theirs) if kw in kws],
            )
            for kw, score in zip(candidates, scores)
        ]

        engine = MetadataAuditEngine(ruleset=self.ruleset)
        app_result = engine.evaluate(app)
        competitor_scores = []
        for comp in competitors:
            result = engine.evaluate(comp)
            competitor_scores.append(CompetitorScore(
                app_id=comp.app_id,
                app_name=comp.name,
                overall_score=result.overall_score,
                title_score=result.elements["title"].score,
                subtitle_score=result.elements["subtitle"].score,
            ))
        competitor_scores.sort(key=lambda c: -c.overall_score)

        self.logger.info(
            f"{app.app_id}: coverage {coverage:.0%} vs {len(competitors)} competitors, "
            f"{len(gaps)} keyword gaps"
        )
        return CompetitiveAnalysis(
            app_id=app.app_id,
            app_score=app_result.overall_score,
            keyword_coverage_share=coverage,
            shared_keywords=sorted(ours & union),
            gaps=gaps,
            competitor_scores=competitor_scores,
        )
