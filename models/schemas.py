"""
Core data models / schemas for the ASO Insight pipeline.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Dict, Any
from datetime import datetime


# ---------------------------------------------------------------------------
# App metadata
# ---------------------------------------------------------------------------

@dataclass
class AppMetadata:
    app_id: str
    title: str
    subtitle: str = ""
    description: str = ""
    platform: str = "ios"               # ios | android
    locale: str = "us"
    app_name: Optional[str] = None
    developer: Optional[str] = None
    category: Optional[str] = None      # store category, e.g. "Education"
    vertical: Optional[str] = None      # ruleset vertical, e.g. "language_learning"
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    icon_url: Optional[str] = None
    source: str = "manual"              # manual | mock | itunes | html
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return self.app_name or self.title

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["fetched_at"] = self.fetched_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppMetadata":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != "fetched_at"}
        known.setdefault("app_id", data.get("app_id") or "manual")
        known.setdefault("title", data.get("title") or "")
        for key in ("subtitle", "description"):
            if known.get(key) is None:
                known[key] = ""
        return cls(**known)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

@dataclass
class AuditBundle:
    metadata: AppMetadata
    result: Any                         # scoring.audit.AuditResult
    ruleset: Any = None                 # scoring.ruleset.MergedRuleSet

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "audit": self.result.to_dict(),
            "ruleset": self.ruleset.to_dict() if self.ruleset is not None else None,
        }


# ---------------------------------------------------------------------------
# Competitive analysis
# ---------------------------------------------------------------------------

@dataclass
class KeywordGap:
    keyword: str
    competitor_density: float           # share of competitors using it
    tfidf_weight: float                 # mean TF-IDF across competitor metadata
    gap_score: float                    # quantile-normalised, [0,1]
    competitors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "competitor_density": round(self.competitor_density, 4),
            "tfidf_weight": round(self.tfidf_weight, 4),
            "gap_score": round(self.gap_score, 4),
            "competitors": self.competitors,
        }


@dataclass
class CompetitorScore:
    app_id: str
    app_name: str
    overall_score: int
    title_score: int
    subtitle_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompetitiveAnalysis:
    app_id: str
    app_score: int
    keyword_coverage_share: float       # our keywords / union of competitor keywords
    shared_keywords: List[str]
    gaps: List[KeywordGap]
    competitor_scores: List[CompetitorScore]
    executed_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def gap_count(self) -> int:
        return len(self.gaps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app_id": self.app_id,
            "app_score": self.app_score,
            "keyword_coverage_share": round(self.keyword_coverage_share, 4),
            "shared_keywords": self.shared_keywords,
            "gaps": [g.to_dict() for g in self.gaps],
            "competitor_scores": [c.to_dict() for c in self.competitor_scores],
            "executed_at": self.executed_at.isoformat(),
        }

    def summary(self) -> str:
        lines = [
            f"Competitive analysis for {self.app_id}: score {self.app_score}, "
            f"coverage {self.keyword_coverage_share:.0%}, {self.gap_count} keyword gaps",
        ]
        for gap in self.gaps[:10]:
            lines.append(
                f"  - {gap.keyword:<20} density={gap.competitor_density:.0%} score={gap.gap_score:.2f}"
            )
        for comp in self.competitor_scores:
            lines.append(f"  {comp.app_name:<30} {comp.overall_score:>3}/100")
        return "\n".join(lines)
