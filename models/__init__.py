"""
Core data models for the ASO Insight pipeline.
"""

from .schemas import (
    AppMetadata,
    AuditBundle,
    KeywordGap,
    CompetitorScore,
    CompetitiveAnalysis,
)

__all__ = [
    "AppMetadata",
    "AuditBundle",
    "KeywordGap",
    "CompetitorScore",
    "CompetitiveAnalysis",
]
