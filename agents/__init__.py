from .base import Agent, AgentResult, FunctionAgent, Orchestrator
from .metadata import AppMetadataAgent, MetadataFetchError, MetadataRequest
from .audit import MetadataAuditAgent
from .competitors import CompetitiveInput, CompetitorGapAgent

__all__ = [
    "Agent", "AgentResult", "FunctionAgent", "Orchestrator",
    "AppMetadataAgent", "MetadataFetchError", "MetadataRequest",
    "MetadataAuditAgent",
    "CompetitiveInput", "CompetitorGapAgent",
]
