"""
Defense Builder - Employer-side Labor Claim Analysis

This module provides:
- Claim extraction from a complaint (and prior conversation)
- Statute retrieval over a pgvector store of legal provisions
- Evidence gap analysis with follow-up questions
- A risk-scored fight / settle / needs_more_info verdict
- A fixed-window rate governor for the HTTP endpoint
"""

from .config import DefenseBuilderConfig
from .models import Claim, Complaint, EvidenceItem, GapAnalysis, StatuteMatch, Verdict
from .embeddings import EmbeddingService, VoyageEmbeddingService
from .statute_store import StatuteStore
from .retriever import StatuteRetriever
from .reasoning import OpenAIReasoningClient
from .rate_limiter import RateLimiter
from .pipeline import DefenseBuilderPipeline, DisplayPhase, select_display_phase

__all__ = [
    "DefenseBuilderConfig",
    "Claim",
    "Complaint",
    "EvidenceItem",
    "GapAnalysis",
    "StatuteMatch",
    "Verdict",
    "EmbeddingService",
    "VoyageEmbeddingService",
    "StatuteStore",
    "StatuteRetriever",
    "OpenAIReasoningClient",
    "RateLimiter",
    "DefenseBuilderPipeline",
    "DisplayPhase",
    "select_display_phase",
]

__version__ = "0.1.0"
