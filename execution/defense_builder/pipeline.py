"""
Defense Builder Pipeline Orchestrator

Runs one analysis request through three stages:

    AUDIT         extract claims, retrieve statutes per claim
    GAP_ANALYSIS  compare what the law requires with the evidence supplied
    VERDICT       score the risk and recommend fight / settle / needs_more_info

The verdict is always computed, even when the gap analysis says more
evidence is needed; whether to pause and ask the user is the caller's call
(see select_display_phase). Nothing is kept between requests.
"""

import time
import logging
from enum import Enum
from typing import Iterable, Optional
from dataclasses import dataclass, field

from .config import DefenseBuilderConfig
from .models import (
    Claim,
    Complaint,
    EvidenceItem,
    GapAnalysis,
    StatuteMatch,
    Verdict,
    UNKNOWN_CLAIM_TYPE,
)
from .prompts import get_error_message
from .claims import ClaimExtractor
from .gap_analysis import EvidenceGapAnalyzer
from .verdict import VerdictEngine
from .retriever import StatuteRetriever
from .metrics import get_metrics_collector
from .errors import (
    ConfigurationError,
    DefenseBuilderError,
    InputValidationError,
    ReasoningError,
    ReasoningRateLimitedError,
)

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    AUDIT = "audit"
    GAP_ANALYSIS = "gap_analysis"
    VERDICT = "verdict"


class DisplayPhase(str, Enum):
    """What a client should be showing for a request."""
    UPLOAD = "upload"
    ANALYZING = "analyzing"
    GAP_ANALYSIS = "gap_analysis"
    VERDICT = "verdict"


# Message key used when a reasoning failure at a given stage is fatal
_STAGE_FAILURE_KEYS = {
    PipelineStage.AUDIT: "claims_failed",
    PipelineStage.GAP_ANALYSIS: "generic",
    PipelineStage.VERDICT: "verdict_failed",
}


@dataclass
class PipelineResult:
    """Outcome of one pipeline run, success or failure."""
    success: bool
    claims: list[Claim] = field(default_factory=list)
    relevant_laws: list[StatuteMatch] = field(default_factory=list)
    gap_analysis: Optional[GapAnalysis] = None
    verdict: Optional[Verdict] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    status_code: int = 200
    stage: PipelineStage = PipelineStage.AUDIT
    retrieval_failures: int = 0
    degraded_phases: list[str] = field(default_factory=list)
    latency_ms: float = 0

    @classmethod
    def failure(
        cls,
        error: Exception,
        language: str,
        stage: PipelineStage = PipelineStage.AUDIT,
    ) -> "PipelineResult":
        if isinstance(error, ReasoningError) and not isinstance(error, ReasoningRateLimitedError):
            key = _STAGE_FAILURE_KEYS[stage]
            status = 500
        elif isinstance(error, DefenseBuilderError):
            key = error.message_key
            status = error.status_code
        else:
            key = "generic"
            status = 500
        return cls(
            success=False,
            error=get_error_message(key, language),
            error_type=type(error).__name__,
            status_code=status,
            stage=stage,
        )

    def to_dict(self) -> dict:
        """Response envelope."""
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "claims": [c.to_dict() for c in self.claims],
            "relevantLaws": [s.to_dict() for s in self.relevant_laws],
            "gapAnalysis": self.gap_analysis.to_dict(),
            "verdict": self.verdict.to_dict(),
        }


def select_display_phase(result: Optional[PipelineResult]) -> DisplayPhase:
    """
    Pick the phase a client should render for a result.

    None means the request is still in flight.
    """
    if result is None:
        return DisplayPhase.ANALYZING
    if not result.success:
        return DisplayPhase.UPLOAD
    gap = result.gap_analysis
    if gap is not None and not gap.can_proceed and gap.follow_up_questions:
        return DisplayPhase.GAP_ANALYSIS
    return DisplayPhase.VERDICT


def describe_phase(phase: DisplayPhase) -> str:
    if phase is DisplayPhase.UPLOAD:
        return "Waiting for a complaint and evidence"
    if phase is DisplayPhase.ANALYZING:
        return "Analyzing claims and retrieving statutes"
    if phase is DisplayPhase.GAP_ANALYSIS:
        return "More evidence requested before acting on the verdict"
    if phase is DisplayPhase.VERDICT:
        return "Verdict ready"
    raise ValueError(f"Unhandled display phase: {phase!r}")


class DefenseBuilderPipeline:
    """
    Orchestrates claim extraction, statute retrieval, gap analysis and verdict.

    Usage:
        pipeline = DefenseBuilderPipeline(retriever, reasoning_client, config)
        result = pipeline.run(Complaint(text="..."), evidence)
        body = result.to_dict()
    """

    def __init__(
        self,
        retriever: StatuteRetriever,
        reasoning_client,
        config: Optional[DefenseBuilderConfig] = None,
        metrics=None,
    ):
        self.config = config or DefenseBuilderConfig()
        self.retriever = retriever
        self.reasoning = reasoning_client
        self.metrics = metrics or get_metrics_collector()

        language = self.config.language
        self.claim_extractor = ClaimExtractor(reasoning_client, language)
        self.gap_analyzer = EvidenceGapAnalyzer(
            reasoning_client, language, statute_prompt_limit=self.config.prompt_content_limit
        )
        self.verdict_engine = VerdictEngine(reasoning_client, language)

    def _check_configured(self):
        if not getattr(self.retriever.embeddings, "is_configured", True):
            raise ConfigurationError("Embedding service is not configured")
        if not getattr(self.reasoning, "is_configured", True):
            raise ConfigurationError("Reasoning client is not configured")

    def run(
        self,
        complaint: Complaint,
        evidence: Iterable[EvidenceItem] = (),
        client_id: str = "anonymous",
    ) -> PipelineResult:
        """
        Run the full analysis.

        Never raises: fatal errors come back as a failed PipelineResult
        carrying a localized message and an HTTP status code.
        """
        evidence = list(evidence)
        start_time = time.time()

        with self.metrics.track_run(client_id) as tracker:
            state = {"stage": PipelineStage.AUDIT}
            try:
                result = self._run(complaint, evidence, state)
            except DefenseBuilderError as e:
                logger.error(f"Defense builder failed at {state['stage'].value}: {type(e).__name__}: {e}")
                result = PipelineResult.failure(e, self.config.language, state["stage"])
            except Exception as e:
                logger.exception(f"Unexpected defense builder error at {state['stage'].value}: {e}")
                result = PipelineResult.failure(e, self.config.language, state["stage"])

            result.latency_ms = (time.time() - start_time) * 1000
            tracker.set_result(result)

        return result

    def _run(self, complaint: Complaint, evidence: list[EvidenceItem], state: dict) -> PipelineResult:
        if complaint is None or complaint.is_empty:
            raise InputValidationError("complaint document or conversation history is required")
        self._check_configured()

        degraded = []

        # ============ PHASE 1: AUDIT ============
        preview = (complaint.text or "")[:100]
        logger.info(f"Phase 1: Audit - extracting claims from complaint: {preview!r}")
        claims = self.claim_extractor.extract(complaint)
        if len(claims) == 1 and claims[0].claim_type == UNKNOWN_CLAIM_TYPE:
            degraded.append(PipelineStage.AUDIT.value)

        outcome = self.retriever.retrieve(claims)
        statutes = outcome.matches
        if outcome.failure_count:
            degraded.append("retrieval")

        # ============ PHASE 2: GAP ANALYSIS ============
        state["stage"] = PipelineStage.GAP_ANALYSIS
        logger.info(f"Phase 2: Evidence gap analysis ({len(statutes)} statutes, {len(evidence)} evidence items)")
        gap_analysis = self.gap_analyzer.analyze(claims, statutes, evidence)
        if gap_analysis == GapAnalysis.conservative_default():
            degraded.append(PipelineStage.GAP_ANALYSIS.value)

        # ============ PHASE 3: VERDICT ============
        state["stage"] = PipelineStage.VERDICT
        logger.info("Phase 3: Generating verdict")
        verdict = self.verdict_engine.generate(claims, gap_analysis, evidence)
        if verdict == self.verdict_engine.default_verdict():
            degraded.append(PipelineStage.VERDICT.value)

        if degraded:
            logger.warning(f"Completed with degraded phases: {', '.join(degraded)}")

        return PipelineResult(
            success=True,
            claims=claims,
            relevant_laws=statutes[:self.config.max_relevant_laws],
            gap_analysis=gap_analysis,
            verdict=verdict,
            stage=PipelineStage.VERDICT,
            retrieval_failures=outcome.failure_count,
            degraded_phases=degraded,
        )
