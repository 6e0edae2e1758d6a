"""
Verdict Engine

Scores the employer's risk of losing (0-100), picks fight / settle /
needs_more_info, and asks for a defense bill or settlement advice to match.

The engine trusts the model on risk_level/risk_score agreement and on which
optional draft it fills in; the response envelope only surfaces the draft
that matches the recommendation.
"""

import json
import logging

from .models import Claim, EvidenceItem, GapAnalysis, Verdict
from .prompts import GENERATE_VERDICT_TOOL, get_prompts
from .gap_analysis import format_claims, format_evidence
from .errors import ReasoningParseError

logger = logging.getLogger(__name__)


class VerdictEngine:
    """Runs the generate_verdict tool."""

    def __init__(self, reasoning_client, language: str = "fa"):
        self.reasoning = reasoning_client
        self.language = language
        self._prompts = get_prompts(language)

    def default_verdict(self) -> Verdict:
        return Verdict(
            risk_score=50,
            risk_level="medium",
            recommendation="needs_more_info",
            reasoning=self._prompts["verdict_incomplete"],
        )

    def build_prompt(
        self,
        claims: list[Claim],
        gap_analysis: GapAnalysis,
        evidence: list[EvidenceItem],
    ) -> str:
        p = self._prompts
        missing = gap_analysis.missing_evidence
        return p["verdict"].format(
            claims=format_claims(claims),
            evidence_analysis=json.dumps(
                [g.to_dict() for g in gap_analysis.evidence_analysis],
                ensure_ascii=False, indent=2,
            ),
            evidence=format_evidence(evidence, p),
            missing_evidence=", ".join(missing) if missing else p["none"],
        )

    def generate(
        self,
        claims: list[Claim],
        gap_analysis: GapAnalysis,
        evidence: list[EvidenceItem],
    ) -> Verdict:
        """
        Raises:
            ReasoningRateLimitedError: service saturated; not retried
            ReasoningUnavailableError: any other upstream failure
        """
        prompt = self.build_prompt(claims, gap_analysis, evidence)

        try:
            data = self.reasoning.submit(
                [{"role": "user", "content": prompt}], GENERATE_VERDICT_TOOL
            )
            verdict = Verdict.from_dict(data)
        except ReasoningParseError as e:
            logger.error(f"Error parsing verdict, using default: {e}")
            return self.default_verdict()
        except (ValueError, TypeError) as e:
            logger.error(f"Malformed verdict, using default: {e}")
            return self.default_verdict()

        logger.info(f"Verdict: Risk {verdict.risk_score}%, Recommendation: {verdict.recommendation}")
        return verdict
