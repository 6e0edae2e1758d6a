"""
Evidence Gap Analyzer

Cross-references claims, retrieved statutes and the employer's evidence to
find what the law requires but the file lacks, and produces follow-up
questions. Any failure degrades to the conservative default
(no analysis, no questions, can_proceed=False) instead of a false success.
"""

import logging

from .models import Claim, EvidenceItem, GapAnalysis, StatuteMatch
from .prompts import ANALYZE_EVIDENCE_GAP_TOOL, get_prompts
from .errors import ReasoningError

logger = logging.getLogger(__name__)


def format_claims(claims: list[Claim]) -> str:
    return "\n".join(f"{i + 1}. {c.claim_type}: {c.description}" for i, c in enumerate(claims))


def format_evidence(evidence: list[EvidenceItem], prompts: dict) -> str:
    if not evidence:
        return prompts["no_evidence"]
    return "\n".join(f"{i + 1}. {e.describe()}" for i, e in enumerate(evidence))


class EvidenceGapAnalyzer:
    """Runs the analyze_evidence_gap tool over claims, statutes and evidence."""

    def __init__(self, reasoning_client, language: str = "fa", statute_prompt_limit: int = 500):
        self.reasoning = reasoning_client
        self.language = language
        self.statute_prompt_limit = statute_prompt_limit
        self._prompts = get_prompts(language)

    def build_prompt(
        self,
        claims: list[Claim],
        statutes: list[StatuteMatch],
        evidence: list[EvidenceItem],
    ) -> str:
        p = self._prompts
        statute_lines = "\n\n".join(
            p["statute_line"].format(
                article=s.article_number or p["unknown_article"],
                category=s.category,
                content=s.content[:self.statute_prompt_limit],
            )
            for s in statutes
        )
        evidence_contents = "".join(
            p["evidence_content"].format(name=e.name, content=e.content or p["evidence_placeholder"])
            for e in evidence
        )
        return p["gap_analysis"].format(
            claims=format_claims(claims),
            statutes=statute_lines,
            evidence=format_evidence(evidence, p),
            evidence_contents=evidence_contents,
        )

    def analyze(
        self,
        claims: list[Claim],
        statutes: list[StatuteMatch],
        evidence: list[EvidenceItem],
    ) -> GapAnalysis:
        """Never raises for upstream or parse failures; see module docstring."""
        prompt = self.build_prompt(claims, statutes, evidence)

        try:
            data = self.reasoning.submit(
                [{"role": "user", "content": prompt}], ANALYZE_EVIDENCE_GAP_TOOL
            )
            analysis = GapAnalysis.from_dict(data)
        except ReasoningError as e:
            logger.error(f"Gap analysis failed, using conservative default: {e}")
            return GapAnalysis.conservative_default()
        except (ValueError, TypeError) as e:
            logger.error(f"Error parsing gap analysis, using conservative default: {e}")
            return GapAnalysis.conservative_default()

        logger.info(
            f"Gap Analysis complete. Can proceed: {analysis.can_proceed}, "
            f"Questions: {len(analysis.follow_up_questions)}"
        )
        return analysis
