"""
Domain data classes for the Defense Builder pipeline.

Request-scoped and immutable once built. Each class knows how to build
itself from the loosely-typed dicts returned by the reasoning service
(from_dict) and how to render the response envelope shape (to_dict).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


UNKNOWN_CLAIM_TYPE = "unknown"

RISK_LEVELS = ("low", "medium", "high", "critical")
RECOMMENDATIONS = ("fight", "settle", "needs_more_info")


def _string_list(value) -> list[str]:
    """Coerce a model-provided list into a list of strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Expected a list, got {type(value).__name__}")
    return [str(v) for v in value if v is not None]


def _parse_entries(entry_cls, entries: list, label: str) -> list:
    """Build each entry with entry_cls.from_dict, dropping the malformed ones."""
    parsed = []
    for idx, entry in enumerate(entries):
        try:
            parsed.append(entry_cls.from_dict(entry))
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed {label} #{idx + 1}: {e}")
    return parsed


@dataclass(frozen=True)
class ConversationTurn:
    """A prior chat turn forwarded to the claim extractor."""
    role: str
    content: str

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Complaint:
    """Raw complaint text plus optional prior conversation turns."""
    text: Optional[str] = None
    conversation_history: tuple[ConversationTurn, ...] = ()
    additional_info: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.conversation_history


@dataclass(frozen=True)
class EvidenceItem:
    """A caller-supplied evidence descriptor."""
    name: str
    type: str = ""
    content: Optional[str] = None

    def describe(self) -> str:
        return f"{self.name} ({self.type})"


@dataclass(frozen=True)
class Claim:
    """A single legally cognizable assertion extracted from the complaint."""
    claim_type: str
    description: str
    amount_claimed: Optional[str] = None

    @property
    def search_query(self) -> str:
        return f"{self.claim_type} {self.description}"

    @classmethod
    def from_dict(cls, data: dict) -> "Claim":
        if not isinstance(data, dict):
            raise ValueError("Claim entry is not an object")
        claim_type = data.get("claim_type")
        description = data.get("description")
        if not claim_type or description is None:
            raise ValueError("Claim entry missing claim_type or description")
        amount = data.get("amount_claimed")
        return cls(
            claim_type=str(claim_type),
            description=str(description),
            amount_claimed=str(amount) if amount not in (None, "") else None,
        )

    def to_dict(self) -> dict:
        result = {"claim_type": self.claim_type, "description": self.description}
        if self.amount_claimed is not None:
            result["amount_claimed"] = self.amount_claimed
        return result


@dataclass(frozen=True)
class StatuteMatch:
    """A legal provision retrieved for a claim via vector similarity."""
    claim_type: str
    article_number: Optional[str]
    category: str
    content: str
    similarity: float

    @property
    def dedup_key(self) -> tuple:
        return (self.article_number, self.category)

    def to_dict(self) -> dict:
        return {
            "claim_type": self.claim_type,
            "article_number": self.article_number,
            "category": self.category,
            "content": self.content,
            "similarity": self.similarity,
        }


@dataclass(frozen=True)
class EvidenceGap:
    """Required vs. provided evidence for one claim."""
    claim_type: str
    required_evidence: list[str] = field(default_factory=list)
    provided_evidence: list[str] = field(default_factory=list)
    missing_evidence: list[str] = field(default_factory=list)
    legal_basis: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "EvidenceGap":
        if not isinstance(data, dict):
            raise ValueError("Evidence analysis entry is not an object")
        return cls(
            claim_type=str(data.get("claim_type", "")),
            required_evidence=_string_list(data.get("required_evidence")),
            provided_evidence=_string_list(data.get("provided_evidence")),
            missing_evidence=_string_list(data.get("missing_evidence")),
            legal_basis=str(data.get("legal_basis") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "claim_type": self.claim_type,
            "required_evidence": list(self.required_evidence),
            "provided_evidence": list(self.provided_evidence),
            "missing_evidence": list(self.missing_evidence),
            "legal_basis": self.legal_basis,
        }


@dataclass(frozen=True)
class FollowUpQuestion:
    """A clarifying question for missing evidence."""
    question: str
    reason: str = ""
    related_article: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "FollowUpQuestion":
        if not isinstance(data, dict) or not data.get("question"):
            raise ValueError("Follow-up question entry missing question")
        return cls(
            question=str(data["question"]),
            reason=str(data.get("reason") or ""),
            related_article=str(data.get("related_article") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "question": self.question,
            "reason": self.reason,
            "related_article": self.related_article,
        }


@dataclass(frozen=True)
class GapAnalysis:
    """Evidence gap analysis across all claims."""
    evidence_analysis: list[EvidenceGap] = field(default_factory=list)
    follow_up_questions: list[FollowUpQuestion] = field(default_factory=list)
    can_proceed: bool = False

    @classmethod
    def conservative_default(cls) -> "GapAnalysis":
        return cls(evidence_analysis=[], follow_up_questions=[], can_proceed=False)

    @classmethod
    def from_dict(cls, data: dict) -> "GapAnalysis":
        if not isinstance(data, dict):
            raise ValueError("Gap analysis is not an object")
        analysis = data.get("evidence_analysis") or []
        questions = data.get("follow_up_questions") or []
        if not isinstance(analysis, list) or not isinstance(questions, list):
            raise ValueError("Gap analysis lists are malformed")
        can_proceed = data.get("can_proceed")
        if not isinstance(can_proceed, bool):
            raise ValueError("can_proceed must be a boolean")
        return cls(
            evidence_analysis=_parse_entries(EvidenceGap, analysis, "evidence analysis"),
            follow_up_questions=_parse_entries(FollowUpQuestion, questions, "follow-up question"),
            can_proceed=can_proceed,
        )

    @property
    def missing_evidence(self) -> list[str]:
        return [item for gap in self.evidence_analysis for item in gap.missing_evidence]

    def to_dict(self) -> dict:
        return {
            "evidenceAnalysis": [g.to_dict() for g in self.evidence_analysis],
            "followUpQuestions": [q.to_dict() for q in self.follow_up_questions],
            "canProceed": self.can_proceed,
        }


@dataclass(frozen=True)
class Verdict:
    """Risk assessment and strategic recommendation."""
    risk_score: float
    risk_level: str
    recommendation: str
    reasoning: str
    key_strengths: list[str] = field(default_factory=list)
    key_weaknesses: list[str] = field(default_factory=list)
    defense_bill: Optional[str] = None
    settlement_advice: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Verdict":
        if not isinstance(data, dict):
            raise ValueError("Verdict is not an object")
        try:
            score = float(data["risk_score"])
        except (KeyError, TypeError, ValueError):
            raise ValueError("risk_score missing or not a number")
        risk_level = data.get("risk_level")
        recommendation = data.get("recommendation")
        if isinstance(risk_level, str):
            risk_level = risk_level.strip().lower()
        if isinstance(recommendation, str):
            recommendation = recommendation.strip().lower()
        if risk_level not in RISK_LEVELS:
            raise ValueError(f"Unknown risk_level: {risk_level!r}")
        if recommendation not in RECOMMENDATIONS:
            raise ValueError(f"Unknown recommendation: {recommendation!r}")
        return cls(
            risk_score=min(max(score, 0.0), 100.0),
            risk_level=risk_level,
            recommendation=recommendation,
            reasoning=str(data.get("reasoning") or ""),
            key_strengths=_string_list(data.get("key_strengths")),
            key_weaknesses=_string_list(data.get("key_weaknesses")),
            defense_bill=data.get("defense_bill") or None,
            settlement_advice=data.get("settlement_advice") or None,
        )

    def to_dict(self) -> dict:
        # Optional drafts are only surfaced for the recommendation they belong to
        result = {
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "recommendation": self.recommendation,
            "reasoning": self.reasoning,
            "keyStrengths": list(self.key_strengths),
            "keyWeaknesses": list(self.key_weaknesses),
        }
        if self.recommendation == "fight" and self.defense_bill:
            result["defenseBill"] = self.defense_bill
        if self.recommendation == "settle" and self.settlement_advice:
            result["settlementAdvice"] = self.settlement_advice
        return result
