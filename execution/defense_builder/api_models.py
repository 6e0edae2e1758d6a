"""
Pydantic models for the Defense Builder FastAPI backend.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from .models import Complaint, ConversationTurn, EvidenceItem


class EvidenceInput(BaseModel):
    """An evidence descriptor supplied by the caller."""
    name: str = Field(..., min_length=1, max_length=500)
    type: str = ""
    content: Optional[str] = None

    def to_domain(self) -> EvidenceItem:
        return EvidenceItem(name=self.name, type=self.type, content=self.content)


class ConversationTurnInput(BaseModel):
    """A prior chat turn."""
    role: str = Field(..., pattern=r"^(user|assistant|system)$")
    content: str


class AnalyzeRequest(BaseModel):
    """Request body for the defense builder endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    complaint: Optional[str] = Field(None, max_length=100_000)
    evidence: list[EvidenceInput] = []
    additional_info: Optional[str] = Field(None, alias="additionalInfo", max_length=20_000)
    conversation_history: list[ConversationTurnInput] = Field(
        default_factory=list, alias="conversationHistory"
    )

    def to_complaint(self) -> Complaint:
        return Complaint(
            text=self.complaint or None,
            conversation_history=tuple(
                ConversationTurn(role=t.role, content=t.content)
                for t in self.conversation_history
            ),
            additional_info=self.additional_info or None,
        )

    def to_evidence(self) -> list[EvidenceItem]:
        return [e.to_domain() for e in self.evidence]


class ErrorResponse(BaseModel):
    """Failure envelope."""
    success: bool = False
    error: str


class RateLimitedResponse(ErrorResponse):
    """Failure envelope for HTTP 429 from the rate governor."""
    retry_after: int = Field(..., alias="retryAfter")


class HealthResponse(BaseModel):
    """Response body for health check."""
    status: str
    version: str
    database: str
    embeddings: str
    reasoning: str
