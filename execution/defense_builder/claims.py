"""
Claim Extractor

Normalizes a free-text complaint (plus any prior conversation) into an
ordered list of claims via the extract_claims tool. The result is never
empty: malformed entries are dropped, and when nothing usable remains a
single "unknown" sentinel claim lets the later phases still run.
"""

import logging
from typing import Optional

from .models import Claim, Complaint, UNKNOWN_CLAIM_TYPE
from .prompts import EXTRACT_CLAIMS_TOOL, get_prompts
from .errors import ReasoningParseError

logger = logging.getLogger(__name__)


class ClaimExtractor:
    """Extracts claims from a complaint using the reasoning client."""

    def __init__(self, reasoning_client, language: str = "fa"):
        self.reasoning = reasoning_client
        self.language = language
        self._prompts = get_prompts(language)

    def sentinel_claim(self) -> Claim:
        return Claim(
            claim_type=UNKNOWN_CLAIM_TYPE,
            description=self._prompts["unknown_claim_description"],
        )

    def build_messages(self, complaint: Complaint, notes: Optional[str] = None) -> list[dict]:
        info = notes if notes is not None else complaint.additional_info
        prompt = self._prompts["extract_claims"].format(
            complaint=complaint.text or self._prompts["continue_conversation"],
            additional_info=self._prompts["additional_info"].format(info=info) if info else "",
        )
        history = [turn.to_message() for turn in complaint.conversation_history]
        return history + [{"role": "user", "content": prompt}]

    def extract(self, complaint: Complaint, notes: Optional[str] = None) -> list[Claim]:
        """
        Extract claims in the order the model produced them.

        Raises:
            ReasoningError: the service itself failed (parse failures are absorbed)
        """
        messages = self.build_messages(complaint, notes)

        try:
            data = self.reasoning.submit(messages, EXTRACT_CLAIMS_TOOL)
            raw_claims = data.get("claims")
            if not isinstance(raw_claims, list):
                raise ReasoningParseError("claims is not a list", EXTRACT_CLAIMS_TOOL["name"])
        except ReasoningParseError as e:
            logger.error(f"Error parsing claims, using sentinel claim: {e}")
            return [self.sentinel_claim()]

        claims = []
        for idx, raw in enumerate(raw_claims):
            try:
                claims.append(Claim.from_dict(raw))
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed claim #{idx + 1}: {e}")

        if not claims:
            logger.warning("Model returned no claims, using sentinel claim")
            return [self.sentinel_claim()]

        logger.info(f"Extracted {len(claims)} claims from complaint")
        return claims
