"""
Error taxonomy for the Defense Builder pipeline.

Fatal errors abort the request and surface as {"success": false, "error": ...};
recoverable ones (parse failures, single-claim retrieval failures) are caught
by the phase that raised them and replaced with a conservative default.
"""

from typing import Optional


class DefenseBuilderError(Exception):
    """Base class for all pipeline errors."""

    # Key into prompts.ERROR_MESSAGES for the user-facing message
    message_key: str = "generic"
    status_code: int = 500


class InputValidationError(DefenseBuilderError):
    """Request lacks both a complaint and a conversation history."""

    message_key = "invalid_input"
    status_code = 400


class ConfigurationError(DefenseBuilderError):
    """A required credential or setting is missing."""

    message_key = "configuration"
    status_code = 500


class ReasoningError(DefenseBuilderError):
    """The schema-constrained generation service failed."""

    message_key = "generic"
    status_code = 500

    def __init__(self, message: str, tool_name: Optional[str] = None):
        super().__init__(message)
        self.tool_name = tool_name


class ReasoningRateLimitedError(ReasoningError):
    """The generation service is saturated (HTTP 429 upstream)."""

    message_key = "service_busy"
    status_code = 429


class ReasoningUnavailableError(ReasoningError):
    """Timeout, connection failure, or non-2xx response from the service."""


class ReasoningParseError(ReasoningError):
    """The service answered but the structured output was missing or malformed."""


class RetrievalError(DefenseBuilderError):
    """Statute lookup for a single claim failed."""

    def __init__(self, message: str, claim_type: Optional[str] = None, outage: bool = False):
        super().__init__(message)
        self.claim_type = claim_type
        # True when the embedding service or database could not be reached at all
        self.outage = outage


class RetrievalUnavailableError(DefenseBuilderError):
    """Statute search is unreachable: every claim failed with an outage."""

    message_key = "retrieval_unavailable"
    status_code = 500


class RateLimitExceededError(DefenseBuilderError):
    """Caller exceeded its request budget for the current window."""

    message_key = "rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after: int, identifier: str = ""):
        super().__init__(message)
        self.retry_after = retry_after
        self.identifier = identifier
