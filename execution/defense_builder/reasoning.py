"""
Reasoning Client for Schema-Constrained Generation

A narrow port: submit chat messages plus one tool (JSON schema) and get back
the tool-call arguments as a dict. The default adapter talks to any
OpenAI-compatible chat completions endpoint (NVIDIA NIM by default) and
forces the tool call with tool_choice.

Upstream failures are translated into the ReasoningError hierarchy so
callers can tell saturation (429) apart from other failures. No retries
are issued here; calls may be metered.
"""

import os
import json
import logging
from typing import Optional, Protocol

from .errors import (
    ConfigurationError,
    ReasoningError,
    ReasoningParseError,
    ReasoningRateLimitedError,
    ReasoningUnavailableError,
)

logger = logging.getLogger(__name__)


class ReasoningClient(Protocol):
    """Port for schema-constrained generation."""

    def submit(self, messages: list[dict], tool: dict) -> dict:
        """
        Args:
            messages: Chat messages ({"role", "content"})
            tool: {"name", "description", "parameters": <JSON schema>}

        Returns:
            The tool-call arguments, parsed

        Raises:
            ReasoningRateLimitedError, ReasoningUnavailableError, ReasoningParseError
        """
        ...


def parse_tool_arguments(response, tool_name: str) -> dict:
    """Extract and decode the first tool call's arguments from a completion."""
    try:
        message = response.choices[0].message
        tool_calls = message.tool_calls or []
    except (AttributeError, IndexError, TypeError) as e:
        raise ReasoningParseError(f"Malformed completion for {tool_name}: {e}", tool_name)

    if not tool_calls:
        raise ReasoningParseError(f"No tool call returned for {tool_name}", tool_name)

    arguments = getattr(tool_calls[0].function, "arguments", None)
    if not arguments:
        raise ReasoningParseError(f"Empty tool arguments for {tool_name}", tool_name)

    try:
        data = json.loads(arguments)
    except (json.JSONDecodeError, TypeError) as e:
        raise ReasoningParseError(f"Invalid JSON in {tool_name} arguments: {e}", tool_name)

    if not isinstance(data, dict):
        raise ReasoningParseError(f"{tool_name} arguments are not an object", tool_name)
    return data


class OpenAIReasoningClient:
    """
    Reasoning client backed by the OpenAI SDK.

    Usage:
        client = OpenAIReasoningClient(model="qwen/qwen3-235b-a22b")
        args = client.submit(messages, EXTRACT_CLAIMS_TOOL)
    """

    def __init__(
        self,
        model: str = "qwen/qwen3-235b-a22b",
        base_url: str = "https://integrate.api.nvidia.com/v1",
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        client=None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

        if self._client is None:
            key = api_key or os.getenv("REASONING_API_KEY") or os.getenv("NVIDIA_API_KEY")
            if key:
                from openai import OpenAI
                self._client = OpenAI(
                    base_url=base_url,
                    api_key=key,
                    timeout=timeout,
                    max_retries=0,
                )
                logger.info(f"Reasoning client initialized with model {model}")
            else:
                logger.warning(
                    "REASONING_API_KEY / NVIDIA_API_KEY not found. Analysis requests will fail."
                )

    @classmethod
    def from_builder_config(cls, config) -> "OpenAIReasoningClient":
        return cls(
            model=config.reasoning_model,
            base_url=config.reasoning_base_url,
            timeout=config.reasoning_timeout,
            temperature=config.reasoning_temperature,
        )

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def submit(self, messages: list[dict], tool: dict) -> dict:
        if self._client is None:
            raise ConfigurationError("Reasoning client not initialized. Check REASONING_API_KEY.")

        import openai

        tool_name = tool["name"]
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=[{"type": "function", "function": tool}],
                tool_choice={"type": "function", "function": {"name": tool_name}},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.RateLimitError as e:
            logger.error(f"{tool_name}: reasoning service saturated: {e}")
            raise ReasoningRateLimitedError(str(e), tool_name) from e
        except openai.APITimeoutError as e:
            logger.error(f"{tool_name}: reasoning service timed out")
            raise ReasoningUnavailableError(f"Timeout: {e}", tool_name) from e
        except openai.APIStatusError as e:
            logger.error(f"{tool_name}: reasoning service returned {e.status_code}: {e}")
            if e.status_code == 429:
                raise ReasoningRateLimitedError(str(e), tool_name) from e
            raise ReasoningUnavailableError(str(e), tool_name) from e
        except openai.APIError as e:
            logger.error(f"{tool_name}: reasoning service error: {type(e).__name__}: {e}")
            raise ReasoningUnavailableError(str(e), tool_name) from e

        return parse_tool_arguments(response, tool_name)


def get_reasoning_client(builder_config=None) -> ReasoningClient:
    """Factory for the default reasoning client."""
    if builder_config is None:
        return OpenAIReasoningClient()
    return OpenAIReasoningClient.from_builder_config(builder_config)


__all__ = [
    "ReasoningClient",
    "ReasoningError",
    "OpenAIReasoningClient",
    "parse_tool_arguments",
    "get_reasoning_client",
]
