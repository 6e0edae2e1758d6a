"""
Configuration for the Defense Builder pipeline

Holds model, retrieval and rate-limit settings. Language presets mirror the
prompts available in prompts.py; everything can be overridden from the
environment via DefenseBuilderConfig.from_env().
"""

import os
from dataclasses import dataclass
from typing import Optional


# Supported prompt/message languages
SUPPORTED_LANGUAGES = {
    "fa": {
        "name": "Persian",
        "chars_per_token": 3,
    },
    "en": {
        "name": "English",
        "chars_per_token": 4,
    },
}

DEFAULT_LANGUAGE = "fa"

VALID_RATE_LIMIT_BACKENDS = frozenset({"memory", "postgres"})


@dataclass
class DefenseBuilderConfig:
    """Pipeline configuration."""
    language: str = DEFAULT_LANGUAGE

    # Embeddings
    embedding_provider: str = "voyage"
    embedding_model: str = "voyage-multilingual-2"
    embedding_dimensions: int = 1024

    # Reasoning (OpenAI-compatible chat completions with tool calling)
    reasoning_model: str = "qwen/qwen3-235b-a22b"
    reasoning_base_url: str = "https://integrate.api.nvidia.com/v1"
    reasoning_timeout: float = 120.0
    reasoning_temperature: float = 0.2

    # Statute retrieval
    match_threshold: float = 0.4
    match_count: int = 3
    category_filter: Optional[str] = None
    statute_content_limit: int = 1000
    prompt_content_limit: int = 500
    max_relevant_laws: int = 5
    retrieval_workers: int = 4
    deduplicate_statutes: bool = False

    # Rate limiting: 5 requests per minute per caller (expensive operation)
    rate_limit_window_ms: int = 60000
    rate_limit_max_requests: int = 5
    rate_limit_backend: str = "memory"

    @classmethod
    def for_language(cls, language: str) -> "DefenseBuilderConfig":
        """
        Factory method returning defaults for a given language.

        Args:
            language: ISO 639-1 code ("fa" or "en")

        Returns:
            DefenseBuilderConfig with appropriate defaults
        """
        if language == "en":
            return cls(
                language="en",
                embedding_provider="voyage",
                embedding_model="voyage-law-2",
            )

        return cls(
            language=DEFAULT_LANGUAGE,
            embedding_provider="voyage",
            embedding_model="voyage-multilingual-2",
        )

    @classmethod
    def from_env(cls) -> "DefenseBuilderConfig":
        """Build a config from DEFENSE_BUILDER_* environment variables."""
        config = cls.for_language(os.getenv("DEFENSE_BUILDER_LANGUAGE", DEFAULT_LANGUAGE))

        config.embedding_provider = os.getenv(
            "DEFENSE_BUILDER_EMBEDDING_PROVIDER", config.embedding_provider
        )
        config.embedding_model = os.getenv(
            "DEFENSE_BUILDER_EMBEDDING_MODEL", config.embedding_model
        )
        config.embedding_dimensions = int(os.getenv(
            "DEFENSE_BUILDER_EMBEDDING_DIMENSIONS", str(config.embedding_dimensions)
        ))
        config.reasoning_model = os.getenv(
            "DEFENSE_BUILDER_REASONING_MODEL", config.reasoning_model
        )
        config.reasoning_base_url = os.getenv(
            "DEFENSE_BUILDER_REASONING_BASE_URL", config.reasoning_base_url
        )
        config.reasoning_timeout = float(os.getenv(
            "DEFENSE_BUILDER_REASONING_TIMEOUT", str(config.reasoning_timeout)
        ))
        config.match_threshold = float(os.getenv(
            "DEFENSE_BUILDER_MATCH_THRESHOLD", str(config.match_threshold)
        ))
        config.match_count = int(os.getenv(
            "DEFENSE_BUILDER_MATCH_COUNT", str(config.match_count)
        ))
        config.category_filter = os.getenv("DEFENSE_BUILDER_CATEGORY") or None
        config.retrieval_workers = int(os.getenv(
            "DEFENSE_BUILDER_RETRIEVAL_WORKERS", str(config.retrieval_workers)
        ))
        config.deduplicate_statutes = os.getenv(
            "DEFENSE_BUILDER_DEDUPLICATE_STATUTES", "false"
        ).lower() in ("1", "true", "yes")
        config.rate_limit_window_ms = int(os.getenv(
            "DEFENSE_BUILDER_RATE_LIMIT_WINDOW_MS", str(config.rate_limit_window_ms)
        ))
        config.rate_limit_max_requests = int(os.getenv(
            "DEFENSE_BUILDER_RATE_LIMIT_MAX_REQUESTS", str(config.rate_limit_max_requests)
        ))
        config.rate_limit_backend = os.getenv(
            "DEFENSE_BUILDER_RATE_LIMIT_BACKEND", config.rate_limit_backend
        )
        return config

    @property
    def chars_per_token(self) -> int:
        return SUPPORTED_LANGUAGES.get(self.language, SUPPORTED_LANGUAGES[DEFAULT_LANGUAGE])["chars_per_token"]

    def validate(self) -> bool:
        """Check value ranges; raises ValueError on the first bad field."""
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {self.language}")
        if not 0.0 <= self.match_threshold <= 1.0:
            raise ValueError(f"match_threshold must be in [0, 1], got {self.match_threshold}")
        if self.match_count < 1:
            raise ValueError("match_count must be at least 1")
        if self.retrieval_workers < 1:
            raise ValueError("retrieval_workers must be at least 1")
        if self.rate_limit_window_ms <= 0 or self.rate_limit_max_requests <= 0:
            raise ValueError("Rate limit window and max requests must be positive")
        if self.rate_limit_backend not in VALID_RATE_LIMIT_BACKENDS:
            raise ValueError(f"Unknown rate limit backend: {self.rate_limit_backend}")
        return True
