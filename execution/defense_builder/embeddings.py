"""
Embedding Service for Statute Retrieval

Converts claim queries and statute articles to fixed-length vectors via
Voyage AI or Cohere. Query embeddings are cached in memory (and optionally
on disk) since the same claim wording recurs across requests.

Architecture:
    BaseEmbeddingService  -- shared caching, batching, embed_documents, embed_query
        VoyageEmbeddingService    -- Voyage AI provider (default)
        EmbeddingService          -- Cohere embed-v3 provider
"""

import os
import json
import hashlib
import logging
import threading
from typing import Optional, Union
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingConfig:
    """Configuration for embedding service."""
    provider: str = "voyage"  # "voyage" or "cohere"
    model: str = "voyage-multilingual-2"
    dimensions: int = 1024
    batch_size: int = 128  # Voyage supports up to 128
    max_tokens_per_batch: int = 100000  # Conservative limit (Voyage max: 120K)
    chars_per_token: float = 3.0
    cache_dir: Optional[str] = None
    use_cache: bool = True
    max_cache_entries: int = 5000


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Subclasses implement _init_client() and set:
    - _provider_name: Human-readable provider name for error messages
    - _env_var_name: Environment variable name for the API key
    - _doc_input_type / _query_input_type: provider input type strings
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: str = "document"
    _query_input_type: str = "query"

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._client = None
        self._cache: dict[str, list[float]] = {}
        # Retrieval embeds several claims concurrently
        self._cache_lock = threading.Lock()

        if self.config.cache_dir:
            self._cache_path = Path(self.config.cache_dir)
            self._cache_path.mkdir(parents=True, exist_ok=True)
        else:
            self._cache_path = None

        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _require_client(self):
        if not self._client:
            raise ConfigurationError(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}."
            )

    def _create_batches(self, texts: list[str]) -> list[list[str]]:
        """Split texts into batches respecting both item count and token limits."""
        batches = []
        current_batch = []
        current_tokens = 0
        cpt = self.config.chars_per_token

        for text in texts:
            est_tokens = len(text) / cpt
            if current_batch and (
                len(current_batch) >= self.config.batch_size
                or current_tokens + est_tokens > self.config.max_tokens_per_batch
            ):
                batches.append(current_batch)
                current_batch = []
                current_tokens = 0
            current_batch.append(text)
            current_tokens += est_tokens

        if current_batch:
            batches.append(current_batch)

        return batches

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for statute articles (ingestion path).

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []

        self._require_client()
        batches = self._create_batches(texts)

        logger.info(
            f"Embedding {len(texts)} articles in {len(batches)} batches"
            f" with {self._provider_name}"
        )

        embeddings = []
        for batch_idx, batch in enumerate(batches):
            embeddings.extend(self._embed_batch(batch, input_type=self._doc_input_type))

            if (batch_idx + 1) % 10 == 0:
                logger.info(f"Processed batch {batch_idx + 1}/{len(batches)}")

        return embeddings

    def embed_query(self, query: str) -> list[float]:
        """
        Generate embedding for a claim search query.

        Args:
            query: Search query string

        Returns:
            Embedding vector
        """
        self._require_client()

        result = self._embed_batch([query], input_type=self._query_input_type)
        if not result:
            raise ValueError(f"{self._provider_name} returned no embedding")
        return result[0]

    def _embed_batch(
        self,
        texts: list[str],
        input_type: str = "document"
    ) -> list[list[float]]:
        """Embed a batch of texts using the provider API."""
        results = []
        uncached_texts = []
        uncached_indices = []

        for i, text in enumerate(texts):
            cached = self._get_cached(self._get_cache_key(text, input_type))
            if cached is not None:
                results.append((i, cached))
            else:
                uncached_texts.append(text)
                uncached_indices.append(i)

        if uncached_texts:
            try:
                response = self._client.embed(
                    texts=uncached_texts,
                    model=self.config.model,
                    input_type=input_type,
                )
            except Exception as e:
                logger.error(f"{self._provider_name} embedding failed: {e}")
                raise

            for idx, embedding in zip(uncached_indices, response.embeddings):
                self._set_cached(self._get_cache_key(texts[idx], input_type), embedding)
                results.append((idx, embedding))

        results.sort(key=lambda x: x[0])
        return [emb for _, emb in results]

    def _get_cache_key(self, text: str, input_type: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]

    def _get_cached(self, key: str) -> Optional[list[float]]:
        """Get cached embedding."""
        if not self.config.use_cache:
            return None

        with self._cache_lock:
            if key in self._cache:
                return self._cache[key]

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            if cache_file.exists():
                try:
                    with open(cache_file) as f:
                        embedding = json.load(f)
                    with self._cache_lock:
                        self._cache[key] = embedding
                    return embedding
                except Exception as e:
                    logger.debug(f"Failed to read embedding cache file {cache_file}: {e}")

        return None

    def _set_cached(self, key: str, embedding: list[float]) -> None:
        """Cache an embedding."""
        if not self.config.use_cache:
            return

        with self._cache_lock:
            if len(self._cache) >= self.config.max_cache_entries:
                # Drop the oldest insertion
                self._cache.pop(next(iter(self._cache)))
            self._cache[key] = embedding

        if self._cache_path:
            cache_file = self._cache_path / f"{key}.json"
            try:
                with open(cache_file, 'w') as f:
                    json.dump(embedding, f)
            except Exception as e:
                logger.warning(f"Failed to cache embedding: {e}")

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions."""
        return self.config.dimensions


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI.

    voyage-multilingual-2 handles the Persian labor-law corpus;
    voyage-law-2 is the English preset.
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        """Initialize the Voyage AI client."""
        api_key = os.getenv("VOYAGE_API_KEY")

        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Statute retrieval will fail. "
                "Get your API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.Client(api_key=api_key)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")


class EmbeddingService(BaseEmbeddingService):
    """Generates embeddings using Cohere's embed-v3 models."""

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        """Initialize the Cohere client."""
        api_key = os.getenv("COHERE_API_KEY")

        if not api_key:
            logger.warning(
                "COHERE_API_KEY not found. Statute retrieval will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        import cohere
        self._client = cohere.Client(api_key)
        logger.info(f"Cohere client initialized with model {self.config.model}")


def get_embedding_service(
    provider: str = "voyage",
    builder_config=None,
) -> Union[VoyageEmbeddingService, EmbeddingService]:
    """
    Factory function to get appropriate embedding service.

    Args:
        provider: "voyage" (default) or "cohere"
        builder_config: Optional DefenseBuilderConfig supplying model settings

    Returns:
        Configured embedding service
    """
    if builder_config is not None:
        prov = builder_config.embedding_provider
        model = builder_config.embedding_model
        dimensions = builder_config.embedding_dimensions
        cpt = float(builder_config.chars_per_token)
    else:
        prov = provider
        model = None
        dimensions = 1024
        cpt = 3.0

    if prov == "voyage":
        config = EmbeddingConfig(
            provider="voyage",
            model=model or "voyage-multilingual-2",
            dimensions=dimensions,
            batch_size=128,
            chars_per_token=cpt,
        )
        return VoyageEmbeddingService(config)

    # Fallback to Cohere; Voyage model names from a language preset don't apply
    if model and model.startswith("voyage"):
        model = None
    config = EmbeddingConfig(
        provider="cohere",
        model=model or "embed-multilingual-v3.0",
        dimensions=dimensions,
        batch_size=96,
        chars_per_token=cpt,
    )
    return EmbeddingService(config)
