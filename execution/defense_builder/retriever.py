"""
Statute Retriever for Extracted Claims

For every claim: embed "<claim_type> <description>", look up the closest
statute articles above the similarity threshold, and tag each hit with the
claim it was found for. Claims are independent, so lookups run on a small
thread pool; one claim failing never affects the others. The request is
aborted only when the search backend is unreachable for every claim.
"""

import time
import logging
from typing import Optional
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor

from .models import Claim, StatuteMatch
from .errors import ConfigurationError, RetrievalError, RetrievalUnavailableError
from .statute_store import CONNECTION_ERRORS

logger = logging.getLogger(__name__)


@dataclass
class RetrievalConfig:
    """Configuration for statute retrieval."""
    match_threshold: float = 0.4
    match_count: int = 3
    category_filter: Optional[str] = None
    content_limit: int = 1000
    max_workers: int = 4
    deduplicate: bool = False

    @classmethod
    def from_builder_config(cls, config) -> "RetrievalConfig":
        return cls(
            match_threshold=config.match_threshold,
            match_count=config.match_count,
            category_filter=config.category_filter,
            content_limit=config.statute_content_limit,
            max_workers=config.retrieval_workers,
            deduplicate=config.deduplicate_statutes,
        )


@dataclass
class RetrievalOutcome:
    """Aggregated matches plus which claims could not be looked up."""
    matches: list[StatuteMatch] = field(default_factory=list)
    failed_claims: list[str] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failed_claims)


class StatuteRetriever:
    """
    Per-claim statute lookup.

    Pipeline for each claim:
    1. Build the query text from claim type and description
    2. Embed it
    3. Search the statute store (top-k, threshold, optional category)
    4. Truncate content and tag with the claim type
    """

    def __init__(
        self,
        statute_store,
        embedding_service,
        config: Optional[RetrievalConfig] = None,
    ):
        self.store = statute_store
        self.embeddings = embedding_service
        self.config = config or RetrievalConfig()

    def retrieve_for_claim(self, claim: Claim) -> list[StatuteMatch]:
        """
        Look up statutes for a single claim.

        Raises:
            RetrievalError: embedding or search failed for this claim
        """
        try:
            query_embedding = self.embeddings.embed_query(claim.search_query)
            records = self.store.search(
                query_embedding=query_embedding,
                top_k=self.config.match_count,
                min_score=self.config.match_threshold,
                category=self.config.category_filter,
            )
        except Exception as e:
            raise RetrievalError(
                f"Statute lookup failed for claim '{claim.claim_type}': {e}",
                claim_type=claim.claim_type,
                outage=isinstance(e, (ConfigurationError,) + CONNECTION_ERRORS),
            ) from e

        matches = []
        for record in records:
            similarity = min(max(float(record.similarity), 0.0), 1.0)
            if similarity < self.config.match_threshold:
                continue
            matches.append(StatuteMatch(
                claim_type=claim.claim_type,
                article_number=record.article_number,
                category=record.category,
                content=(record.content or "")[:self.config.content_limit],
                similarity=similarity,
            ))
        return matches[:self.config.match_count]

    def retrieve(self, claims: list[Claim]) -> RetrievalOutcome:
        """
        Look up statutes for all claims.

        Matches are returned grouped in claim order regardless of which
        lookup finishes first.

        Raises:
            RetrievalUnavailableError: the embedding service or database was
                unreachable for every claim
        """
        start_time = time.time()
        outcome = RetrievalOutcome()
        if not claims:
            return outcome

        per_claim: list[Optional[list[StatuteMatch]]] = [None] * len(claims)
        outages = 0
        workers = max(1, min(self.config.max_workers, len(claims)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.retrieve_for_claim, c) for c in claims]
            for idx, future in enumerate(futures):
                try:
                    per_claim[idx] = future.result()
                except RetrievalError as e:
                    logger.warning(f"Skipping statute retrieval for claim #{idx + 1}: {e}")
                    outcome.failed_claims.append(claims[idx].claim_type)
                    outages += e.outage

        if outages == len(claims):
            raise RetrievalUnavailableError(
                f"Statute search unreachable for all {len(claims)} claims"
            )
        if outcome.failure_count == len(claims):
            logger.warning(f"Statute retrieval failed for all {len(claims)} claims, continuing without statutes")

        for matches in per_claim:
            if matches:
                outcome.matches.extend(matches)

        if self.config.deduplicate:
            outcome.matches = deduplicate_matches(outcome.matches)

        elapsed = (time.time() - start_time) * 1000
        logger.info(
            f"Found {len(outcome.matches)} relevant legal articles for {len(claims)} claims "
            f"({outcome.failure_count} skipped) in {elapsed:.0f}ms"
        )
        return outcome


def deduplicate_matches(matches: list[StatuteMatch]) -> list[StatuteMatch]:
    """
    Collapse matches citing the same (article_number, category).

    Keeps the highest-similarity instance at the position of the first
    occurrence. Matches without an article number are never merged.
    """
    best: dict[tuple, int] = {}
    result: list[StatuteMatch] = []
    for match in matches:
        if match.article_number is None:
            result.append(match)
            continue
        key = match.dedup_key
        if key not in best:
            best[key] = len(result)
            result.append(match)
        elif match.similarity > result[best[key]].similarity:
            result[best[key]] = match
    return result
