"""
Tests for execution/defense_builder/retriever.py

Covers: query construction, threshold/top-k/category forwarding, content
        truncation, similarity clamping, per-claim failure isolation
        (lookup failures are skipped, even for every claim), outage detection
        for unreachable embeddings or database,
        claim ordering under concurrency, and optional deduplication.
"""

import time

import pytest

from tests.conftest import MockEmbeddingService, MockStatuteStore


def _claims(*types):
    from execution.defense_builder.models import Claim
    return [Claim(claim_type=t, description=f"{t} description") for t in types]


def _retriever(store=None, embeddings=None, **config_kwargs):
    from execution.defense_builder.retriever import StatuteRetriever, RetrievalConfig
    return StatuteRetriever(
        store or MockStatuteStore(),
        embeddings or MockEmbeddingService(),
        RetrievalConfig(**config_kwargs),
    )


class TestRetrieveForClaim:
    """Tests for single-claim lookup."""

    def test_query_is_type_plus_description(self):
        embeddings = MockEmbeddingService()
        retriever = _retriever(embeddings=embeddings)
        retriever.retrieve_for_claim(_claims("overtime")[0])
        assert embeddings.queries == ["overtime overtime description"]

    def test_forwards_search_parameters(self):
        store = MockStatuteStore()
        retriever = _retriever(store=store, category_filter="labor_law")
        retriever.retrieve_for_claim(_claims("overtime")[0])
        assert store.calls == [{"top_k": 3, "min_score": 0.4, "category": "labor_law"}]

    def test_drops_matches_below_threshold(self):
        retriever = _retriever(match_count=10)
        matches = retriever.retrieve_for_claim(_claims("overtime")[0])
        assert matches
        assert all(0.4 <= m.similarity <= 1.0 for m in matches)
        assert "148" not in [m.article_number for m in matches]

    def test_never_more_than_match_count(self):
        retriever = _retriever(match_count=2, match_threshold=0.0)
        assert len(retriever.retrieve_for_claim(_claims("overtime")[0])) == 2

    def test_content_truncated(self):
        retriever = _retriever(content_limit=1000)
        matches = retriever.retrieve_for_claim(_claims("overtime")[0])
        assert len(matches[0].content) == 1000

    def test_tagged_with_claim_type(self):
        retriever = _retriever()
        matches = retriever.retrieve_for_claim(_claims("severance")[0])
        assert {m.claim_type for m in matches} == {"severance"}

    def test_similarity_clamped(self):
        from execution.defense_builder.statute_store import StatuteRecord
        store = MockStatuteStore(records=[
            StatuteRecord(id="x", article_number="1", category="c", content="a", similarity=1.0000002),
        ])
        matches = _retriever(store=store).retrieve_for_claim(_claims("overtime")[0])
        assert matches[0].similarity == 1.0

    def test_failure_wrapped_as_retrieval_error(self):
        from execution.defense_builder.errors import RetrievalError
        retriever = _retriever(store=MockStatuteStore(fail=True))
        with pytest.raises(RetrievalError) as exc_info:
            retriever.retrieve_for_claim(_claims("overtime")[0])
        assert exc_info.value.claim_type == "overtime"


class TestRetrieve:
    """Tests for aggregated multi-claim retrieval."""

    def test_aggregates_in_claim_order(self):
        outcome = _retriever().retrieve(_claims("a", "b", "c"))
        types = [m.claim_type for m in outcome.matches]
        assert types == ["a"] * 3 + ["b"] * 3 + ["c"] * 3
        assert outcome.failure_count == 0

    def test_one_claim_failure_is_skipped(self):
        embeddings = MockEmbeddingService(fail_on=["severance"])
        outcome = _retriever(embeddings=embeddings).retrieve(
            _claims("overtime", "severance", "wrongful_dismissal")
        )
        types = {m.claim_type for m in outcome.matches}
        assert types == {"overtime", "wrongful_dismissal"}
        assert outcome.failed_claims == ["severance"]

    def test_all_claims_failing_is_total_outage(self):
        from execution.defense_builder.errors import RetrievalUnavailableError
        retriever = _retriever(store=MockStatuteStore(fail=True))
        with pytest.raises(RetrievalUnavailableError):
            retriever.retrieve(_claims("a", "b"))

    def test_single_claim_lookup_failure_is_skipped(self):
        embeddings = MockEmbeddingService(fail_on=["overtime"])
        outcome = _retriever(embeddings=embeddings).retrieve(_claims("overtime"))
        assert outcome.matches == []
        assert outcome.failed_claims == ["overtime"]

    def test_every_claim_failing_without_outage_is_skipped(self):
        embeddings = MockEmbeddingService(fail_on=["a", "b"])
        outcome = _retriever(embeddings=embeddings).retrieve(_claims("a", "b"))
        assert outcome.matches == []
        assert outcome.failure_count == 2

    def test_mixed_outage_and_lookup_failure_is_skipped(self):
        from unittest.mock import MagicMock
        store = MagicMock()
        store.search.side_effect = [ConnectionError("refused"), ValueError("bad vector")]
        outcome = _retriever(store=store, max_workers=1).retrieve(_claims("a", "b"))
        assert outcome.failure_count == 2

    def test_database_operational_error_is_outage(self):
        import psycopg2
        from unittest.mock import MagicMock
        from execution.defense_builder.errors import RetrievalUnavailableError
        store = MagicMock()
        store.search.side_effect = psycopg2.OperationalError("server closed the connection")
        with pytest.raises(RetrievalUnavailableError):
            _retriever(store=store).retrieve(_claims("overtime"))

    def test_unconfigured_embeddings_is_outage(self):
        from unittest.mock import MagicMock
        from execution.defense_builder.errors import ConfigurationError, RetrievalUnavailableError
        embeddings = MagicMock()
        embeddings.embed_query.side_effect = ConfigurationError("VOYAGE_API_KEY not set")
        with pytest.raises(RetrievalUnavailableError):
            _retriever(embeddings=embeddings).retrieve(_claims("overtime"))

    def test_no_matches_is_not_a_failure(self):
        store = MockStatuteStore(records=[])
        outcome = _retriever(store=store).retrieve(_claims("a"))
        assert outcome.matches == []
        assert outcome.failure_count == 0

    def test_empty_claims(self):
        outcome = _retriever().retrieve([])
        assert outcome.matches == []

    def test_order_kept_when_first_lookup_is_slowest(self):
        class SlowFirstEmbeddings(MockEmbeddingService):
            def embed_query(self, query):
                if query.startswith("first"):
                    time.sleep(0.05)
                return super().embed_query(query)

        outcome = _retriever(embeddings=SlowFirstEmbeddings(), max_workers=4).retrieve(
            _claims("first", "second", "third")
        )
        assert outcome.matches[0].claim_type == "first"
        assert outcome.matches[-1].claim_type == "third"

    def test_duplicates_kept_by_default(self):
        outcome = _retriever().retrieve(_claims("a", "b"))
        assert len(outcome.matches) == 6

    def test_deduplicate_when_enabled(self):
        outcome = _retriever(deduplicate=True).retrieve(_claims("a", "b"))
        keys = [m.dedup_key for m in outcome.matches]
        assert len(keys) == len(set(keys)) == 3


class TestDeduplicateMatches:
    """Tests for deduplicate_matches."""

    def _match(self, claim, article, similarity, category="labor_law"):
        from execution.defense_builder.models import StatuteMatch
        return StatuteMatch(claim, article, category, "text", similarity)

    def test_keeps_highest_similarity_at_first_position(self):
        from execution.defense_builder.retriever import deduplicate_matches
        matches = [
            self._match("a", "59", 0.6),
            self._match("a", "24", 0.5),
            self._match("b", "59", 0.9),
        ]
        result = deduplicate_matches(matches)
        assert [(m.article_number, m.claim_type) for m in result] == [("59", "b"), ("24", "a")]

    def test_same_article_different_category_kept(self):
        from execution.defense_builder.retriever import deduplicate_matches
        result = deduplicate_matches([
            self._match("a", "1", 0.6, "labor_law"),
            self._match("a", "1", 0.6, "social_security"),
        ])
        assert len(result) == 2

    def test_missing_article_number_never_merged(self):
        from execution.defense_builder.retriever import deduplicate_matches
        result = deduplicate_matches([self._match("a", None, 0.6), self._match("b", None, 0.7)])
        assert len(result) == 2


class TestRetrievalConfig:
    """Tests for building RetrievalConfig from the pipeline config."""

    def test_from_builder_config(self):
        from execution.defense_builder.config import DefenseBuilderConfig
        from execution.defense_builder.retriever import RetrievalConfig
        config = DefenseBuilderConfig(match_count=4, category_filter="labor_law", deduplicate_statutes=True)
        rc = RetrievalConfig.from_builder_config(config)
        assert rc.match_count == 4
        assert rc.category_filter == "labor_law"
        assert rc.deduplicate is True
        assert rc.content_limit == 1000
