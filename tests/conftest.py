"""
Shared fixtures and test utilities for Defense Builder tests.

Provides mock services, sample data, and reusable fixtures so that all tests
can run without API keys, databases, or external network access.
"""

import sys
import hashlib
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# ---------------------------------------------------------------------------
# Sample complaint and model outputs
# ---------------------------------------------------------------------------
SAMPLE_COMPLAINT = """
The employee worked from March 2021 to January 2024 as a warehouse supervisor.
They claim unpaid overtime of 120 hours during 2023, the end-of-service bonus
for three years of employment, and compensation for dismissal without notice.
Total claimed: 450,000,000 rials.
"""

SAMPLE_CLAIMS_OUTPUT = {
    "claims": [
        {"claim_type": "overtime", "description": "120 hours unpaid overtime in 2023",
         "amount_claimed": "150,000,000"},
        {"claim_type": "severance", "description": "End-of-service bonus for 3 years"},
        {"claim_type": "wrongful_dismissal", "description": "Dismissed without notice",
         "amount_claimed": "200,000,000"},
    ]
}

SAMPLE_GAP_OUTPUT = {
    "evidence_analysis": [
        {
            "claim_type": "overtime",
            "required_evidence": ["attendance records", "payroll slips"],
            "provided_evidence": ["payroll slips"],
            "missing_evidence": ["attendance records"],
            "legal_basis": "Article 59",
        },
    ],
    "follow_up_questions": [
        {"question": "Do you have attendance records for 2023?",
         "reason": "Needed to rebut the overtime claim", "related_article": "59"},
    ],
    "can_proceed": False,
}

SAMPLE_VERDICT_OUTPUT = {
    "risk_score": 72,
    "risk_level": "high",
    "recommendation": "settle",
    "reasoning": "Overtime claim is well supported by the payroll gap.",
    "key_strengths": ["Signed settlement receipts for 2022"],
    "key_weaknesses": ["No attendance records"],
    "settlement_advice": "Offer 60% of the overtime amount.",
    "defense_bill": "Should not be surfaced for a settle recommendation.",
}


# ---------------------------------------------------------------------------
# Mock embedding service
# ---------------------------------------------------------------------------

class MockEmbeddingService:
    """Deterministic mock embedding service -- never calls external APIs."""

    def __init__(self, dimensions=8, fail_on=None, configured=True):
        self._dimensions = dimensions
        self._fail_on = set(fail_on or [])
        self.is_configured = configured
        self.queries = []

    def embed_documents(self, texts):
        return [self._deterministic_embedding(t) for t in texts]

    def embed_query(self, query):
        self.queries.append(query)
        if any(marker in query for marker in self._fail_on):
            raise RuntimeError(f"embedding backend error for {query!r}")
        return self._deterministic_embedding(query)

    def _deterministic_embedding(self, text):
        h = hashlib.sha256(text.encode()).hexdigest()
        seed = int(h[:8], 16)
        return [((seed + i) % 1000) / 1000.0 for i in range(self._dimensions)]

    @property
    def dimensions(self):
        return self._dimensions


@pytest.fixture
def mock_embedding_service():
    return MockEmbeddingService()


# ---------------------------------------------------------------------------
# Mock statute store
# ---------------------------------------------------------------------------

class MockStatuteStore:
    """In-memory stand-in for StatuteStore; returns its records for every query."""

    def __init__(self, records=None, fail=False):
        from execution.defense_builder.statute_store import StatuteRecord
        if records is None:
            records = [
                StatuteRecord(id="s1", article_number="59", category="labor_law",
                              content="Overtime work shall be paid at 140% of the hourly wage. " * 40,
                              similarity=0.91),
                StatuteRecord(id="s2", article_number="24", category="labor_law",
                              content="On termination the employer shall pay one month per year.",
                              similarity=0.74),
                StatuteRecord(id="s3", article_number="27", category="labor_law",
                              content="Dismissal requires the approval of the disciplinary board.",
                              similarity=0.52),
                StatuteRecord(id="s4", article_number="148", category="social_security",
                              content="Insurance contributions.", similarity=0.31),
            ]
        self.records = records
        self.fail = fail
        self.calls = []
        self._connected = False

    def connect(self):
        self._connected = True

    def is_connected(self):
        return self._connected

    def search(self, query_embedding, top_k=3, min_score=0.4, category=None):
        self.calls.append({"top_k": top_k, "min_score": min_score, "category": category})
        if self.fail:
            raise ConnectionError("database unavailable")
        hits = [r for r in self.records if category is None or r.category == category]
        return hits[:top_k + 1]

    def close(self):
        pass


@pytest.fixture
def mock_statute_store():
    return MockStatuteStore()


# ---------------------------------------------------------------------------
# Scripted reasoning client
# ---------------------------------------------------------------------------

class ScriptedReasoningClient:
    """
    Returns canned tool arguments per tool name.

    A scripted value may be a dict (returned), an exception instance
    (raised) or a callable taking (messages, tool).
    """

    def __init__(self, responses=None, configured=True):
        self.responses = dict(responses or {})
        self.is_configured = configured
        self.calls = []

    def submit(self, messages, tool):
        self.calls.append({"tool": tool["name"], "messages": messages})
        response = self.responses.get(tool["name"])
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(messages, tool)
        if response is None:
            from execution.defense_builder.errors import ReasoningParseError
            raise ReasoningParseError(f"No tool call returned for {tool['name']}", tool["name"])
        return response

    def tools_called(self):
        return [c["tool"] for c in self.calls]


@pytest.fixture
def scripted_reasoning():
    return ScriptedReasoningClient({
        "extract_claims": SAMPLE_CLAIMS_OUTPUT,
        "analyze_evidence_gap": SAMPLE_GAP_OUTPUT,
        "generate_verdict": SAMPLE_VERDICT_OUTPUT,
    })


# ---------------------------------------------------------------------------
# Pipeline assembly
# ---------------------------------------------------------------------------

@pytest.fixture
def builder_config():
    from execution.defense_builder.config import DefenseBuilderConfig
    return DefenseBuilderConfig.for_language("en")


def build_pipeline(store, embeddings, reasoning, config=None, metrics=None):
    from execution.defense_builder.config import DefenseBuilderConfig
    from execution.defense_builder.retriever import StatuteRetriever, RetrievalConfig
    from execution.defense_builder.pipeline import DefenseBuilderPipeline
    from execution.defense_builder.metrics import MetricsCollector

    config = config or DefenseBuilderConfig.for_language("en")
    retriever = StatuteRetriever(store, embeddings, RetrievalConfig.from_builder_config(config))
    return DefenseBuilderPipeline(retriever, reasoning, config, metrics=metrics or MetricsCollector())


@pytest.fixture
def pipeline(mock_statute_store, mock_embedding_service, scripted_reasoning, builder_config):
    return build_pipeline(mock_statute_store, mock_embedding_service, scripted_reasoning, builder_config)


# ---------------------------------------------------------------------------
# Singleton resets between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics_singleton():
    """Reset the global MetricsCollector between tests."""
    import execution.defense_builder.metrics as metrics_mod
    metrics_mod._collector = None
    yield
    metrics_mod._collector = None


@pytest.fixture(autouse=True)
def reset_rate_limiter_singleton():
    """Reset the global RateLimiter between tests."""
    from execution.defense_builder.rate_limiter import reset_rate_limiter
    reset_rate_limiter()
    yield
    reset_rate_limiter()
