"""
FastAPI Backend for the Defense Builder

Analyzes a labor complaint against the employer's evidence and returns the
claims, relevant statutes, evidence gaps and a risk-scored recommendation.

Run with: uvicorn execution.defense_builder.api:app --host 0.0.0.0 --port 8000
"""

import os
import logging
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from . import __version__
from .api_models import AnalyzeRequest, ErrorResponse, RateLimitedResponse, HealthResponse
from .config import DefenseBuilderConfig
from .errors import RateLimitExceededError
from .metrics import get_metrics_collector
from .pipeline import DefenseBuilderPipeline
from .prompts import get_error_message
from .rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    PostgresRateLimitStore,
    get_client_identifier,
    get_rate_limiter,
)

# Load environment variables
load_dotenv()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Defense Builder API",
    description="Employer-side labor claim analysis: claims, statutes, evidence gaps and verdict",
    version=__version__,
)

# Configure CORS: use CORS_ORIGINS env var (comma-separated) or default to localhost
_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Service Container - lazily builds and caches the pipeline collaborators
# =============================================================================

class ServiceContainer:
    """Holds the config and the long-lived services shared across requests."""

    def __init__(
        self,
        config: Optional[DefenseBuilderConfig] = None,
        store=None,
        embeddings=None,
        reasoning=None,
        rate_limiter: Optional[RateLimiter] = None,
        metrics=None,
    ):
        self.config = config or DefenseBuilderConfig.from_env()
        self.config.validate()
        self._store = store
        self._embeddings = embeddings
        self._reasoning = reasoning
        self._rate_limiter = rate_limiter
        self._metrics = metrics
        self._pipeline = None

    @property
    def language(self) -> str:
        return self.config.language

    @property
    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            window_ms=self.config.rate_limit_window_ms,
            max_requests=self.config.rate_limit_max_requests,
        )

    @property
    def metrics(self):
        return self._metrics or get_metrics_collector()

    def get_store(self):
        if self._store is None:
            from .statute_store import StatuteStore, StatuteStoreConfig
            self._store = StatuteStore(StatuteStoreConfig(
                embedding_dimensions=self.config.embedding_dimensions,
            ))
        return self._store

    def get_embeddings(self):
        if self._embeddings is None:
            from .embeddings import get_embedding_service
            self._embeddings = get_embedding_service(builder_config=self.config)
        return self._embeddings

    def get_reasoning(self):
        if self._reasoning is None:
            from .reasoning import get_reasoning_client
            self._reasoning = get_reasoning_client(self.config)
        return self._reasoning

    def get_rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            if self.config.rate_limit_backend == "postgres":
                store = PostgresRateLimitStore(self.get_store())
                store.initialize_schema()
                self._rate_limiter = RateLimiter(store)
            else:
                self._rate_limiter = get_rate_limiter()
        return self._rate_limiter

    def get_pipeline(self) -> DefenseBuilderPipeline:
        if self._pipeline is None:
            from .retriever import StatuteRetriever, RetrievalConfig
            retriever = StatuteRetriever(
                self.get_store(),
                self.get_embeddings(),
                RetrievalConfig.from_builder_config(self.config),
            )
            self._pipeline = DefenseBuilderPipeline(
                retriever, self.get_reasoning(), self.config, metrics=self.metrics,
            )
        return self._pipeline


_container = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(RateLimitExceededError)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError):
    return JSONResponse(
        status_code=429,
        content={"success": False, "error": str(exc), "retryAfter": exc.retry_after},
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request body: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": get_error_message("invalid_input", get_container().language)},
    )


# =============================================================================
# Rate limiting dependency
# =============================================================================

def check_rate_limit(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> str:
    """Enforce the per-caller budget; returns the caller identifier."""
    identifier = get_client_identifier(
        request.headers, request.client.host if request.client else None
    )
    result = container.get_rate_limiter().check(identifier, container.rate_limit_config)
    if not result.allowed:
        container.metrics.record_rate_limited()
        logger.warning(f"Rate limit exceeded for {identifier}, retry in {result.retry_after}s")
        raise RateLimitExceededError(
            get_error_message("rate_limited", container.language),
            retry_after=result.retry_after,
            identifier=identifier,
        )
    return identifier


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/api/v1/health", response_model=HealthResponse)
def health_check(container: ServiceContainer = Depends(get_container)):
    """Health check endpoint."""
    db_status = "unknown"
    try:
        store = container.get_store()
        if not store.is_connected():
            store.connect()
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check: database disconnected: {e}")
        db_status = "disconnected"

    embeddings = container.get_embeddings()
    reasoning = container.get_reasoning()
    return HealthResponse(
        status="ok",
        version=__version__,
        database=db_status,
        embeddings="configured" if getattr(embeddings, "is_configured", True) else "missing_credentials",
        reasoning="configured" if getattr(reasoning, "is_configured", True) else "missing_credentials",
    )


@app.get("/api/v1/metrics")
def metrics(recent: int = 10, container: ServiceContainer = Depends(get_container)):
    """Pipeline metrics since process start, plus the most recent runs."""
    collector = container.metrics
    data = collector.get_metrics_dict()
    data["uptime_seconds"] = int(collector.get_uptime().total_seconds())
    data["recent_runs"] = [r.to_dict() for r in collector.get_recent_runs(limit=recent)]
    return data


@app.post(
    "/api/v1/defense-builder",
    responses={
        400: {"model": ErrorResponse},
        429: {"model": RateLimitedResponse},
        500: {"model": ErrorResponse},
    },
)
def defense_builder(
    body: AnalyzeRequest,
    identifier: str = Depends(check_rate_limit),
    container: ServiceContainer = Depends(get_container),
):
    """Run claim extraction, statute retrieval, gap analysis and verdict."""
    result = container.get_pipeline().run(
        body.to_complaint(), body.to_evidence(), client_id=identifier,
    )
    logger.info(
        f"Defense builder for {identifier}: success={result.success}, "
        f"status={result.status_code}, latency={result.latency_ms:.0f}ms"
    )
    return JSONResponse(status_code=result.status_code, content=result.to_dict())
