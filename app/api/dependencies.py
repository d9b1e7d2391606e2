"""
Dependency wiring: build the orchestrator from config and hand it to routes.

The shared httpx clients live on app.state (created in the lifespan in
app/main.py). Tests replace get_orchestrator via app.dependency_overrides.
"""

import hmac
import logging

import httpx
from fastapi import Header, HTTPException, Request

from app.core.config import (
    API_TOKEN,
    CONTEXT_SOURCE,
    EMBEDDING_BASE_URL,
    EMBEDDING_TIMEOUT,
    GENERATION_BASE_URL,
    GENERATION_MODEL,
    GENERATION_TIMEOUT,
    PROMPT_TEMPLATE,
    TRANSACTIONS_DB_PATH,
    PipelineSettings,
)
from app.services.context_repository import build_repository
from app.services.embedding_client import EmbeddingClient
from app.services.generation_client import GenerationClient
from app.services.orchestrator import QueryOrchestrator
from app.services.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


def build_orchestrator(
    embedding_http: httpx.AsyncClient,
    generation_http: httpx.AsyncClient,
    settings: PipelineSettings | None = None,
) -> QueryOrchestrator:
    """Assemble the pipeline from environment config around the given HTTP clients."""
    logger.info(
        "Building orchestrator: embedding=%s generation=%s model=%s template=%s context=%s",
        EMBEDDING_BASE_URL,
        GENERATION_BASE_URL,
        GENERATION_MODEL,
        PROMPT_TEMPLATE,
        CONTEXT_SOURCE,
    )
    return QueryOrchestrator(
        embedding_client=EmbeddingClient(embedding_http, EMBEDDING_BASE_URL, EMBEDDING_TIMEOUT),
        repository=build_repository(CONTEXT_SOURCE, TRANSACTIONS_DB_PATH),
        prompt_builder=PromptBuilder(GENERATION_MODEL, PROMPT_TEMPLATE),
        generation_client=GenerationClient(generation_http, GENERATION_BASE_URL, GENERATION_TIMEOUT),
        settings=settings,
    )


def get_orchestrator(request: Request) -> QueryOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("Orchestrator not initialised; is the app lifespan running?")
    return orchestrator


def require_api_token(authorization: str | None = Header(None)) -> None:
    """When API_TOKEN is set, /ask needs 'Authorization: Bearer <token>'."""
    if not API_TOKEN:
        return
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), API_TOKEN):
        raise HTTPException(status_code=401, detail="Unauthorized")
