"""
API route aggregator: register endpoints; no logic, only delegate to handlers.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response

from app.api.dependencies import get_orchestrator, require_api_token
from app.api.handlers import CORS_HEADERS, handle_ask
from app.core.config import CONTEXT_SOURCE, EMBEDDING_BASE_URL, GENERATION_BASE_URL, GENERATION_MODEL
from app.schemas.ask import AskResponse, ErrorResponse
from app.schemas.health import HealthResponse
from app.services.orchestrator import QueryOrchestrator

router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "RAG ask service running"}


@router.get("/health", response_model=HealthResponse, tags=["system"])
def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        services={
            "embedding": EMBEDDING_BASE_URL,
            "generation": GENERATION_BASE_URL,
            "model": GENERATION_MODEL,
            "context_source": CONTEXT_SOURCE,
        },
    )


# --- Ask ---

@router.post(
    "/ask",
    response_model=AskResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["ask"],
    summary="Answer a question from recent transactions",
    description="Embed the query, fetch recent transactions, ask the LLM. 400 on missing/blank query, 500 on upstream or internal failure.",
    dependencies=[Depends(require_api_token)],
)
async def post_ask(
    request: Request,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> Response:
    return await handle_ask(request, orchestrator)


@router.options("/ask", tags=["ask"], include_in_schema=False)
def options_ask() -> Response:
    """Every preflight gets an empty 200 with the CORS headers, whatever it asks for."""
    return Response(status_code=200, headers=CORS_HEADERS)

