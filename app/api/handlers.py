"""
API handlers: read request data, call the orchestrator, map results/errors to HTTP.

Responsibility: Bridge HTTP types and services. Marshalling and
result-to-HTTP mapping. Lives in the API layer so services stay free of
FastAPI/HTTP types.
"""

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.core.config import EXPOSE_DIAGNOSTICS
from app.core.errors import ErrorKind
from app.schemas.ask import AskRequest
from app.services.models import RagResponse
from app.services.orchestrator import QueryOrchestrator

logger = logging.getLogger(__name__)

# Seconds between client-disconnect checks while the pipeline runs
DISCONNECT_POLL_INTERVAL = 0.25

# Nginx-style "client closed request"; only ever seen in logs
CLIENT_CLOSED_REQUEST = 499

METHOD_NOT_ALLOWED_MESSAGE = "Method not allowed"

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM_UNAVAILABLE: 500,
    ErrorKind.UPSTREAM_TIMEOUT: 500,
    ErrorKind.MALFORMED_UPSTREAM_RESPONSE: 500,
    ErrorKind.REPOSITORY_UNAVAILABLE: 500,
    ErrorKind.INTERNAL: 500,
    ErrorKind.CANCELLED: CLIENT_CLOSED_REQUEST,
}


def format_response(
    result: RagResponse, expose_diagnostics: bool = EXPOSE_DIAGNOSTICS
) -> tuple[int, dict[str, Any] | None]:
    """
    Shape a RagResponse into (status, body). Body is None for a cancelled run,
    since nobody is left to read it.
    """
    if result.ok:
        body: dict[str, Any] = {"answer": result.answer}
        if expose_diagnostics and result.diagnostics is not None:
            body["diagnostics"] = result.diagnostics.as_dict()
        return 200, body
    status = STATUS_BY_KIND.get(result.error_kind, 500)
    if result.error_kind is ErrorKind.CANCELLED:
        return status, None
    return status, {"error": result.message or "Internal error"}


async def read_query(request: Request) -> str | None:
    """Return body["query"] if the body is a JSON object with a string query, else None."""
    try:
        payload = await request.json()
    except ValueError:
        logger.info("[api:read_query] body is not valid JSON")
        return None
    try:
        body = AskRequest.model_validate(payload)
    except ValidationError:
        logger.info("[api:read_query] body does not match AskRequest")
        return None
    return body.query


async def _run_until_disconnect(request: Request, task: asyncio.Task) -> RagResponse:
    """Await the pipeline; cancel it if the client goes away first."""
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("[api:ask] client disconnected, cancelling pipeline")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                return RagResponse.failure(ErrorKind.CANCELLED, "Client disconnected")
    except asyncio.CancelledError:
        task.cancel()
        raise


async def handle_ask(request: Request, orchestrator: QueryOrchestrator) -> Response:
    query = await read_query(request)
    logger.info("[api:ask] IN  query=%r", query)
    task = asyncio.create_task(orchestrator.answer(query))
    result = await _run_until_disconnect(request, task)
    status, body = format_response(result)
    logger.info("[api:ask] OUT status=%d kind=%s", status, result.error_kind.value if result.error_kind else "-")
    if body is None:
        return Response(status_code=status)
    return JSONResponse(body, status_code=status)
