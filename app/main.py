# Run from project root: uvicorn app.main:app --reload

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dependencies import build_orchestrator
from app.api.handlers import CORS_HEADERS, METHOD_NOT_ALLOWED_MESSAGE
from app.api.routes import router
from app.core.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One pooled client per upstream, shared by all requests
    async with httpx.AsyncClient() as embedding_http, httpx.AsyncClient() as generation_http:
        app.state.orchestrator = build_orchestrator(embedding_http, generation_http)
        logger.info("RAG ask service ready")
        yield
    app.state.orchestrator = None


app = FastAPI(title="RAG Ask Service", lifespan=lifespan)
app.include_router(router)


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    """Attach the permissive CORS headers to every response; preflights are answered by the route."""
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Every error body uses the {"error": ...} shape."""
    message = METHOD_NOT_ALLOWED_MESSAGE if exc.status_code == 405 else str(exc.detail)
    return JSONResponse({"error": message}, status_code=exc.status_code, headers=exc.headers)
