"""Schemas for the ask endpoint."""

from typing import Any

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    """Request body for POST /ask. A missing or blank query is rejected with 400, not 422."""

    query: str | None = Field(None, description="Natural-language question about recent transactions.")


class AskResponse(BaseModel):
    """Response for POST /ask on success."""

    answer: str = Field(..., description="Answer grounded in recent transactions.")
    diagnostics: dict[str, Any] | None = Field(
        None, description="Embedding dimensions, context count, per-stage timings. Only when EXPOSE_DIAGNOSTICS is on."
    )

    model_config = {
        "json_schema_extra": {
            "examples": [{"answer": "Your last transaction was a deposit of 2500."}]
        }
    }


class ErrorResponse(BaseModel):
    """Error body for every non-2xx response."""

    error: str = Field(..., description="Generic, user-facing error message.")
