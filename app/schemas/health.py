"""Schemas for the health endpoint."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field("ok")
    timestamp: str = Field(..., description="Current server time, ISO-8601 UTC.")
    services: dict[str, str] = Field(default_factory=dict, description="Configured upstreams and context source.")
