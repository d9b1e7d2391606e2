"""
Application errors for clean API error handling.

Clients raise the exception classes below; the orchestrator turns them into
StageFailure values and the API layer maps the ErrorKind to an HTTP status.
Exception messages are internal detail (logged); user-facing text comes from
the orchestrator.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Failure taxonomy shared by every pipeline stage."""

    VALIDATION = "ValidationError"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    UPSTREAM_TIMEOUT = "UpstreamTimeout"
    MALFORMED_UPSTREAM_RESPONSE = "MalformedUpstreamResponse"
    REPOSITORY_UNAVAILABLE = "RepositoryUnavailable"
    CANCELLED = "Cancelled"
    INTERNAL = "InternalError"

    @property
    def transient(self) -> bool:
        """True for kinds the orchestrator may retry."""
        return self in (ErrorKind.UPSTREAM_UNAVAILABLE, ErrorKind.UPSTREAM_TIMEOUT)


class PipelineError(Exception):
    """Base for errors raised by pipeline components."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class QueryValidationError(PipelineError):
    """Raised when the query is missing or blank."""

    kind = ErrorKind.VALIDATION


class UpstreamUnavailableError(PipelineError):
    """Raised when the embedding or generation service cannot be reached or is not serving."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE


class UpstreamTimeoutError(PipelineError):
    """Raised when an upstream call exceeds its deadline."""

    kind = ErrorKind.UPSTREAM_TIMEOUT


class MalformedUpstreamResponseError(PipelineError):
    """Raised when an upstream answered but the body is not what we expect."""

    kind = ErrorKind.MALFORMED_UPSTREAM_RESPONSE


class RepositoryUnavailableError(PipelineError):
    """Raised when the context store cannot be read."""

    kind = ErrorKind.REPOSITORY_UNAVAILABLE


@dataclass(frozen=True)
class StageFailure:
    """Result value for a failed stage: what went wrong, where, and what the caller sees."""

    kind: ErrorKind
    stage: str
    message: str
    detail: str = ""
