"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Project root (directory containing app/)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[config] invalid %s=%r, using default %s", name, raw, default)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


# Upstream services (docker-compose service names by default)
EMBEDDING_BASE_URL: str = _env_str("EMBEDDING_BASE_URL", "http://python-flask:5001").rstrip("/")
GENERATION_BASE_URL: str = _env_str("GENERATION_BASE_URL", "http://llama:11434").rstrip("/")
GENERATION_MODEL: str = _env_str("GENERATION_MODEL", "llama3.2:1b")

# Prompt template name (see app/services/prompt_builder.py)
PROMPT_TEMPLATE: str = _env_str("PROMPT_TEMPLATE", "bank_assistant")

# Per-stage timeouts (seconds). Generation is much slower than embedding.
EMBEDDING_TIMEOUT: float = _env_float("EMBEDDING_TIMEOUT", 5.0)
GENERATION_TIMEOUT: float = _env_float("GENERATION_TIMEOUT", 30.0)
REPOSITORY_TIMEOUT: float = _env_float("REPOSITORY_TIMEOUT", 5.0)

# Retry policy: extra attempts after the first, fixed backoff in seconds
EMBEDDING_MAX_RETRIES: int = _env_int("EMBEDDING_MAX_RETRIES", 1)
GENERATION_MAX_RETRIES: int = _env_int("GENERATION_MAX_RETRIES", 1)
REPOSITORY_MAX_RETRIES: int = _env_int("REPOSITORY_MAX_RETRIES", 0)
EMBEDDING_RETRY_BACKOFF: float = _env_float("EMBEDDING_RETRY_BACKOFF", 0.2)
GENERATION_RETRY_BACKOFF: float = _env_float("GENERATION_RETRY_BACKOFF", 0.2)
REPOSITORY_RETRY_BACKOFF: float = _env_float("REPOSITORY_RETRY_BACKOFF", 0.2)

# Context retrieval
MAX_CONTEXT_RECORDS: int = _env_int("MAX_CONTEXT_RECORDS", 5)
# "sqlite" (transactions table) or "sample" (fixed demo dataset)
CONTEXT_SOURCE: str = _env_str("CONTEXT_SOURCE", "sqlite").lower()
TRANSACTIONS_DB_PATH: Path = Path(
    _env_str("TRANSACTIONS_DB_PATH", str(PROJECT_ROOT / "data" / "transactions.db"))
)

# Run embedding and retrieval concurrently (retrieval does not use the vector by default)
PARALLEL_RETRIEVAL: bool = _env_bool("PARALLEL_RETRIEVAL", False)

# Include diagnostics (embedding dims, context count, timings) in /ask responses
EXPOSE_DIAGNOSTICS: bool = _env_bool("EXPOSE_DIAGNOSTICS", False)

# Static bearer token for /ask. Empty disables auth.
API_TOKEN: str = os.getenv("API_TOKEN", "").strip()

LOG_LEVEL: str = _env_str("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class StagePolicy:
    """Timeout and retry bounds for one pipeline stage."""

    timeout: float
    max_retries: int = 0
    backoff: float = 0.0


@dataclass(frozen=True)
class PipelineSettings:
    """Orchestrator configuration. Defaults come from the environment."""

    embedding: StagePolicy = StagePolicy(
        EMBEDDING_TIMEOUT, EMBEDDING_MAX_RETRIES, EMBEDDING_RETRY_BACKOFF
    )
    retrieval: StagePolicy = StagePolicy(
        REPOSITORY_TIMEOUT, REPOSITORY_MAX_RETRIES, REPOSITORY_RETRY_BACKOFF
    )
    generation: StagePolicy = StagePolicy(
        GENERATION_TIMEOUT, GENERATION_MAX_RETRIES, GENERATION_RETRY_BACKOFF
    )
    max_context_records: int = MAX_CONTEXT_RECORDS
    parallel_retrieval: bool = PARALLEL_RETRIEVAL
