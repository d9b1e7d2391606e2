"""
Generation client: Ollama-style /api/generate, streaming disabled.

Responsibility: Send one PromptPayload, return the complete answer text and
any metadata the model server reports. Failure classification mirrors the
embedding client.
"""

import logging

import httpx

from app.core.config import GENERATION_BASE_URL, GENERATION_TIMEOUT
from app.core.errors import (
    MalformedUpstreamResponseError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from app.services.embedding_client import raise_for_upstream_status
from app.services.models import GenerationResult, PromptPayload

logger = logging.getLogger(__name__)


def _optional_int(data: dict, key: str) -> int | None:
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class GenerationClient:
    """Async client for the generative model server."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = GENERATION_BASE_URL,
        timeout: float = GENERATION_TIMEOUT,
    ) -> None:
        self._http = http_client
        self.url = f"{base_url.rstrip('/')}/api/generate"
        self.timeout = timeout

    async def generate(self, payload: PromptPayload) -> GenerationResult:
        logger.info(
            "[generation:generate] IN  model=%s prompt_len=%d", payload.model, len(payload.prompt)
        )
        logger.debug("[generation:generate] prompt_sample=%r", payload.prompt[:500])
        body = {"model": payload.model, "prompt": payload.prompt, "stream": False}
        try:
            response = await self._http.post(self.url, json=body, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"generation request timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(f"generation service unreachable: {e!s}") from e

        raise_for_upstream_status("generation", response)

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("[generation:generate] non-JSON body: %r", response.text[:200])
            raise MalformedUpstreamResponseError("generation response is not valid JSON") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            logger.warning("[generation:generate] missing response field: %r", response.text[:200])
            raise MalformedUpstreamResponseError("generation response has no 'response' string")

        result = GenerationResult(
            text=text,
            model=data.get("model") if isinstance(data.get("model"), str) else None,
            prompt_eval_count=_optional_int(data, "prompt_eval_count"),
            eval_count=_optional_int(data, "eval_count"),
            total_duration=_optional_int(data, "total_duration"),
        )
        logger.info("[generation:generate] OUT response_len=%d", len(text))
        return result
