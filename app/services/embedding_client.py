"""
Embedding client: turn the user query into a vector via the embedding service.

Responsibility: One POST {base_url}/embed per call, classify failures into the
error taxonomy. No retry here; the orchestrator owns retry policy.
"""

import logging

import httpx

from app.core.config import EMBEDDING_BASE_URL, EMBEDDING_TIMEOUT
from app.core.errors import (
    MalformedUpstreamResponseError,
    QueryValidationError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)


def raise_for_upstream_status(service: str, response: httpx.Response) -> None:
    """
    Map a non-2xx response to the error taxonomy. 5xx and 429 mean the service
    is reachable but not serving (transient); other statuses mean it rejected
    the request, which a retry will not fix.
    """
    status = response.status_code
    if 200 <= status < 300:
        return
    logger.warning("[%s] upstream error %s: %s", service, status, response.text[:200])
    if status >= 500 or status == 429:
        raise UpstreamUnavailableError(f"{service} returned HTTP {status}")
    raise MalformedUpstreamResponseError(f"{service} rejected request with HTTP {status}")


class EmbeddingClient:
    """Async client for the embedding service. The httpx client (and its pool) is shared."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = EMBEDDING_BASE_URL,
        timeout: float = EMBEDDING_TIMEOUT,
    ) -> None:
        self._http = http_client
        self.url = f"{base_url.rstrip('/')}/embed"
        self.timeout = timeout

    async def embed(self, text: str) -> list[float]:
        """
        Embed `text` and return the vector.

        Raises UpstreamUnavailableError, UpstreamTimeoutError or
        MalformedUpstreamResponseError.
        """
        if not text or not text.strip():
            raise QueryValidationError("text to embed must be non-empty")
        logger.info("[embedding:embed] IN  text_len=%d url=%s", len(text), self.url)
        try:
            response = await self._http.post(self.url, json={"text": text}, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"embedding request timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(f"embedding service unreachable: {e!s}") from e

        raise_for_upstream_status("embedding", response)

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("[embedding:embed] non-JSON body: %r", response.text[:200])
            raise MalformedUpstreamResponseError("embedding response is not valid JSON") from e

        vector = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(vector, list) or not vector:
            logger.warning("[embedding:embed] missing embedding field: %r", response.text[:200])
            raise MalformedUpstreamResponseError("embedding response has no 'embedding' list")
        if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector):
            raise MalformedUpstreamResponseError("embedding vector contains non-numeric values")

        out = [float(x) for x in vector]
        logger.info("[embedding:embed] OUT dims=%d", len(out))
        return out
