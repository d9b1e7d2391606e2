"""
Query orchestrator: validate, embed, retrieve, prompt, generate.

Responsibility: Run the ask pipeline as a strict sequence of stages, each with
its own timeout and retry bound, and turn the outcome into a RagResponse.
Clients raise; this module converts exceptions into StageFailure values at
the stage boundary and decides retry vs. short-circuit from the error kind.
Called by the API; no HTTP here.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from app.core.config import PipelineSettings, StagePolicy
from app.core.errors import (
    ErrorKind,
    MalformedUpstreamResponseError,
    PipelineError,
    StageFailure,
)
from app.services.context_repository import ContextRepository
from app.services.embedding_client import EmbeddingClient
from app.services.generation_client import GenerationClient
from app.services.models import (
    ContextRecord,
    Diagnostics,
    GenerationResult,
    PromptPayload,
    RagResponse,
)
from app.services.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    EMBEDDING = "embedding"
    RETRIEVING = "retrieving"
    PROMPTING = "prompting"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


QUERY_REQUIRED_MESSAGE = "Query is required"
INTERNAL_ERROR_MESSAGE = "Internal error"

# User-facing text per failing stage; upstream detail stays in the logs
STAGE_MESSAGES: dict[PipelineStage, str] = {
    PipelineStage.EMBEDDING: "Embedding service failed",
    PipelineStage.RETRIEVING: "Context retrieval failed",
    PipelineStage.GENERATING: "LLM service failed",
}

_TRANSIENT_KINDS = frozenset(k for k in ErrorKind if k.transient)


@dataclass
class StageOutcome:
    """What one stage produced: a value or a failure, plus bookkeeping."""

    value: Any = None
    failure: StageFailure | None = None
    attempts: int = 0
    elapsed_ms: float = 0.0


def user_message(stage: PipelineStage, kind: ErrorKind) -> str:
    if kind is ErrorKind.VALIDATION:
        return QUERY_REQUIRED_MESSAGE
    if kind is ErrorKind.INTERNAL:
        return INTERNAL_ERROR_MESSAGE
    return STAGE_MESSAGES.get(stage, INTERNAL_ERROR_MESSAGE)


class QueryOrchestrator:
    """One instance serves many requests; no per-request state is kept on it."""

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        repository: ContextRepository,
        prompt_builder: PromptBuilder,
        generation_client: GenerationClient,
        settings: PipelineSettings | None = None,
    ) -> None:
        self.embedding_client = embedding_client
        self.repository = repository
        self.prompt_builder = prompt_builder
        self.generation_client = generation_client
        self.settings = settings or PipelineSettings()

    async def answer(self, query: str | None) -> RagResponse:
        """
        Run the pipeline for one query. Always returns a RagResponse, except on
        cancellation: asyncio.CancelledError propagates to the caller after the
        in-flight upstream call has been cancelled.
        """
        logger.info("[orchestrator:answer] IN  query=%r", query)
        if not isinstance(query, str) or not query.strip():
            logger.info("[orchestrator:answer] OUT rejected blank query")
            return RagResponse.failure(
                ErrorKind.VALIDATION, QUERY_REQUIRED_MESSAGE, PipelineStage.VALIDATING.value
            )
        query = query.strip()
        diagnostics = Diagnostics(model=self.prompt_builder.model)

        if self.settings.parallel_retrieval:
            embed_out, fetch_out = await asyncio.gather(
                self._embed(query), self._fetch(query, None)
            )
            # Embedding failure wins so stage-order reporting stays stable
            self._record(diagnostics, PipelineStage.EMBEDDING, embed_out)
            self._record(diagnostics, PipelineStage.RETRIEVING, fetch_out)
            for outcome in (embed_out, fetch_out):
                if outcome.failure:
                    return self._fail(outcome.failure)
        else:
            embed_out = await self._embed(query)
            self._record(diagnostics, PipelineStage.EMBEDDING, embed_out)
            if embed_out.failure:
                return self._fail(embed_out.failure)
            fetch_out = await self._fetch(query, embed_out.value)
            self._record(diagnostics, PipelineStage.RETRIEVING, fetch_out)
            if fetch_out.failure:
                return self._fail(fetch_out.failure)

        vector: list[float] = embed_out.value
        records: list[ContextRecord] = fetch_out.value
        diagnostics.embedding_dimensions = len(vector)
        diagnostics.context_count = len(records)

        try:
            payload = self.prompt_builder.build(query, records)
        except Exception as e:
            logger.exception("[orchestrator:prompting] invariant violated")
            return self._fail(
                StageFailure(
                    ErrorKind.INTERNAL,
                    PipelineStage.PROMPTING.value,
                    INTERNAL_ERROR_MESSAGE,
                    repr(e),
                )
            )

        gen_out = await self._run_stage(
            PipelineStage.GENERATING,
            self.settings.generation,
            lambda: self._generate_checked(payload),
            timeout_kind=ErrorKind.UPSTREAM_TIMEOUT,
            retry_on=_TRANSIENT_KINDS,
        )
        self._record(diagnostics, PipelineStage.GENERATING, gen_out)
        if gen_out.failure:
            return self._fail(gen_out.failure)

        result: GenerationResult = gen_out.value
        if result.model:
            diagnostics.model = result.model
        logger.info(
            "[orchestrator:answer] OUT %s answer_len=%d dims=%d context=%d",
            PipelineStage.DONE.value,
            len(result.text),
            diagnostics.embedding_dimensions,
            diagnostics.context_count,
        )
        return RagResponse.success(result.text.strip(), diagnostics)

    async def _embed(self, query: str) -> StageOutcome:
        return await self._run_stage(
            PipelineStage.EMBEDDING,
            self.settings.embedding,
            lambda: self.embedding_client.embed(query),
            timeout_kind=ErrorKind.UPSTREAM_TIMEOUT,
            retry_on=_TRANSIENT_KINDS,
        )

    async def _fetch(self, query: str, vector: Sequence[float] | None) -> StageOutcome:
        return await self._run_stage(
            PipelineStage.RETRIEVING,
            self.settings.retrieval,
            lambda: self.repository.fetch(query, self.settings.max_context_records, vector),
            timeout_kind=ErrorKind.REPOSITORY_UNAVAILABLE,
            retry_on=frozenset({ErrorKind.REPOSITORY_UNAVAILABLE}),
        )

    async def _generate_checked(self, payload: PromptPayload) -> GenerationResult:
        result = await self.generation_client.generate(payload)
        if not result.text.strip():
            raise MalformedUpstreamResponseError("generation returned an empty answer")
        return result

    async def _run_stage(
        self,
        stage: PipelineStage,
        policy: StagePolicy,
        call: Callable[[], Awaitable[Any]],
        timeout_kind: ErrorKind,
        retry_on: frozenset[ErrorKind],
    ) -> StageOutcome:
        """Call with a per-attempt deadline; retry kinds in retry_on up to policy.max_retries."""
        started = time.perf_counter()
        attempts = 0
        while True:
            attempts += 1
            try:
                value = await asyncio.wait_for(call(), timeout=policy.timeout)
            except asyncio.CancelledError:
                logger.info("[orchestrator:%s] cancelled on attempt %d", stage.value, attempts)
                raise
            except asyncio.TimeoutError:
                failure = StageFailure(
                    timeout_kind,
                    stage.value,
                    user_message(stage, timeout_kind),
                    f"{stage.value} exceeded {policy.timeout}s",
                )
            except PipelineError as e:
                failure = StageFailure(e.kind, stage.value, user_message(stage, e.kind), e.message)
            except Exception as e:
                logger.exception("[orchestrator:%s] unexpected error", stage.value)
                failure = StageFailure(
                    ErrorKind.INTERNAL, stage.value, INTERNAL_ERROR_MESSAGE, repr(e)
                )
            else:
                return StageOutcome(
                    value=value,
                    attempts=attempts,
                    elapsed_ms=(time.perf_counter() - started) * 1000,
                )

            if failure.kind not in retry_on or attempts > policy.max_retries:
                logger.warning(
                    "[orchestrator:%s] failed kind=%s attempts=%d detail=%s",
                    stage.value,
                    failure.kind.value,
                    attempts,
                    failure.detail,
                )
                return StageOutcome(
                    failure=failure,
                    attempts=attempts,
                    elapsed_ms=(time.perf_counter() - started) * 1000,
                )
            logger.info(
                "[orchestrator:%s] attempt %d failed (%s), retrying in %.2fs",
                stage.value,
                attempts,
                failure.kind.value,
                policy.backoff,
            )
            await asyncio.sleep(policy.backoff)

    @staticmethod
    def _record(diagnostics: Diagnostics, stage: PipelineStage, outcome: StageOutcome) -> None:
        diagnostics.attempts[stage.value] = outcome.attempts
        diagnostics.timings_ms[stage.value] = round(outcome.elapsed_ms, 2)

    @staticmethod
    def _fail(failure: StageFailure) -> RagResponse:
        logger.info(
            "[orchestrator:answer] OUT %s at %s kind=%s",
            PipelineStage.FAILED.value,
            failure.stage,
            failure.kind.value,
        )
        return RagResponse.failure(failure.kind, failure.message, failure.stage)
