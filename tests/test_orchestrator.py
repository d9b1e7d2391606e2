"""
Unit tests for QueryOrchestrator: validation, retry bounds, short-circuit,
parallel retrieval, timeouts and cancellation.

Uses in-memory fakes for the clients so no network or sqlite is touched.
"""

import asyncio

import pytest

from app.core.config import PipelineSettings, StagePolicy
from app.core.errors import (
    ErrorKind,
    MalformedUpstreamResponseError,
    RepositoryUnavailableError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from app.services.context_repository import SampleContextRepository
from app.services.models import GenerationResult, PromptPayload
from app.services.orchestrator import QueryOrchestrator
from app.services.prompt_builder import PromptBuilder

ANSWER = "Your last transaction was a deposit of 2500."


class FakeEmbedder:
    def __init__(self, vector=None, errors=None, delay: float = 0.0) -> None:
        self.vector = vector or [0.1, 0.2, 0.3, 0.4]
        self.errors = list(errors or [])
        self.delay = delay
        self.calls = 0
        self.cancelled = False

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.errors:
            err = self.errors.pop(0) if len(self.errors) > 1 else self.errors[0]
            if err is not None:
                raise err
        return self.vector


class FakeRepository:
    name = "fake"

    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.calls = 0
        self.last_embedding = "unset"
        self.inner = SampleContextRepository()

    async def fetch(self, query, limit, embedding=None):
        self.calls += 1
        self.last_embedding = embedding
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return await self.inner.fetch(query, limit, embedding)


class FakeGenerator:
    def __init__(self, text: str = ANSWER, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls = 0
        self.payloads: list[PromptPayload] = []

    async def generate(self, payload: PromptPayload) -> GenerationResult:
        self.calls += 1
        self.payloads.append(payload)
        if self.error:
            raise self.error
        return GenerationResult(text=self.text, model="llama3.2:1b", eval_count=12)


class FlakyGenerator(FakeGenerator):
    """Raises the queued errors first, then answers."""

    def __init__(self, failures) -> None:
        super().__init__()
        self.failures = list(failures)

    async def generate(self, payload: PromptPayload) -> GenerationResult:
        if self.failures:
            self.calls += 1
            raise self.failures.pop(0)
        return await super().generate(payload)


def fast_settings(**overrides) -> PipelineSettings:
    values = dict(
        embedding=StagePolicy(timeout=1.0, max_retries=1, backoff=0.0),
        retrieval=StagePolicy(timeout=1.0, max_retries=0, backoff=0.0),
        generation=StagePolicy(timeout=1.0, max_retries=1, backoff=0.0),
        max_context_records=5,
        parallel_retrieval=False,
    )
    values.update(overrides)
    return PipelineSettings(**values)


def make_orchestrator(embedder=None, repository=None, generator=None, settings=None):
    embedder = embedder or FakeEmbedder()
    repository = repository or FakeRepository()
    generator = generator or FakeGenerator()
    orchestrator = QueryOrchestrator(
        embedding_client=embedder,
        repository=repository,
        prompt_builder=PromptBuilder(model="llama3.2:1b", template="bank_assistant"),
        generation_client=generator,
        settings=settings or fast_settings(),
    )
    return orchestrator, embedder, repository, generator


class TestValidation:
    @pytest.mark.parametrize("query", ["", "   ", "\n\t", None])
    def test_blank_query_rejected_without_calls(self, query) -> None:
        orchestrator, embedder, repository, generator = make_orchestrator()
        result = asyncio.run(orchestrator.answer(query))
        assert result.error_kind is ErrorKind.VALIDATION
        assert result.message == "Query is required"
        assert result.answer is None
        assert (embedder.calls, repository.calls, generator.calls) == (0, 0, 0)


class TestSuccess:
    def test_success_shape(self) -> None:
        orchestrator, embedder, repository, generator = make_orchestrator()
        result = asyncio.run(orchestrator.answer("  What is my last transaction?  "))
        assert result.ok
        assert result.answer == ANSWER
        assert result.error_kind is None and result.message is None
        assert result.diagnostics.embedding_dimensions == 4
        assert result.diagnostics.context_count == 3
        assert result.diagnostics.attempts == {"embedding": 1, "retrieving": 1, "generating": 1}

    def test_query_is_trimmed_and_embedding_passed_to_repository(self) -> None:
        orchestrator, embedder, repository, generator = make_orchestrator()
        asyncio.run(orchestrator.answer("  What is my last transaction?  "))
        assert repository.last_embedding == [0.1, 0.2, 0.3, 0.4]
        prompt = generator.payloads[0].prompt
        assert "Answer this customer question: What is my last transaction?\n" in prompt
        assert generator.payloads[0].stream is False

    def test_max_context_records_bounds_fetch(self) -> None:
        orchestrator, _, _, _ = make_orchestrator(settings=fast_settings(max_context_records=2))
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.diagnostics.context_count == 2

    def test_empty_generation_is_malformed_and_not_retried(self) -> None:
        generator = FakeGenerator(text="   ")
        orchestrator, _, _, _ = make_orchestrator(generator=generator)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.MALFORMED_UPSTREAM_RESPONSE
        assert generator.calls == 1


class TestFailures:
    def test_non_transient_embedding_failure_short_circuits(self) -> None:
        embedder = FakeEmbedder(errors=[MalformedUpstreamResponseError("no embedding field")])
        orchestrator, _, repository, generator = make_orchestrator(embedder=embedder)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.MALFORMED_UPSTREAM_RESPONSE
        assert result.message == "Embedding service failed"
        assert embedder.calls == 1
        assert repository.calls == 0
        assert generator.calls == 0

    def test_transient_embedding_failure_retried_then_succeeds(self) -> None:
        embedder = FakeEmbedder(errors=[UpstreamUnavailableError("503"), None])
        orchestrator, _, _, generator = make_orchestrator(embedder=embedder)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.ok
        assert embedder.calls == 2
        assert result.diagnostics.attempts["embedding"] == 2

    @pytest.mark.parametrize("max_retries", [0, 1, 3])
    def test_generation_timeout_retry_bound(self, max_retries: int) -> None:
        generator = FakeGenerator(error=UpstreamTimeoutError("timed out"))
        settings = fast_settings(generation=StagePolicy(timeout=1.0, max_retries=max_retries, backoff=0.0))
        orchestrator, _, _, _ = make_orchestrator(generator=generator, settings=settings)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.UPSTREAM_TIMEOUT
        assert result.message == "LLM service failed"
        assert generator.calls == 1 + max_retries

    def test_repository_failure_not_retried_by_default(self) -> None:
        repository = FakeRepository(error=RepositoryUnavailableError("disk gone"))
        orchestrator, _, _, generator = make_orchestrator(repository=repository)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.REPOSITORY_UNAVAILABLE
        assert result.message == "Context retrieval failed"
        assert repository.calls == 1
        assert generator.calls == 0

    def test_retrieval_deadline_reported_as_repository_unavailable(self) -> None:
        repository = FakeRepository(delay=1.0)
        settings = fast_settings(retrieval=StagePolicy(timeout=0.05, max_retries=0, backoff=0.0))
        orchestrator, _, _, generator = make_orchestrator(repository=repository, settings=settings)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.REPOSITORY_UNAVAILABLE
        assert result.message == "Context retrieval failed"
        assert result.stage == "retrieving"
        assert repository.calls == 1
        assert generator.calls == 0

    def test_generation_transient_failure_retried_then_succeeds(self) -> None:
        generator = FlakyGenerator(failures=[UpstreamTimeoutError("timed out")])
        orchestrator, _, _, _ = make_orchestrator(generator=generator)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.ok
        assert result.answer == ANSWER
        assert generator.calls == 2
        assert result.diagnostics.attempts["generating"] == 2

    def test_repository_retries_are_configurable(self) -> None:
        repository = FakeRepository(error=RepositoryUnavailableError("disk gone"))
        settings = fast_settings(retrieval=StagePolicy(timeout=1.0, max_retries=2, backoff=0.0))
        orchestrator, _, _, _ = make_orchestrator(repository=repository, settings=settings)
        asyncio.run(orchestrator.answer("hello"))
        assert repository.calls == 3

    def test_stage_deadline_reported_as_timeout(self) -> None:
        embedder = FakeEmbedder(delay=1.0)
        settings = fast_settings(embedding=StagePolicy(timeout=0.05, max_retries=0, backoff=0.0))
        orchestrator, _, _, generator = make_orchestrator(embedder=embedder, settings=settings)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.UPSTREAM_TIMEOUT
        assert result.message == "Embedding service failed"
        assert generator.calls == 0

    def test_unexpected_exception_is_internal_error(self) -> None:
        generator = FakeGenerator(error=KeyError("boom"))
        orchestrator, _, _, _ = make_orchestrator(generator=generator)
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.INTERNAL
        assert result.message == "Internal error"
        assert generator.calls == 1


class TestParallelRetrieval:
    def test_parallel_success(self) -> None:
        orchestrator, _, repository, _ = make_orchestrator(settings=fast_settings(parallel_retrieval=True))
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.ok
        assert repository.calls == 1
        assert repository.last_embedding is None

    def test_only_retrieval_fails(self) -> None:
        repository = FakeRepository(error=RepositoryUnavailableError("down"))
        orchestrator, embedder, _, generator = make_orchestrator(
            repository=repository, settings=fast_settings(parallel_retrieval=True)
        )
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.REPOSITORY_UNAVAILABLE
        assert result.stage == "retrieving"
        assert result.message == "Context retrieval failed"
        assert embedder.calls == 1
        assert generator.calls == 0

    def test_only_embedding_fails(self) -> None:
        embedder = FakeEmbedder(errors=[MalformedUpstreamResponseError("bad")])
        orchestrator, _, repository, generator = make_orchestrator(
            embedder=embedder, settings=fast_settings(parallel_retrieval=True)
        )
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.MALFORMED_UPSTREAM_RESPONSE
        assert result.stage == "embedding"
        assert result.message == "Embedding service failed"
        assert repository.calls == 1
        assert generator.calls == 0

    def test_both_fail_reports_embedding(self) -> None:
        embedder = FakeEmbedder(errors=[MalformedUpstreamResponseError("bad")])
        repository = FakeRepository(error=RepositoryUnavailableError("down"))
        orchestrator, _, _, generator = make_orchestrator(
            embedder=embedder, repository=repository, settings=fast_settings(parallel_retrieval=True)
        )
        result = asyncio.run(orchestrator.answer("hello"))
        assert result.error_kind is ErrorKind.MALFORMED_UPSTREAM_RESPONSE
        assert result.stage == "embedding"
        assert repository.calls == 1
        assert generator.calls == 0


class TestCancellation:
    def test_cancel_propagates_to_inflight_call(self) -> None:
        embedder = FakeEmbedder(delay=10.0)
        settings = fast_settings(embedding=StagePolicy(timeout=30.0, max_retries=1, backoff=0.0))
        orchestrator, _, repository, generator = make_orchestrator(embedder=embedder, settings=settings)

        async def run() -> None:
            task = asyncio.create_task(orchestrator.answer("hello"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())
        assert embedder.cancelled
        assert embedder.calls == 1
        assert repository.calls == 0
        assert generator.calls == 0
