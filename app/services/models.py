"""Request-scoped domain types for the ask pipeline."""

from dataclasses import dataclass, field
from typing import Any

from app.core.errors import ErrorKind


@dataclass(frozen=True)
class ContextRecord:
    """One transaction used as grounding context."""

    amount: float
    type: str
    date: str
    description: str = ""

    def as_dict(self) -> dict[str, Any]:
        """Canonical field order used when rendering prompts."""
        amount = self.amount
        # sqlite REAL columns hand back 2500.0; render whole amounts the same from every source
        if isinstance(amount, float) and amount.is_integer():
            amount = int(amount)
        return {
            "amount": amount,
            "type": self.type,
            "date": self.date,
            "description": self.description,
        }


@dataclass(frozen=True)
class PromptPayload:
    """Rendered prompt plus model selection. Never cached: it embeds user input."""

    prompt: str
    model: str
    stream: bool = False


@dataclass(frozen=True)
class GenerationResult:
    """Generated text and whatever metadata the model server reported."""

    text: str
    model: str | None = None
    prompt_eval_count: int | None = None
    eval_count: int | None = None
    total_duration: int | None = None


@dataclass
class Diagnostics:
    """Per-run facts reported alongside a successful answer."""

    embedding_dimensions: int = 0
    context_count: int = 0
    model: str | None = None
    timings_ms: dict[str, float] = field(default_factory=dict)
    attempts: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "embedding_dimensions": self.embedding_dimensions,
            "context_count": self.context_count,
            "model": self.model,
            "timings_ms": dict(self.timings_ms),
            "attempts": dict(self.attempts),
        }


@dataclass(frozen=True)
class RagResponse:
    """
    Terminal result of one pipeline run. Exactly one shape is populated:
    (answer, diagnostics) on success, (error_kind, message) on failure.
    Build with RagResponse.success() / RagResponse.failure().
    """

    answer: str | None = None
    diagnostics: Diagnostics | None = None
    error_kind: ErrorKind | None = None
    message: str | None = None
    stage: str | None = None

    @classmethod
    def success(cls, answer: str, diagnostics: Diagnostics) -> "RagResponse":
        if not answer or not answer.strip():
            raise ValueError("successful response requires a non-empty answer")
        return cls(answer=answer, diagnostics=diagnostics)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, stage: str | None = None) -> "RagResponse":
        return cls(error_kind=kind, message=message, stage=stage)

    @property
    def ok(self) -> bool:
        return self.error_kind is None
