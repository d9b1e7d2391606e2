"""
Prompt rendering for the ask pipeline.

Templates are versioned by name so the two historical prompt styles are
configuration, not separate code paths. Rendering is pure: identical
(query, records) give byte-identical prompts.
"""

import json
import logging
import re
from typing import Sequence

from app.core.config import GENERATION_MODEL, PROMPT_TEMPLATE
from app.core.errors import QueryValidationError
from app.services.models import ContextRecord, PromptPayload

logger = logging.getLogger(__name__)

PROMPT_TEMPLATES: dict[str, str] = {
    "bank_assistant": (
        "You are a helpful bank assistant. Answer this customer question: {query}\n\n"
        "Context from recent transactions: {context}\n\n"
        "Provide a helpful, accurate response."
    ),
    "plain": "Answer the question: {query}\nUse these transactions as context: {context}",
}

_PLACEHOLDER = re.compile(r"\{(query|context)\}")


def serialize_records(records: Sequence[ContextRecord]) -> str:
    """Compact JSON array, fixed field order, ASCII only."""
    return json.dumps(
        [r.as_dict() for r in records],
        ensure_ascii=True,
        separators=(",", ":"),
    )


class PromptBuilder:
    def __init__(self, model: str = GENERATION_MODEL, template: str = PROMPT_TEMPLATE) -> None:
        if template not in PROMPT_TEMPLATES:
            raise ValueError(
                f"Unknown prompt template {template!r}; choose one of {sorted(PROMPT_TEMPLATES)}"
            )
        self.model = model
        self.template_name = template
        self._template = PROMPT_TEMPLATES[template]

    def build(self, query: str, records: Sequence[ContextRecord]) -> PromptPayload:
        if not query or not query.strip():
            raise QueryValidationError("cannot build a prompt for an empty query")
        values = {"query": query, "context": serialize_records(records)}
        # Single pass: placeholders inside the query or the records are left alone
        prompt = _PLACEHOLDER.sub(lambda m: values[m.group(1)], self._template)
        return PromptPayload(prompt=prompt, model=self.model, stream=False)
