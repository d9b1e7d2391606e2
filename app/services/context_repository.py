"""
Context retrieval: supply the transactions that ground the answer.

Responsibility: Return the most recent N context records for a query. The
embedding is accepted so a similarity-search implementation can replace the
recency policy without touching the orchestrator.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import Protocol, Sequence

from app.core import transaction_db
from app.core.errors import RepositoryUnavailableError
from app.services.models import ContextRecord

logger = logging.getLogger(__name__)

# Demo dataset (used when CONTEXT_SOURCE=sample and in tests)
SAMPLE_TRANSACTIONS: tuple[ContextRecord, ...] = (
    ContextRecord(amount=2500, type="deposit", date="2025-09-25", description="Salary deposit"),
    ContextRecord(amount=-150, type="withdrawal", date="2025-09-24", description="ATM withdrawal"),
    ContextRecord(amount=-75, type="withdrawal", date="2025-09-23", description="Grocery store"),
)


class ContextRepository(Protocol):
    """Read-only source of context records, most recent first."""

    name: str

    async def fetch(
        self, query: str, limit: int, embedding: Sequence[float] | None = None
    ) -> list[ContextRecord]:
        ...


def most_recent(records: Sequence[ContextRecord], limit: int) -> list[ContextRecord]:
    """Sort by date descending (stable for ties) and keep the first `limit`."""
    if limit <= 0:
        return []
    return sorted(records, key=lambda r: r.date, reverse=True)[:limit]


class SampleContextRepository:
    """Fixed in-memory dataset. Query and embedding are ignored."""

    name = "sample"

    def __init__(self, records: Sequence[ContextRecord] = SAMPLE_TRANSACTIONS) -> None:
        self._records = tuple(records)

    async def fetch(
        self, query: str, limit: int, embedding: Sequence[float] | None = None
    ) -> list[ContextRecord]:
        out = most_recent(self._records, limit)
        logger.info("[context:sample] OUT records=%d", len(out))
        return out


class SqliteTransactionRepository:
    """Most recent transactions from the sqlite store. Query and embedding are ignored."""

    name = "sqlite"

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    def _load(self, limit: int) -> list[ContextRecord]:
        rows = transaction_db.get_recent(limit, db_path=self.db_path)
        return [
            ContextRecord(amount=amount, type=type_, date=date, description=description or "")
            for amount, type_, date, description in rows
        ]

    async def fetch(
        self, query: str, limit: int, embedding: Sequence[float] | None = None
    ) -> list[ContextRecord]:
        logger.info("[context:sqlite] IN  limit=%d", limit)
        try:
            records = await asyncio.to_thread(self._load, limit)
        except (sqlite3.Error, OSError) as e:
            logger.warning("[context:sqlite] read failed: %s", e)
            raise RepositoryUnavailableError(f"transaction store unavailable: {e!s}") from e
        logger.info("[context:sqlite] OUT records=%d", len(records))
        return records


def build_repository(source: str, db_path: Path | None = None) -> ContextRepository:
    """Pick the repository implementation named by CONTEXT_SOURCE."""
    if source == "sample":
        return SampleContextRepository()
    if source == "sqlite":
        return SqliteTransactionRepository(db_path)
    raise ValueError(f"Unknown context source: {source!r} (expected 'sqlite' or 'sample')")
