"""
Tests for context repositories and the sqlite transaction store.
"""

import asyncio
import sqlite3
from pathlib import Path

import pytest

from app.core import transaction_db
from app.core.errors import RepositoryUnavailableError
from app.services.context_repository import (
    SAMPLE_TRANSACTIONS,
    SampleContextRepository,
    SqliteTransactionRepository,
    build_repository,
)
from app.services.models import ContextRecord
from app.services.prompt_builder import serialize_records


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "transactions.db"


def test_sample_repository_most_recent_first() -> None:
    records = asyncio.run(SampleContextRepository().fetch("anything", 5))
    assert [r.date for r in records] == ["2025-09-25", "2025-09-24", "2025-09-23"]
    assert records[0].description == "Salary deposit"


def test_sample_repository_respects_limit() -> None:
    repo = SampleContextRepository()
    assert len(asyncio.run(repo.fetch("q", 2))) == 2
    assert asyncio.run(repo.fetch("q", 0)) == []


def test_sqlite_repository_orders_by_date_desc(db_path: Path) -> None:
    transaction_db.add_transaction(-75, "withdrawal", "2025-09-23", "Grocery store", db_path=db_path)
    transaction_db.add_transaction(2500, "deposit", "2025-09-25", "Salary deposit", db_path=db_path)
    transaction_db.add_transaction(-150, "withdrawal", "2025-09-24", "ATM withdrawal", db_path=db_path)

    records = asyncio.run(SqliteTransactionRepository(db_path).fetch("q", 5, embedding=[0.1, 0.2]))
    assert records == [
        ContextRecord(2500, "deposit", "2025-09-25", "Salary deposit"),
        ContextRecord(-150, "withdrawal", "2025-09-24", "ATM withdrawal"),
        ContextRecord(-75, "withdrawal", "2025-09-23", "Grocery store"),
    ]


def test_sqlite_repository_limit_and_empty(db_path: Path) -> None:
    repo = SqliteTransactionRepository(db_path)
    assert asyncio.run(repo.fetch("q", 5)) == []
    for i in range(8):
        transaction_db.add_transaction(i, "deposit", f"2025-01-{i + 1:02d}", db_path=db_path)
    records = asyncio.run(repo.fetch("q", 5))
    assert len(records) == 5
    assert records[0].date == "2025-01-08"


def test_sqlite_and_sample_records_serialize_identically(db_path: Path) -> None:
    for record in reversed(SAMPLE_TRANSACTIONS):
        transaction_db.add_transaction(record.amount, record.type, record.date, record.description, db_path=db_path)
    from_sqlite = asyncio.run(SqliteTransactionRepository(db_path).fetch("q", 5))
    from_sample = asyncio.run(SampleContextRepository().fetch("q", 5))
    assert serialize_records(from_sqlite) == serialize_records(from_sample)
    assert '"amount":2500,' in serialize_records(from_sqlite)


def test_clear_all(db_path: Path) -> None:
    transaction_db.add_transaction(1, "deposit", "2025-01-01", db_path=db_path)
    transaction_db.clear_all(db_path=db_path)
    assert transaction_db.get_recent(5, db_path=db_path) == []


def test_sqlite_error_becomes_repository_unavailable(db_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(limit, db_path=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(transaction_db, "get_recent", broken)
    with pytest.raises(RepositoryUnavailableError):
        asyncio.run(SqliteTransactionRepository(db_path).fetch("q", 5))


def test_build_repository() -> None:
    assert isinstance(build_repository("sample"), SampleContextRepository)
    assert isinstance(build_repository("sqlite"), SqliteTransactionRepository)
    with pytest.raises(ValueError):
        build_repository("pinecone")

