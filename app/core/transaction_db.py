"""
Lightweight SQLite store for bank transactions used as RAG context.

Creates data/transactions.db (relative to project root) unless TRANSACTIONS_DB_PATH
is set. Table: transactions (id, amount, type, date, description, created_at).
"""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime, timezone

from app.core.config import TRANSACTIONS_DB_PATH

logger = logging.getLogger(__name__)

_TABLE = "transactions"


def _get_conn(db_path: Path | None = None) -> sqlite3.Connection:
    path = Path(db_path or TRANSACTIONS_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))


def init_db(db_path: Path | None = None) -> None:
    """Create the transactions table if it does not exist."""
    conn = _get_conn(db_path)
    try:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                amount REAL NOT NULL,
                type TEXT NOT NULL,
                date TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    finally:
        conn.close()


def add_transaction(
    amount: float,
    type_: str,
    date: str,
    description: str = "",
    db_path: Path | None = None,
) -> None:
    """Insert one transaction. date is ISO-8601 (YYYY-MM-DD) so it sorts lexically."""
    init_db(db_path)
    conn = _get_conn(db_path)
    try:
        conn.execute(
            f"INSERT INTO {_TABLE} (amount, type, date, description, created_at) VALUES (?, ?, ?, ?, ?)",
            (amount, type_, date, description, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        logger.info("[transaction_db] added type=%s date=%s amount=%s", type_, date, amount)
    finally:
        conn.close()


def get_recent(limit: int, db_path: Path | None = None) -> list[tuple]:
    """Return up to `limit` rows (amount, type, date, description), most recent first."""
    if limit <= 0:
        return []
    init_db(db_path)
    conn = _get_conn(db_path)
    try:
        cur = conn.execute(
            f"SELECT amount, type, date, description FROM {_TABLE} ORDER BY date DESC, id DESC LIMIT ?",
            (limit,),
        )
        return cur.fetchall()
    finally:
        conn.close()


def clear_all(db_path: Path | None = None) -> None:
    """Delete all rows."""
    init_db(db_path)
    conn = _get_conn(db_path)
    try:
        conn.execute(f"DELETE FROM {_TABLE}")
        conn.commit()
        logger.info("[transaction_db] cleared all transactions")
    finally:
        conn.close()
