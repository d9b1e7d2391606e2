#!/usr/bin/env python3
"""
Seed the transactions SQLite DB for demos or tests.

Creates data/transactions.db (or TRANSACTIONS_DB_PATH) if missing, ensures the
transactions table exists, and inserts the sample transactions. Use --reset to
clear existing rows first.

Run from project root:

    python scripts/seed_transactions.py
    python scripts/seed_transactions.py --reset
"""

import argparse
import sys
from pathlib import Path

# Project root on path so "app" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from app.core.transaction_db import add_transaction, clear_all, init_db
from app.services.context_repository import SAMPLE_TRANSACTIONS


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed transactions DB for demos/tests.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear all existing rows before inserting the sample transactions.",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite file (defaults to TRANSACTIONS_DB_PATH).",
    )
    args = parser.parse_args()

    init_db(args.db)
    if args.reset:
        clear_all(args.db)
        print("Cleared existing transactions.")

    for record in SAMPLE_TRANSACTIONS:
        add_transaction(record.amount, record.type, record.date, record.description, db_path=args.db)
        print(f"  added: {record.date} {record.type} {record.amount}")

    print(f"Done. Seeded {len(SAMPLE_TRANSACTIONS)} transactions.")


if __name__ == "__main__":
    main()
