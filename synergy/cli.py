"""
Relationship Sync Command

Runs the pharmacy relationship sync for one statistical date from an
order export file.

Usage:
    synergy-sync --date 2025-01-15 --orders data/orders_2025-01-15.csv
    synergy-sync --date 2025-01-15 --orders orders.parquet --database-url sqlite+aiosqlite:///league.db
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import List, Optional

from synergy.config.logging import configure_logging
from synergy.database.connection import close_database, get_session_factory, init_database
from synergy.ingestion.order_records import read_order_rows
from synergy.relationships.pipeline import sync_pharmacy_relationships
from synergy.relationships.writer import SnapshotWriteResult, WriteStatus


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild pharmacy relationships for one date")
    parser.add_argument(
        "--date",
        dest="stat_date",
        type=date.fromisoformat,
        required=True,
        help="Statistical date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--orders",
        required=True,
        help="Order export file (csv, json, jsonl, parquet)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy async URL (default: from POSTGRES_* settings)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> SnapshotWriteResult:
    rows = read_order_rows(args.orders)

    await init_database(args.database_url)
    try:
        return await sync_pharmacy_relationships(
            args.stat_date,
            rows,
            session_factory=get_session_factory(),
        )
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    result = asyncio.run(run(args))
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    return 1 if result.status == WriteStatus.FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
