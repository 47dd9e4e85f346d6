"""
Pharmacy Relationship Sync

Aggregation entry point called by the data-sync orchestrator once per
statistical date:

    catalog load -> entity resolver -> aggregate -> replace snapshot

Returns the writer's processed/skipped counts; deciding whether a skip ratio
warrants an alert is left to the caller.
"""

from datetime import date
from typing import Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from synergy.config import Settings, get_settings
from synergy.database.connection import get_session_factory
from synergy.ingestion.catalog import load_catalog
from .aggregator import OrderRow, RelationshipAggregator
from .resolver import EntityResolver
from .writer import SnapshotWriter, SnapshotWriteResult

logger = structlog.get_logger(__name__)


async def sync_pharmacy_relationships(
    stat_date: date,
    orders: Iterable[OrderRow],
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[Settings] = None,
) -> SnapshotWriteResult:
    """
    Rebuild the relationship snapshot for one statistical date.

    Args:
        stat_date: Date the snapshot is stored under
        orders: Order records (or raw export rows) for that date; rows that
            fail validation are counted and skipped
        session_factory: Defaults to the initialized global factory
        settings: Defaults to the cached application settings

    Returns:
        SnapshotWriteResult with processed/skipped counts
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    records = list(orders)

    structlog.contextvars.bind_contextvars(stat_date=stat_date.isoformat())
    try:
        async with session_factory() as session:
            catalog = await load_catalog(session)

        aggregator = RelationshipAggregator(
            EntityResolver.from_catalog(catalog),
            sample_limit=settings.relationships.unmatched_sample_size,
        )
        aggregation = aggregator.aggregate(stat_date, records)

        writer = SnapshotWriter(
            session_factory,
            timeout_seconds=settings.database.statement_timeout_seconds,
            error_log_limit=settings.relationships.insert_error_log_limit,
        )
        result = await writer.write(stat_date, aggregation.candidates)

        logger.info(
            "Pharmacy relationship sync finished",
            orders=len(records),
            invalid_records=aggregation.diagnostics.invalid_records,
            discarded=aggregation.diagnostics.discarded,
            processed=result.processed,
            skipped=result.skipped,
            skip_ratio=round(result.skip_ratio, 4),
            status=result.status.value,
        )
        return result
    finally:
        structlog.contextvars.unbind_contextvars("stat_date")
