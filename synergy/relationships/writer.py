"""
Snapshot Writer

Replaces the persisted relationship rows for one statistical date:
1. delete every row for the date (one statement, one transaction)
2. insert each candidate in its own transaction

Composite keys contain nullable columns, so rows are never upserted; a
re-run for the same date replaces what the previous run wrote.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from enum import Enum
from typing import AsyncIterator, Dict, Optional, Sequence

import structlog
from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from synergy.database.models import PharmacyProductRelationship
from .aggregator import RelationshipCandidate

logger = structlog.get_logger(__name__)

# Connectivity, constraint and timeout failures
STORAGE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


class WriteStatus(str, Enum):
    """Snapshot write status"""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    EMPTY = "empty"


class SnapshotWriteResult(BaseModel):
    """Result of replacing one date's snapshot"""
    stat_date: date
    status: WriteStatus
    processed: int = 0
    skipped: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0

    @property
    def total(self) -> int:
        return self.processed + self.skipped

    @property
    def skip_ratio(self) -> float:
        """Share of candidates that were not written, 0.0 for an empty run"""
        if self.total == 0:
            return 0.0
        return self.skipped / self.total


class DateLocks:
    """
    One asyncio lock per statistical date.

    A date's lock exists only while a writer holds or waits for it, so no lock
    outlives the event loop it was used on.
    """

    def __init__(self):
        self._locks: Dict[date, asyncio.Lock] = {}
        self._users: Dict[date, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, stat_date: date) -> AsyncIterator[None]:
        lock = self._locks.setdefault(stat_date, asyncio.Lock())
        self._users[stat_date] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[stat_date] -= 1
            if not self._users[stat_date]:
                del self._users[stat_date]
                del self._locks[stat_date]


# Shared by every writer in the process so runs for one date never overlap
_date_locks = DateLocks()


def _error_message(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "statement timed out"
    cause = getattr(error, "orig", None) or error.__cause__ or error
    return str(cause) or type(error).__name__


class SnapshotWriter:
    """
    Writes relationship candidates as the complete snapshot for a date.

    Example:
        writer = SnapshotWriter(get_session_factory(), timeout_seconds=30)
        result = await writer.write(date(2025, 1, 15), candidates)
        print(result.processed, result.skipped)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: Optional[float] = None,
        error_log_limit: int = 3,
        locks: Optional[DateLocks] = None,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.error_log_limit = error_log_limit
        self.locks = _date_locks if locks is None else locks

    async def write(
        self,
        stat_date: date,
        candidates: Sequence[RelationshipCandidate],
    ) -> SnapshotWriteResult:
        """
        Make the rows for `stat_date` equal to `candidates`.

        A failed delete aborts the run with every candidate counted as skipped.
        Failed inserts are counted and the run carries on.
        """
        async with self.locks.hold(stat_date):
            return await self._replace(stat_date, candidates)

    async def _replace(
        self,
        stat_date: date,
        candidates: Sequence[RelationshipCandidate],
    ) -> SnapshotWriteResult:
        result = SnapshotWriteResult(
            stat_date=stat_date,
            status=WriteStatus.COMPLETED,
            started_at=datetime.utcnow(),
        )

        try:
            deleted = await asyncio.wait_for(
                self._delete_date(stat_date), timeout=self.timeout_seconds
            )
        except STORAGE_ERRORS as e:
            result.status = WriteStatus.FAILED
            result.skipped = len(candidates)
            result.error_message = _error_message(e)
            logger.error(
                "Failed to clear relationship snapshot, aborting run",
                stat_date=stat_date.isoformat(),
                candidates=len(candidates),
                error=result.error_message,
                error_type=type(e).__name__,
            )
            return self._finish(result)

        logger.info(
            "Cleared existing relationships",
            stat_date=stat_date.isoformat(),
            deleted=deleted,
        )

        if not candidates:
            result.status = WriteStatus.EMPTY
            logger.info("No relationships to insert", stat_date=stat_date.isoformat())
            return self._finish(result)

        for candidate in candidates:
            try:
                await asyncio.wait_for(
                    self._insert_candidate(stat_date, candidate), timeout=self.timeout_seconds
                )
                result.processed += 1
            except STORAGE_ERRORS as e:
                if result.skipped < self.error_log_limit:
                    logger.error(
                        "Relationship insert failed",
                        stat_date=stat_date.isoformat(),
                        pharmacy_id=candidate.pharmacy_id,
                        manufacturer_id=candidate.manufacturer_id,
                        product_id=candidate.product_id,
                        strain_id=candidate.strain_id,
                        error=_error_message(e),
                        error_type=type(e).__name__,
                    )
                result.skipped += 1

        if result.skipped:
            result.status = WriteStatus.PARTIAL

        return self._finish(result)

    async def _delete_date(self, stat_date: date) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                outcome = await session.execute(
                    delete(PharmacyProductRelationship).where(
                        PharmacyProductRelationship.stat_date == stat_date
                    )
                )
        return outcome.rowcount

    async def _insert_candidate(self, stat_date: date, candidate: RelationshipCandidate) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(
                    PharmacyProductRelationship(
                        pharmacy_id=candidate.pharmacy_id,
                        manufacturer_id=candidate.manufacturer_id,
                        product_id=candidate.product_id,
                        strain_id=candidate.strain_id,
                        stat_date=stat_date,
                        order_count=candidate.order_count,
                        sales_volume_grams=candidate.sales_volume_grams,
                    )
                )

    def _finish(self, result: SnapshotWriteResult) -> SnapshotWriteResult:
        result.completed_at = datetime.utcnow()
        result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

        log = logger.warning if result.status in (WriteStatus.PARTIAL, WriteStatus.FAILED) else logger.info
        log(
            "Relationship snapshot written",
            stat_date=result.stat_date.isoformat(),
            status=result.status.value,
            processed=result.processed,
            skipped=result.skipped,
            skip_ratio=round(result.skip_ratio, 4),
            duration_seconds=result.duration_seconds,
        )
        return result
