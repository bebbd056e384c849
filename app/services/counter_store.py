"""
Eswatini MSME Registry - Counter Store

Keyed, atomically incrementable integers backing the dashboard aggregates.

Every increment is a single-row UPDATE in its own short transaction, so
concurrent requests never lose updates. Values are clamped at zero. A row
is only ever created by a positive delta; decrementing a counter that does
not exist writes nothing.

Unique-key races (two writers inserting the same new key) and transient
database errors are retried with exponential backoff before surfacing as
TransientStoreException.

Key layout:
    category:{category_id}
    {metric}:{YYYY-MM-DD}                 registrations, subscribers, feedback, tickets
    status:{pending|approved|rejected}:{YYYY-MM-DD}
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union
from uuid import UUID

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models.business import MSMEBusiness, VerificationStatus
from app.models.counter import Counter
from app.utils.error_handling import TransientStoreException

logger = logging.getLogger(__name__)

T = TypeVar("T")

CounterOp = Tuple[str, int]

CATEGORY_METRIC = "category"
STATUS_METRIC = "status"
DAILY_METRICS = ("registrations", "subscribers", "feedback", "tickets")


# ===========================================
# KEY HELPERS
# ===========================================

def category_key(category_id: Union[UUID, str]) -> str:
    return f"{CATEGORY_METRIC}:{category_id}"


def daily_key(metric: str, day: date) -> str:
    return f"{metric}:{day.isoformat()}"


def status_key(status: Union[VerificationStatus, int], day: date) -> str:
    label = VerificationStatus(status).label
    return f"{STATUS_METRIC}:{label}:{day.isoformat()}"


def parse_key(key: str) -> Tuple[str, Optional[date]]:
    """
    Split a key into (metric, period_date).

    A trailing ISO date marks a daily counter; everything before it is
    the metric name ("registrations", "status:approved").
    """
    head, _, tail = key.rpartition(":")
    if head:
        try:
            return head, date.fromisoformat(tail)
        except ValueError:
            pass
    metric = key.split(":", 1)[0]
    return metric, None


@dataclass
class ReconciliationReport:
    """Result of a full category recount."""
    checked: int = 0
    corrected: int = 0
    drift: Dict[str, Tuple[int, int]] = field(default_factory=dict)  # key -> (stored, actual)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "corrected": self.corrected,
            "drift": {key: {"stored": s, "actual": a} for key, (s, a) in self.drift.items()},
        }


class CounterStore:
    """
    Atomic counters on top of the relational store.

    Usage:
        store = CounterStore(async_session_factory)
        await store.increment(category_key(category_id), 1)
        await store.increment_many([(daily_key("feedback", day), 1), ...])
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        batch_size: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.batch_size = settings.counter_batch_size if batch_size is None else batch_size
        self.max_retries = settings.counter_max_retries if max_retries is None else max_retries
        self.backoff_seconds = (
            settings.counter_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")

    # ===========================================
    # TRANSACTION / RETRY
    # ===========================================

    async def _transact(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run `work` in a fresh transaction, retrying conflicts and transient failures."""
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        return await work(session)
            except (IntegrityError, OperationalError) as exc:
                if attempt >= self.max_retries:
                    logger.error(f"Counter {operation} failed after {attempt} attempts: {exc}")
                    raise TransientStoreException(operation, attempt, exc) from exc
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Counter {operation} conflict (attempt {attempt}/{self.max_retries}), "
                    f"retrying in {delay:.3f}s: {type(exc).__name__}"
                )
                await asyncio.sleep(delay)

    @staticmethod
    async def _apply(session: AsyncSession, key: str, delta: int) -> int:
        """Clamped increment of one key inside the caller's transaction."""
        new_value = Counter.value + delta
        result = await session.execute(
            update(Counter)
            .where(Counter.key == key)
            .values(value=case((new_value < 0, 0), else_=new_value))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return await session.scalar(select(Counter.value).where(Counter.key == key))

        if delta <= 0:
            return 0

        metric, period_date = parse_key(key)
        session.add(Counter(key=key, metric=metric, period_date=period_date, value=delta))
        await session.flush()
        return delta

    @staticmethod
    async def _store(session: AsyncSession, key: str, value: int) -> None:
        value = max(0, value)
        result = await session.execute(
            update(Counter)
            .where(Counter.key == key)
            .values(value=value)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            metric, period_date = parse_key(key)
            session.add(Counter(key=key, metric=metric, period_date=period_date, value=value))
            await session.flush()

    # ===========================================
    # WRITES
    # ===========================================

    async def increment(self, key: str, delta: int = 1) -> int:
        """
        Add `delta` to `key`, never going below zero.

        Returns the stored value afterwards (0 when nothing was written).
        """
        if delta == 0:
            return await self.get(key)

        async def work(session: AsyncSession) -> int:
            return await self._apply(session, key, delta)

        value = await self._transact(f"increment({key}, {delta:+d})", work)
        logger.debug(f"Counter {key} {delta:+d} -> {value}")
        return value

    async def increment_many(self, ops: Iterable[CounterOp]) -> int:
        """
        Apply many increments in bounded batches.

        Each batch of at most `batch_size` operations is one transaction;
        batches run sequentially. Returns the number of transactions used.
        """
        pending = [(key, delta) for key, delta in ops if delta]
        batches = 0
        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start:start + self.batch_size]

            async def work(session: AsyncSession, chunk: Sequence[CounterOp] = chunk) -> None:
                for key, delta in chunk:
                    await self._apply(session, key, delta)

            await self._transact(f"increment_many[{len(chunk)}]", work)
            batches += 1

        if batches:
            logger.info(f"Applied {len(pending)} counter updates in {batches} transaction(s)")
        return batches

    async def set_value(self, key: str, value: int) -> None:
        """Overwrite a counter (used by reconciliation)."""

        async def work(session: AsyncSession) -> None:
            await self._store(session, key, value)

        await self._transact(f"set({key})", work)

    # ===========================================
    # READS
    # ===========================================

    async def get(self, key: str) -> int:
        async with self.session_factory() as session:
            value = await session.scalar(select(Counter.value).where(Counter.key == key))
        return value or 0

    async def get_many(self, keys: Sequence[str]) -> Dict[str, int]:
        """Values for `keys`; absent counters read as 0."""
        if not keys:
            return {}
        async with self.session_factory() as session:
            rows = await session.execute(
                select(Counter.key, Counter.value).where(Counter.key.in_(list(keys)))
            )
            found = {key: value for key, value in rows.all()}
        return {key: found.get(key, 0) for key in keys}

    async def exists(self, key: str) -> bool:
        async with self.session_factory() as session:
            return await session.scalar(select(Counter.id).where(Counter.key == key)) is not None

    # ===========================================
    # RECONCILIATION
    # ===========================================

    async def reconcile_category_counters(self) -> ReconciliationReport:
        """
        Recount every category counter from the business records.

        Heals drift left by non-atomic category swaps or lost events.
        Corrections are written in batches of `batch_size`.
        """
        async with self.session_factory() as session:
            rows = await session.execute(
                select(MSMEBusiness.business_category_id, func.count(MSMEBusiness.id))
                .where(MSMEBusiness.deleted_at.is_(None))
                .group_by(MSMEBusiness.business_category_id)
            )
            actual = {category_key(category_id): count for category_id, count in rows.all()}

            stored_rows = await session.execute(
                select(Counter.key, Counter.value).where(Counter.metric == CATEGORY_METRIC)
            )
            stored = {key: value for key, value in stored_rows.all()}

        report = ReconciliationReport()
        corrections: List[Tuple[str, int]] = []
        for key in sorted(set(actual) | set(stored)):
            report.checked += 1
            expected = actual.get(key, 0)
            current = stored.get(key, 0)
            if expected != current:
                report.drift[key] = (current, expected)
                corrections.append((key, expected))

        for start in range(0, len(corrections), self.batch_size):
            chunk = corrections[start:start + self.batch_size]

            async def work(session: AsyncSession, chunk: Sequence[Tuple[str, int]] = chunk) -> None:
                for key, value in chunk:
                    await self._store(session, key, value)

            await self._transact(f"reconcile[{len(chunk)}]", work)
            report.corrected += len(chunk)

        if report.drift:
            for key, (current, expected) in report.drift.items():
                logger.warning(f"Counter drift on {key}: stored={current} actual={expected}")
        logger.info(
            f"Category reconciliation checked {report.checked} counters, corrected {report.corrected}"
        )
        return report
