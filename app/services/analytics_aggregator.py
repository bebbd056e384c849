"""
Eswatini MSME Registry - Analytics Aggregator

Builds the dashboard's daily and monthly snapshots.

Daily snapshots combine live record counts (gauges) with the day's flow
counters. Monthly snapshots sum the flows of that month's daily snapshots
and copy the gauges from the latest one: gauges are point-in-time values
and must not be summed.

Both writers upsert on (snapshot_type, period), so re-running a job for
the same period replaces the snapshot instead of adding a second one.
"""

import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.analytics import AnalyticsSnapshot, SnapshotType
from app.models.business import (
    BusinessCategory,
    GenderSummary,
    MSMEBusiness,
    VerificationStatus,
)
from app.services.counter_store import DAILY_METRICS, CounterStore, daily_key
from app.utils.clock import Clock, local_date, previous_day, previous_month, utcnow
from app.utils.error_handling import ErrorCode, NotFoundException, ValidationException

logger = logging.getLogger(__name__)

FLOW_FIELDS = {
    "registrations": "new_registrations",
    "subscribers": "new_subscribers",
    "feedback": "new_feedback",
    "tickets": "new_tickets",
}

GAUGE_FIELDS = (
    "total_businesses",
    "pending_businesses",
    "approved_businesses",
    "rejected_businesses",
    "businesses_by_category",
    "businesses_by_region",
    "male_owned",
    "female_owned",
    "mixed_ownership",
)

PERIOD_PATTERNS = {
    SnapshotType.DAILY.value: re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    SnapshotType.MONTHLY.value: re.compile(r"^\d{4}-\d{2}$"),
}


class AnalyticsAggregator:
    """
    Service for generating and reading analytics snapshots.

    Usage:
        aggregator = AnalyticsAggregator(db, CounterStore(session_factory))
        await aggregator.generate_daily_snapshot()          # yesterday
        await aggregator.generate_monthly_snapshot()        # previous month
    """

    def __init__(
        self,
        db: AsyncSession,
        counters: CounterStore,
        clock: Clock = utcnow,
        timezone_name: Optional[str] = None,
    ):
        self.db = db
        self.counters = counters
        self.clock = clock
        self.timezone_name = timezone_name or settings.scheduler_timezone

    def today(self) -> date:
        return local_date(self.clock(), self.timezone_name)

    # ===========================================
    # GAUGES
    # ===========================================

    async def _status_counts(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(MSMEBusiness.is_verified, func.count(MSMEBusiness.id))
            .where(MSMEBusiness.deleted_at.is_(None))
            .group_by(MSMEBusiness.is_verified)
        )
        by_status = {int(status): count for status, count in result.all()}
        return {
            "total_businesses": sum(by_status.values()),
            "pending_businesses": by_status.get(VerificationStatus.PENDING.value, 0),
            "approved_businesses": by_status.get(VerificationStatus.APPROVED.value, 0),
            "rejected_businesses": by_status.get(VerificationStatus.REJECTED.value, 0),
        }

    async def _approved_breakdowns(self) -> Dict[str, Any]:
        """Category, region and owner-gender splits of live approved businesses."""
        approved_live = (
            MSMEBusiness.deleted_at.is_(None),
            MSMEBusiness.is_verified == VerificationStatus.APPROVED.value,
        )

        by_category: Dict[str, int] = {}
        rows = await self.db.execute(
            select(BusinessCategory.name, func.count(MSMEBusiness.id))
            .join(BusinessCategory, BusinessCategory.id == MSMEBusiness.business_category_id)
            .where(*approved_live)
            .group_by(BusinessCategory.name)
        )
        for name, count in rows.all():
            by_category[name] = count

        by_region: Dict[str, int] = {}
        rows = await self.db.execute(
            select(MSMEBusiness.region, func.count(MSMEBusiness.id))
            .where(*approved_live)
            .group_by(MSMEBusiness.region)
        )
        for region, count in rows.all():
            key = region or "Unknown"
            by_region[key] = by_region.get(key, 0) + count

        genders = {summary: 0 for summary in GenderSummary}
        rows = await self.db.execute(
            select(MSMEBusiness.owner_gender_summary, func.count(MSMEBusiness.id))
            .where(*approved_live, MSMEBusiness.owner_gender_summary.is_not(None))
            .group_by(MSMEBusiness.owner_gender_summary)
        )
        for summary, count in rows.all():
            genders[GenderSummary(summary)] = count

        return {
            "businesses_by_category": by_category,
            "businesses_by_region": by_region,
            "male_owned": genders[GenderSummary.MALE],
            "female_owned": genders[GenderSummary.FEMALE],
            "mixed_ownership": genders[GenderSummary.BOTH],
        }

    # ===========================================
    # UPSERT
    # ===========================================

    async def _find(self, snapshot_type: str, period: str) -> Optional[AnalyticsSnapshot]:
        return await self.db.scalar(
            select(AnalyticsSnapshot).where(
                AnalyticsSnapshot.snapshot_type == snapshot_type,
                AnalyticsSnapshot.period == period,
            )
        )

    async def _upsert(self, snapshot_type: str, period: str, values: Dict[str, Any]) -> AnalyticsSnapshot:
        values = {**values, "generated_at": self.clock()}

        for attempt in (1, 2):
            snapshot = await self._find(snapshot_type, period)
            if snapshot is None:
                snapshot = AnalyticsSnapshot(snapshot_type=snapshot_type, period=period)
                self.db.add(snapshot)
            for name, value in values.items():
                setattr(snapshot, name, value)
            try:
                await self.db.commit()
                break
            except IntegrityError:
                # A concurrent run inserted the same period first; update it instead.
                await self.db.rollback()
                if attempt == 2:
                    raise
                logger.warning(f"Snapshot {snapshot_type}/{period} created concurrently, retrying as update")

        await self.db.refresh(snapshot)
        return snapshot

    # ===========================================
    # JOBS
    # ===========================================

    async def generate_daily_snapshot(self, period_date: Optional[date] = None) -> AnalyticsSnapshot:
        """Snapshot for `period_date` (default: yesterday in the registry timezone)."""
        period_date = period_date or previous_day(self.today())
        period = period_date.isoformat()

        values: Dict[str, Any] = {}
        values.update(await self._status_counts())
        values.update(await self._approved_breakdowns())

        flows = await self.counters.get_many([daily_key(metric, period_date) for metric in DAILY_METRICS])
        for metric in DAILY_METRICS:
            values[FLOW_FIELDS[metric]] = flows[daily_key(metric, period_date)]

        snapshot = await self._upsert(SnapshotType.DAILY.value, period, values)
        logger.info(
            f"Daily analytics generated for {period}: {values['total_businesses']} businesses, "
            f"{values['new_registrations']} new registrations"
        )
        return snapshot

    async def generate_monthly_snapshot(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Optional[AnalyticsSnapshot]:
        """
        Roll a month's daily snapshots into one (default: previous month).

        Returns None without writing anything when the month has no
        daily snapshots.
        """
        if year is None or month is None:
            year, month = previous_month(self.today())
        period = f"{year:04d}-{month:02d}"

        dailies: List[AnalyticsSnapshot] = list((await self.db.scalars(
            select(AnalyticsSnapshot)
            .where(
                AnalyticsSnapshot.snapshot_type == SnapshotType.DAILY.value,
                AnalyticsSnapshot.period.like(f"{period}-%"),
            )
            .order_by(AnalyticsSnapshot.period)
        )).all())

        if not dailies:
            logger.info(f"No daily snapshots for {period}; monthly snapshot skipped")
            return None

        latest = dailies[-1]
        values: Dict[str, Any] = {name: getattr(latest, name) for name in GAUGE_FIELDS}
        for field_name in FLOW_FIELDS.values():
            values[field_name] = sum(getattr(daily, field_name) or 0 for daily in dailies)

        snapshot = await self._upsert(SnapshotType.MONTHLY.value, period, values)
        logger.info(f"Monthly analytics generated for {period} from {len(dailies)} daily snapshots")
        return snapshot

    # ===========================================
    # READS
    # ===========================================

    @staticmethod
    def _check_type(snapshot_type: str) -> str:
        if snapshot_type not in PERIOD_PATTERNS:
            raise ValidationException(
                "snapshot type must be 'daily' or 'monthly'",
                field="snapshot_type",
            )
        return snapshot_type

    async def get_snapshot(self, snapshot_type: str, period: str) -> AnalyticsSnapshot:
        self._check_type(snapshot_type)
        if not PERIOD_PATTERNS[snapshot_type].match(period):
            expected = "YYYY-MM-DD" if snapshot_type == SnapshotType.DAILY.value else "YYYY-MM"
            raise ValidationException(f"period must be formatted {expected}", field="period")

        snapshot = await self._find(snapshot_type, period)
        if snapshot is None:
            raise NotFoundException(
                "Analytics snapshot",
                message=f"No {snapshot_type} snapshot for {period}",
                code=ErrorCode.SNAPSHOT_NOT_FOUND,
            )
        return snapshot

    async def latest_snapshot(self, snapshot_type: str) -> AnalyticsSnapshot:
        self._check_type(snapshot_type)
        snapshot = await self.db.scalar(
            select(AnalyticsSnapshot)
            .where(AnalyticsSnapshot.snapshot_type == snapshot_type)
            .order_by(AnalyticsSnapshot.period.desc())
            .limit(1)
        )
        if snapshot is None:
            raise NotFoundException(
                "Analytics snapshot",
                message=f"No {snapshot_type} snapshot yet",
                code=ErrorCode.SNAPSHOT_NOT_FOUND,
            )
        return snapshot
