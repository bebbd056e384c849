"""
Eswatini MSME Registry - Background Tasks

Scheduled job definitions. Each job is a plain async function taking a
database session and returning a result dict, so it can be run directly
(development, tests) or from a Celery worker (production).

Jobs are idempotent per period: running one twice for the same day or
month overwrites the same snapshot.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.analytics_aggregator import AnalyticsAggregator
from app.services.counter_store import CounterStore
from app.services.email_service import EmailService
from app.services.lifecycle_events import LifecycleEventHandlers, event_from_dict
from app.services.password_recovery_service import PasswordRecoveryService
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


def counter_store_for(db: AsyncSession) -> CounterStore:
    """Counters run their own short transactions on the session's engine."""
    return CounterStore(async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False))


# ===========================================
# SCHEDULED TASK: DAILY ANALYTICS
# ===========================================

async def generate_daily_analytics(
    db: AsyncSession,
    period_date: Optional[date] = None,
    clock: Clock = utcnow,
) -> dict:
    """
    Snapshot the previous day's statistics.
    Should run daily at midnight (registry timezone).
    """
    aggregator = AnalyticsAggregator(db, counter_store_for(db), clock=clock)
    snapshot = await aggregator.generate_daily_snapshot(period_date)
    return {
        "period": snapshot.period,
        "total_businesses": snapshot.total_businesses,
        "new_registrations": snapshot.new_registrations,
    }


# ===========================================
# SCHEDULED TASK: MONTHLY ANALYTICS
# ===========================================

async def generate_monthly_analytics(
    db: AsyncSession,
    year: Optional[int] = None,
    month: Optional[int] = None,
    clock: Clock = utcnow,
) -> dict:
    """
    Roll up the previous month's daily snapshots.
    Should run on the 1st of each month, after the daily job.
    """
    aggregator = AnalyticsAggregator(db, counter_store_for(db), clock=clock)
    snapshot = await aggregator.generate_monthly_snapshot(year, month)
    if snapshot is None:
        return {"period": None, "skipped": True}
    return {
        "period": snapshot.period,
        "skipped": False,
        "new_registrations": snapshot.new_registrations,
    }


# ===========================================
# SCHEDULED TASK: OTP CLEANUP
# ===========================================

async def cleanup_expired_otps(db: AsyncSession, clock: Clock = utcnow) -> dict:
    """
    Clear expired password-reset codes and tokens.
    Should run hourly.
    """
    service = PasswordRecoveryService(db, EmailService(), clock=clock)
    return await service.cleanup_expired_credentials()


# ===========================================
# SCHEDULED TASK: COUNTER RECONCILIATION
# ===========================================

async def reconcile_category_counters(db: AsyncSession) -> dict:
    """
    Recount category counters from the business records.
    Should run daily, outside business hours.
    """
    report = await counter_store_for(db).reconcile_category_counters()
    return report.to_dict()


# ===========================================
# QUEUED TASK: LIFECYCLE EVENTS
# ===========================================

async def process_lifecycle_event(db: AsyncSession, payload: Dict[str, Any]) -> dict:
    """Apply the counter deltas of an event delivered through the queue."""
    event = event_from_dict(payload)
    await LifecycleEventHandlers(counter_store_for(db)).handle(event)
    return {"event": payload.get("type"), "business_id": event.business_id}


# ===========================================
# TASK RUNNER (for development without Celery)
# ===========================================

class TaskRunner:
    """
    Simple task runner for development.
    In production, replace with Celery.
    """

    def __init__(self, db_session_factory):
        self.db_session_factory = db_session_factory

    async def run_task(self, task_func, *args, **kwargs):
        """Run a single task with a new database session."""
        async with self.db_session_factory() as db:
            try:
                result = await task_func(db, *args, **kwargs)
                logger.info(f"Task {task_func.__name__} completed: {result}")
                return result
            except Exception as e:
                logger.error(f"Task {task_func.__name__} failed: {e}")
                raise

    async def run_scheduled_tasks(self):
        """Run all periodic jobs once (for development/testing)."""
        results = {}

        tasks = [
            ("generate_daily_analytics", generate_daily_analytics),
            ("generate_monthly_analytics", generate_monthly_analytics),
            ("cleanup_expired_otps", cleanup_expired_otps),
            ("reconcile_category_counters", reconcile_category_counters),
        ]

        for name, task_func in tasks:
            try:
                result = await self.run_task(task_func)
                results[name] = {"status": "success", "result": result}
            except Exception as e:
                results[name] = {"status": "error", "error": str(e)}

        return results
