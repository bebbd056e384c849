"""
Eswatini MSME Registry - Scheduled Task Tests

The async job functions that the Celery beat schedule wraps.
"""

from datetime import date

import pytest

from app.celery_app import celery_app
from app.services.counter_store import category_key
from app.services.lifecycle_events import LIFECYCLE_TASK_NAME, BusinessCreated
from app.tasks.scheduled_tasks import (
    TaskRunner,
    cleanup_expired_otps,
    counter_store_for,
    generate_daily_analytics,
    generate_monthly_analytics,
    process_lifecycle_event,
    reconcile_category_counters,
)


class TestAnalyticsJobs:

    @pytest.mark.asyncio
    async def test_daily_job(self, db_session, clock, verification_service, make_registration):
        await verification_service.create(make_registration())

        result = await generate_daily_analytics(db_session, clock=clock)

        assert result["period"] == "2025-05-31"
        assert result["total_businesses"] == 1

    @pytest.mark.asyncio
    async def test_daily_job_is_idempotent(self, db_session, clock):
        first = await generate_daily_analytics(db_session, period_date=date(2025, 6, 1), clock=clock)
        second = await generate_daily_analytics(db_session, period_date=date(2025, 6, 1), clock=clock)
        assert first == second

    @pytest.mark.asyncio
    async def test_monthly_job_skips_empty_month(self, db_session, clock):
        result = await generate_monthly_analytics(db_session, clock=clock)
        assert result == {"period": None, "skipped": True}

    @pytest.mark.asyncio
    async def test_monthly_job_after_daily(self, db_session, clock):
        await generate_daily_analytics(db_session, period_date=date(2025, 5, 31), clock=clock)

        result = await generate_monthly_analytics(db_session, clock=clock)

        assert result["period"] == "2025-05"
        assert result["skipped"] is False


class TestMaintenanceJobs:

    @pytest.mark.asyncio
    async def test_cleanup_job(self, db_session, clock):
        result = await cleanup_expired_otps(db_session, clock=clock)
        assert result == {"otps_cleared": 0, "tokens_cleared": 0, "batches": 0, "attempts_removed": 0}

    @pytest.mark.asyncio
    async def test_reconcile_job(self, db_session, verification_service, make_registration, test_category):
        await verification_service.create(make_registration())
        await counter_store_for(db_session).set_value(category_key(test_category.id), 5)

        result = await reconcile_category_counters(db_session)

        assert result["corrected"] == 1
        assert result["drift"][category_key(test_category.id)] == {"stored": 5, "actual": 1}


class TestLifecycleQueue:

    def test_lifecycle_task_is_routed_to_its_queue(self):
        assert celery_app.conf.task_routes[LIFECYCLE_TASK_NAME] == {"queue": "lifecycle"}

    def test_beat_schedule_covers_jobs(self):
        tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
        assert tasks == {
            "app.tasks.celery_tasks.generate_daily_analytics_task",
            "app.tasks.celery_tasks.generate_monthly_analytics_task",
            "app.tasks.celery_tasks.cleanup_expired_otps_task",
            "app.tasks.celery_tasks.reconcile_category_counters_task",
        }

    @pytest.mark.asyncio
    async def test_process_queued_event(self, db_session, clock):
        event = BusinessCreated(business_id="b-1", occurred_at=clock(), category_id="c-9")

        result = await process_lifecycle_event(db_session, event.to_dict())

        assert result == {"event": "BusinessCreated", "business_id": "b-1"}
        assert await counter_store_for(db_session).get(category_key("c-9")) == 1

    @pytest.mark.asyncio
    async def test_malformed_event(self, db_session):
        with pytest.raises(ValueError):
            await process_lifecycle_event(db_session, {"type": "Nope"})


class TestTaskRunner:

    @pytest.mark.asyncio
    async def test_run_scheduled_tasks(self, session_factory):
        results = await TaskRunner(session_factory).run_scheduled_tasks()

        assert set(results) == {
            "generate_daily_analytics",
            "generate_monthly_analytics",
            "cleanup_expired_otps",
            "reconcile_category_counters",
        }
        assert all(outcome["status"] == "success" for outcome in results.values())
