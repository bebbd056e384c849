"""
Eswatini MSME Registry - Celery Tasks

Celery entry points wrapping the async jobs in scheduled_tasks.
Scheduled jobs that fail log the error and return; committed batches are
kept and the next tick tries again. Lifecycle events are retried.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from app.database import async_session_factory, engine
from app.tasks.scheduled_tasks import (
    TaskRunner,
    cleanup_expired_otps,
    generate_daily_analytics,
    generate_monthly_analytics,
    process_lifecycle_event,
    reconcile_category_counters,
)

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _run(task_func, *args) -> Dict[str, Any]:
    try:
        return await TaskRunner(async_session_factory).run_task(task_func, *args)
    finally:
        # Pooled connections belong to this task's event loop.
        await engine.dispose()


def _run_scheduled(task_func) -> Dict[str, Any]:
    try:
        return {"status": "success", "result": run_async(_run(task_func))}
    except Exception as e:
        logger.error(f"Scheduled task {task_func.__name__} aborted: {e}", exc_info=True)
        return {"status": "error", "error": str(e)}


# ===========================================
# ANALYTICS TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.generate_daily_analytics_task')
def generate_daily_analytics_task() -> Dict[str, Any]:
    """Snapshot yesterday's statistics."""
    return _run_scheduled(generate_daily_analytics)


@shared_task(name='app.tasks.celery_tasks.generate_monthly_analytics_task')
def generate_monthly_analytics_task() -> Dict[str, Any]:
    """Roll up last month's daily snapshots."""
    return _run_scheduled(generate_monthly_analytics)


# ===========================================
# MAINTENANCE TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.cleanup_expired_otps_task')
def cleanup_expired_otps_task() -> Dict[str, Any]:
    return _run_scheduled(cleanup_expired_otps)


@shared_task(name='app.tasks.celery_tasks.reconcile_category_counters_task')
def reconcile_category_counters_task() -> Dict[str, Any]:
    return _run_scheduled(reconcile_category_counters)


# ===========================================
# LIFECYCLE EVENTS
# ===========================================

@shared_task(
    bind=True,
    name='app.tasks.celery_tasks.handle_lifecycle_event',
    max_retries=5,
    default_retry_delay=10,
)
def handle_lifecycle_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Apply counter updates for a queued business lifecycle event."""
    try:
        return run_async(_run(process_lifecycle_event, payload))
    except ValueError:
        logger.error(f"Dropping malformed lifecycle event: {payload}")
        raise
    except Exception as e:
        logger.warning(f"Lifecycle event {payload.get('type')} failed, retrying: {e}")
        raise self.retry(exc=e)
