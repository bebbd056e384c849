"""
Eswatini MSME Registry - Background Tasks Package

Scheduled analytics, maintenance and lifecycle-event jobs.
"""

from app.tasks.scheduled_tasks import (
    generate_daily_analytics,
    generate_monthly_analytics,
    cleanup_expired_otps,
    reconcile_category_counters,
    process_lifecycle_event,
    TaskRunner,
)

__all__ = [
    "generate_daily_analytics",
    "generate_monthly_analytics",
    "cleanup_expired_otps",
    "reconcile_category_counters",
    "process_lifecycle_event",
    "TaskRunner",
]
