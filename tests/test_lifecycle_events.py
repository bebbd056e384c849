"""
Eswatini MSME Registry - Lifecycle Event Tests
"""

from datetime import date, datetime, timezone

import pytest

from app.models.business import VerificationStatus
from app.services.counter_store import category_key, daily_key, status_key
from app.services.lifecycle_events import (
    LIFECYCLE_TASK_NAME,
    BusinessCategoryChanged,
    BusinessCreated,
    BusinessDeleted,
    BusinessStatusChanged,
    LifecycleEventHandlers,
    LifecycleEventPublisher,
    event_from_dict,
)

OCCURRED = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


class TestSerialization:

    def test_status_change_survives_queue_payload(self):
        event = BusinessStatusChanged(
            business_id="b-1",
            occurred_at=OCCURRED,
            old_status=VerificationStatus.PENDING.value,
            new_status=VerificationStatus.APPROVED.value,
        )
        payload = event.to_dict()

        assert payload["type"] == "BusinessStatusChanged"
        assert payload["occurred_at"] == "2025-06-01T10:00:00+00:00"
        assert event_from_dict(payload) == event

    def test_deleted_keeps_hard_flag(self):
        event = BusinessDeleted(business_id="b-1", occurred_at=OCCURRED, category_id="c-1", hard=True)
        assert event_from_dict(event.to_dict()).hard is True

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            event_from_dict({"type": "BusinessArchived", "business_id": "b-1", "occurred_at": OCCURRED.isoformat()})


class TestHandlers:

    @pytest.mark.asyncio
    async def test_created_counts_category_and_local_day(self, counters):
        handlers = LifecycleEventHandlers(counters, timezone_name="Africa/Mbabane")
        # 23:30 UTC on 31 May is already 1 June in Mbabane.
        late_evening = datetime(2025, 5, 31, 23, 30, tzinfo=timezone.utc)

        await handlers.handle(BusinessCreated(business_id="b-1", occurred_at=late_evening, category_id="c-1"))

        assert await counters.get(category_key("c-1")) == 1
        assert await counters.get(daily_key("registrations", date(2025, 6, 1))) == 1
        assert await counters.get(daily_key("registrations", date(2025, 5, 31))) == 0

    @pytest.mark.asyncio
    async def test_unchanged_status_writes_nothing(self, counters):
        handlers = LifecycleEventHandlers(counters)
        await handlers.handle(BusinessStatusChanged(
            business_id="b-1",
            occurred_at=OCCURRED,
            old_status=2,
            new_status=2,
        ))
        assert not await counters.exists(status_key(2, date(2025, 6, 1)))

    @pytest.mark.asyncio
    async def test_category_swap(self, counters):
        handlers = LifecycleEventHandlers(counters)
        await counters.increment(category_key("old"), 1)

        await handlers.handle(BusinessCategoryChanged(
            business_id="b-1",
            occurred_at=OCCURRED,
            old_category_id="old",
            new_category_id="new",
        ))

        assert await counters.get(category_key("old")) == 0
        assert await counters.get(category_key("new")) == 1

    @pytest.mark.asyncio
    async def test_redelivery_applies_same_delta(self, counters):
        handlers = LifecycleEventHandlers(counters)
        event = BusinessCreated(business_id="b-1", occurred_at=OCCURRED, category_id="c-1")

        await handlers.handle(event)
        await handlers.handle(event_from_dict(event.to_dict()))

        assert await counters.get(category_key("c-1")) == 2


class _ExplodingHandlers:
    async def handle(self, event):
        raise RuntimeError("counter store unavailable")


class TestPublisher:

    @pytest.mark.asyncio
    async def test_sync_delivery_swallows_handler_errors(self):
        publisher = LifecycleEventPublisher(_ExplodingHandlers(), delivery="sync")
        await publisher.publish(BusinessCreated(business_id="b-1", occurred_at=OCCURRED, category_id="c-1"))

    @pytest.mark.asyncio
    async def test_celery_delivery_enqueues_payload(self, counters, monkeypatch):
        from app.celery_app import celery_app

        sent = []
        monkeypatch.setattr(celery_app, "send_task", lambda name, args=None, **kw: sent.append((name, args)))

        publisher = LifecycleEventPublisher(LifecycleEventHandlers(counters), delivery="celery")
        event = BusinessCreated(business_id="b-1", occurred_at=OCCURRED, category_id="c-1")
        await publisher.publish(event)

        assert sent == [(LIFECYCLE_TASK_NAME, [event.to_dict()])]
        # Nothing is applied in-process.
        assert await counters.get(category_key("c-1")) == 0
