"""
Eswatini MSME Registry - Counter Store Tests
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.models.business import VerificationStatus
from app.services.counter_store import (
    CounterStore,
    category_key,
    daily_key,
    parse_key,
    status_key,
)
from app.utils.error_handling import ErrorCode, TransientStoreException

DAY = date(2025, 6, 1)


class TestKeys:

    def test_key_layout(self):
        assert daily_key("feedback", DAY) == "feedback:2025-06-01"
        assert status_key(VerificationStatus.APPROVED, DAY) == "status:approved:2025-06-01"
        assert status_key(3, DAY) == "status:rejected:2025-06-01"
        assert category_key("abc") == "category:abc"

    def test_parse_key(self):
        assert parse_key("status:pending:2025-06-01") == ("status:pending", DAY)
        assert parse_key("registrations:2025-06-01") == ("registrations", DAY)
        assert parse_key("category:0b9c1f0e-8d2a-4b7e-9a51-3c2f8e6d1a77") == ("category", None)


class TestIncrement:

    @pytest.mark.asyncio
    async def test_increment_creates_and_accumulates(self, counters):
        assert await counters.increment("tickets:2025-06-01", 1) == 1
        assert await counters.increment("tickets:2025-06-01", 2) == 3
        assert await counters.get("tickets:2025-06-01") == 3

    @pytest.mark.asyncio
    async def test_never_negative(self, counters):
        await counters.increment("category:x", 2)
        assert await counters.increment("category:x", -5) == 0
        assert await counters.get("category:x") == 0

    @pytest.mark.asyncio
    async def test_decrement_of_missing_key_writes_nothing(self, counters):
        assert await counters.increment("status:pending:2025-06-01", -1) == 0
        assert not await counters.exists("status:pending:2025-06-01")

    @pytest.mark.asyncio
    async def test_zero_delta_reads_current_value(self, counters):
        await counters.increment("feedback:2025-06-01", 4)
        assert await counters.increment("feedback:2025-06-01", 0) == 4

    @pytest.mark.asyncio
    async def test_concurrent_increments_are_not_lost(self, counters):
        await counters.increment("subscribers:2025-06-01", 1)
        await asyncio.gather(*(counters.increment("subscribers:2025-06-01", 1) for _ in range(10)))
        assert await counters.get("subscribers:2025-06-01") == 11

    @pytest.mark.asyncio
    async def test_get_many_defaults_to_zero(self, counters):
        await counters.increment("registrations:2025-06-01", 2)
        values = await counters.get_many(["registrations:2025-06-01", "tickets:2025-06-01"])
        assert values == {"registrations:2025-06-01": 2, "tickets:2025-06-01": 0}


class TestBatches:

    @pytest.mark.asyncio
    async def test_increment_many_uses_bounded_batches(self, session_factory):
        store = CounterStore(session_factory, batch_size=2, backoff_seconds=0)
        ops = [
            ("feedback:2025-06-01", 1),
            ("feedback:2025-06-01", 1),
            ("tickets:2025-06-01", 3),
            ("tickets:2025-06-01", 0),
            ("subscribers:2025-06-01", 1),
            ("feedback:2025-06-01", 1),
        ]

        batches = await store.increment_many(ops)

        assert batches == 3  # zero deltas are dropped, 5 ops in chunks of 2
        assert await store.get("feedback:2025-06-01") == 3
        assert await store.get("tickets:2025-06-01") == 3
        assert await store.get("subscribers:2025-06-01") == 1

    @pytest.mark.asyncio
    async def test_increment_many_empty(self, counters):
        assert await counters.increment_many([]) == 0


class TestRetries:

    @pytest.mark.asyncio
    async def test_conflict_is_retried(self, counters, monkeypatch):
        original = CounterStore._apply
        calls = []

        async def flaky(session, key, delta):
            calls.append(key)
            if len(calls) == 1:
                raise IntegrityError("INSERT INTO counters", {}, Exception("UNIQUE constraint failed"))
            return await original(session, key, delta)

        monkeypatch.setattr(CounterStore, "_apply", staticmethod(flaky))

        assert await counters.increment("tickets:2025-06-01", 1) == 1
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self, session_factory, monkeypatch):
        store = CounterStore(session_factory, max_retries=3, backoff_seconds=0)
        calls = []

        async def locked(session, key, delta):
            calls.append(key)
            raise OperationalError("UPDATE counters", {}, Exception("database is locked"))

        monkeypatch.setattr(CounterStore, "_apply", staticmethod(locked))

        with pytest.raises(TransientStoreException) as exc_info:
            await store.increment("tickets:2025-06-01", 1)

        assert len(calls) == 3
        assert exc_info.value.code == ErrorCode.TRANSIENT_STORE_ERROR
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_zero_retries_means_a_single_attempt(self, session_factory, monkeypatch):
        store = CounterStore(session_factory, max_retries=0, backoff_seconds=0)
        calls = []

        async def locked(session, key, delta):
            calls.append(key)
            raise OperationalError("UPDATE counters", {}, Exception("database is locked"))

        monkeypatch.setattr(CounterStore, "_apply", staticmethod(locked))

        assert store.max_retries == 0
        with pytest.raises(TransientStoreException):
            await store.increment("tickets:2025-06-01", 1)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_zero_batch_size_is_rejected(self, session_factory):
        with pytest.raises(ValueError):
            CounterStore(session_factory, batch_size=0)


class TestReconciliation:

    @pytest.mark.asyncio
    async def test_reconcile_repairs_drift(
        self, verification_service, make_registration, counters, test_category, other_category
    ):
        await verification_service.create(make_registration())
        await verification_service.create(make_registration(email_address="two@lubombohoney.co.sz"))

        await counters.set_value(category_key(test_category.id), 7)
        await counters.set_value(category_key(other_category.id), 3)

        report = await counters.reconcile_category_counters()

        assert report.checked == 2
        assert report.corrected == 2
        assert report.drift[category_key(test_category.id)] == (7, 2)
        assert await counters.get(category_key(test_category.id)) == 2
        assert await counters.get(category_key(other_category.id)) == 0

    @pytest.mark.asyncio
    async def test_reconcile_without_drift(self, verification_service, make_registration, counters):
        await verification_service.create(make_registration())

        report = await counters.reconcile_category_counters()

        assert report.corrected == 0
        assert report.to_dict()["drift"] == {}
