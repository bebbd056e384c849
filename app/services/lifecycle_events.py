"""
Eswatini MSME Registry - Business Lifecycle Events

Events raised after a business record is committed, and the handlers that
turn them into counter updates.

Handlers derive every delta from the event payload alone (including the
day, taken from occurred_at), so a redelivered event applies the same
change again rather than reading ambient state. Delivery is either
in-process right after the write ("sync") or through the Celery lifecycle
queue ("celery"); events serialize to plain dicts for the latter.
"""

import logging
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional, Type

from app.config import settings
from app.models.business import VerificationStatus
from app.services.counter_store import (
    CounterStore,
    category_key,
    daily_key,
    status_key,
)
from app.utils.clock import as_utc, local_date

logger = logging.getLogger(__name__)

LIFECYCLE_TASK_NAME = "app.tasks.celery_tasks.handle_lifecycle_event"


# ===========================================
# EVENTS
# ===========================================

@dataclass(frozen=True)
class LifecycleEvent:
    business_id: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = as_utc(self.occurred_at).isoformat()
        payload["type"] = type(self).__name__
        return payload


@dataclass(frozen=True)
class BusinessCreated(LifecycleEvent):
    category_id: str


@dataclass(frozen=True)
class BusinessStatusChanged(LifecycleEvent):
    old_status: int
    new_status: int


@dataclass(frozen=True)
class BusinessCategoryChanged(LifecycleEvent):
    old_category_id: str
    new_category_id: str


@dataclass(frozen=True)
class BusinessDeleted(LifecycleEvent):
    category_id: str
    hard: bool = False


EVENT_TYPES: Dict[str, Type[LifecycleEvent]] = {
    cls.__name__: cls
    for cls in (BusinessCreated, BusinessStatusChanged, BusinessCategoryChanged, BusinessDeleted)
}


def event_from_dict(payload: Dict[str, Any]) -> LifecycleEvent:
    """Rebuild an event serialized with to_dict()."""
    try:
        event_cls = EVENT_TYPES[payload["type"]]
    except KeyError:
        raise ValueError(f"Unknown lifecycle event: {payload.get('type')!r}") from None

    values = {f.name: payload[f.name] for f in fields(event_cls) if f.name in payload}
    values["occurred_at"] = as_utc(datetime.fromisoformat(payload["occurred_at"]))
    return event_cls(**values)


# ===========================================
# HANDLERS
# ===========================================

class LifecycleEventHandlers:
    """
    Translate lifecycle events into counter deltas.

    - BusinessCreated          category +1, registrations:{day} +1
    - BusinessCategoryChanged  old category -1, then new category +1
    - BusinessStatusChanged    status:{old}:{day} -1, status:{new}:{day} +1
    - BusinessDeleted          category -1

    The category swap is two separate increments; a failure between them
    leaves drift that the daily reconciliation job repairs.
    """

    def __init__(self, counters: CounterStore, timezone_name: Optional[str] = None):
        self.counters = counters
        self.timezone_name = timezone_name or settings.scheduler_timezone

    def _day(self, event: LifecycleEvent):
        return local_date(event.occurred_at, self.timezone_name)

    async def handle(self, event: LifecycleEvent) -> None:
        if isinstance(event, BusinessCreated):
            await self.on_created(event)
        elif isinstance(event, BusinessStatusChanged):
            await self.on_status_changed(event)
        elif isinstance(event, BusinessCategoryChanged):
            await self.on_category_changed(event)
        elif isinstance(event, BusinessDeleted):
            await self.on_deleted(event)
        else:
            raise TypeError(f"Unsupported lifecycle event: {type(event).__name__}")

    async def on_created(self, event: BusinessCreated) -> None:
        await self.counters.increment(category_key(event.category_id), 1)
        await self.counters.increment(daily_key("registrations", self._day(event)), 1)

    async def on_category_changed(self, event: BusinessCategoryChanged) -> None:
        if event.old_category_id == event.new_category_id:
            return
        await self.counters.increment(category_key(event.old_category_id), -1)
        await self.counters.increment(category_key(event.new_category_id), 1)

    async def on_status_changed(self, event: BusinessStatusChanged) -> None:
        if event.old_status == event.new_status:
            logger.debug(f"Status unchanged for business {event.business_id}, skipping counters")
            return

        day = self._day(event)
        # A decrement on a counter that does not exist for the day is a no-op.
        await self.counters.increment(status_key(VerificationStatus(event.old_status), day), -1)
        await self.counters.increment(status_key(VerificationStatus(event.new_status), day), 1)

    async def on_deleted(self, event: BusinessDeleted) -> None:
        await self.counters.increment(category_key(event.category_id), -1)


# ===========================================
# PUBLISHER
# ===========================================

class LifecycleEventPublisher:
    """
    Deliver events to the handlers without affecting the originating write.

    Errors are logged; the record change has already been committed and the
    next reconciliation pass corrects any counter left behind.
    """

    def __init__(self, handlers: LifecycleEventHandlers, delivery: Optional[str] = None):
        self.handlers = handlers
        self.delivery = (delivery or settings.lifecycle_event_delivery).lower()

    async def publish(self, event: LifecycleEvent) -> None:
        if self.delivery == "celery":
            self._enqueue(event)
            return

        try:
            await self.handlers.handle(event)
        except Exception as e:
            logger.error(
                f"Lifecycle handler failed for {type(event).__name__} "
                f"(business {event.business_id}): {e}",
                exc_info=True,
            )

    def _enqueue(self, event: LifecycleEvent) -> None:
        from app.celery_app import celery_app

        try:
            celery_app.send_task(LIFECYCLE_TASK_NAME, args=[event.to_dict()])
        except Exception as e:
            logger.error(
                f"Failed to enqueue {type(event).__name__} for business {event.business_id}: {e}",
                exc_info=True,
            )


def build_event_publisher(session_factory, delivery: Optional[str] = None) -> LifecycleEventPublisher:
    """Wire a publisher onto a counter store bound to `session_factory`."""
    handlers = LifecycleEventHandlers(CounterStore(session_factory))
    return LifecycleEventPublisher(handlers, delivery=delivery)
