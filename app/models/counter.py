"""
Eswatini MSME Registry - Counter Model

Denormalized aggregate counters. One row per key:

    category:{category_id}            live count of non-deleted records
    {metric}:{YYYY-MM-DD}             daily flow (registrations, subscribers, ...)
    status:{pending|approved|rejected}:{YYYY-MM-DD}
"""

from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class Counter(BaseModel):
    """A single non-negative aggregate value."""

    __tablename__ = "counters"
    __table_args__ = (
        CheckConstraint("value >= 0", name="value_non_negative"),
    )

    key: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    metric: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    period_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    value: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Counter({self.key}={self.value})>"
