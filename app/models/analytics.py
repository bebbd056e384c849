"""
Eswatini MSME Registry - Analytics Snapshot Model

Pre-aggregated daily and monthly statistics read by the admin dashboard.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class SnapshotType(str, Enum):
    DAILY = "daily"
    MONTHLY = "monthly"


class AnalyticsSnapshot(BaseModel):
    """
    One snapshot per (snapshot_type, period).

    period is YYYY-MM-DD for daily snapshots and YYYY-MM for monthly ones.
    Re-running a job for the same period overwrites the row.
    """

    __tablename__ = "analytics_snapshots"
    __table_args__ = (
        UniqueConstraint("snapshot_type", "period", name="uq_analytics_snapshots_type_period"),
    )

    snapshot_type: Mapped[str] = mapped_column(String(10), nullable=False)
    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)

    # Gauges
    total_businesses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_businesses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    approved_businesses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_businesses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    businesses_by_category: Mapped[Dict[str, int]] = mapped_column(JSON, default=dict, nullable=False)
    businesses_by_region: Mapped[Dict[str, int]] = mapped_column(JSON, default=dict, nullable=False)
    male_owned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female_owned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mixed_ownership: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Flows
    new_registrations: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_subscribers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_feedback: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_tickets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<AnalyticsSnapshot({self.snapshot_type} {self.period})>"
