"""
Eswatini MSME Registry - Analytics Schemas
"""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class AnalyticsSnapshotResponse(BaseModel):
    """Daily (period YYYY-MM-DD) or monthly (YYYY-MM) dashboard statistics."""
    id: UUID
    snapshot_type: str
    period: str

    total_businesses: int
    pending_businesses: int
    approved_businesses: int
    rejected_businesses: int
    businesses_by_category: Dict[str, int]
    businesses_by_region: Dict[str, int]
    male_owned: int
    female_owned: int
    mixed_ownership: int

    new_registrations: int
    new_subscribers: int
    new_feedback: int
    new_tickets: int

    generated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
