"""
Eswatini MSME Registry - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, SoftDeleteMixin
from app.models.user import AdminUser, OTPAttempt
from app.models.business import (
    MSMEBusiness,
    BusinessOwner,
    BusinessDirector,
    BusinessCategory,
    VerificationStatus,
    OwnershipType,
    Gender,
    GenderSummary,
    Classification,
    Nationality,
)
from app.models.counter import Counter
from app.models.analytics import AnalyticsSnapshot, SnapshotType

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "SoftDeleteMixin",
    "AdminUser",
    "OTPAttempt",
    "MSMEBusiness",
    "BusinessOwner",
    "BusinessDirector",
    "BusinessCategory",
    "VerificationStatus",
    "OwnershipType",
    "Gender",
    "GenderSummary",
    "Classification",
    "Nationality",
    "Counter",
    "AnalyticsSnapshot",
    "SnapshotType",
]
