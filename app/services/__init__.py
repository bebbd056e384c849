"""
Eswatini MSME Registry - Services Package

Business logic layer.
"""

from app.services.ownership_validator import (
    ValidationResult,
    validate_ownership,
    compute_gender_summary,
    validate_additional_fields,
    validate_directors_nationality,
    validate_registration,
)
from app.services.counter_store import CounterStore, ReconciliationReport
from app.services.lifecycle_events import (
    BusinessCreated,
    BusinessStatusChanged,
    BusinessCategoryChanged,
    BusinessDeleted,
    LifecycleEventHandlers,
    LifecycleEventPublisher,
)
from app.services.business_verification_service import BusinessVerificationService
from app.services.password_recovery_service import PasswordRecoveryService
from app.services.analytics_aggregator import AnalyticsAggregator
from app.services.auth_service import AuthService
from app.services.email_service import EmailService

__all__ = [
    "ValidationResult",
    "validate_ownership",
    "compute_gender_summary",
    "validate_additional_fields",
    "validate_directors_nationality",
    "validate_registration",
    "CounterStore",
    "ReconciliationReport",
    "BusinessCreated",
    "BusinessStatusChanged",
    "BusinessCategoryChanged",
    "BusinessDeleted",
    "LifecycleEventHandlers",
    "LifecycleEventPublisher",
    "BusinessVerificationService",
    "PasswordRecoveryService",
    "AnalyticsAggregator",
    "AuthService",
    "EmailService",
]
