"""
Eswatini MSME Registry - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.auth import (
    LoginRequest,
    OTPRequest,
    OTPVerifyRequest,
    PasswordResetConfirm,
    TokenResponse,
    ResetTokenResponse,
    MessageResponse,
)
from app.schemas.business import (
    OwnerInput,
    DirectorInput,
    BusinessCreateRequest,
    VerifyBusinessRequest,
    CategoryChangeRequest,
    OwnerResponse,
    DirectorResponse,
    BusinessResponse,
    BusinessActionResponse,
)
from app.schemas.analytics import AnalyticsSnapshotResponse

__all__ = [
    "LoginRequest",
    "OTPRequest",
    "OTPVerifyRequest",
    "PasswordResetConfirm",
    "TokenResponse",
    "ResetTokenResponse",
    "MessageResponse",
    "OwnerInput",
    "DirectorInput",
    "BusinessCreateRequest",
    "VerifyBusinessRequest",
    "CategoryChangeRequest",
    "OwnerResponse",
    "DirectorResponse",
    "BusinessResponse",
    "BusinessActionResponse",
    "AnalyticsSnapshotResponse",
]
