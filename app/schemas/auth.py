"""
Eswatini MSME Registry - Authentication Schemas

Pydantic schemas for login and forgot-password requests and responses.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class LoginRequest(BaseModel):
    """Schema for applicant and admin login requests."""
    email: EmailStr
    password: str


class OTPRequest(BaseModel):
    """Step 1 of the forgot-password flow."""
    email: EmailStr


class OTPVerifyRequest(BaseModel):
    """Step 2: exchange the emailed code for a reset token."""
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=10)

    @field_validator("otp")
    @classmethod
    def strip_otp(cls, v: str) -> str:
        return v.strip()


class PasswordResetConfirm(BaseModel):
    """
    Step 3: set a new password.

    Length is checked by the recovery service so that a short password
    reports PASSWORD_TOO_SHORT rather than a generic schema error.
    """
    email: EmailStr
    reset_token: str = Field(..., max_length=128)
    new_password: str = Field(..., max_length=100)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    subject_id: UUID
    role: str  # "admin", "super_admin" or "business"


class ResetTokenResponse(BaseModel):
    """Returned once the OTP has been verified."""
    message: str
    success: bool = True
    reset_token: str
    expires_in: int  # seconds


class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
    success: bool = True
    data: Optional[dict] = None
