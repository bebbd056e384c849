"""
Eswatini MSME Registry - Authentication Router

Login endpoints and the three-step forgot-password flow.
"""

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import get_auth_service, get_recovery_service
from app.schemas.auth import (
    LoginRequest,
    MessageResponse,
    OTPRequest,
    OTPVerifyRequest,
    PasswordResetConfirm,
    ResetTokenResponse,
    TokenResponse,
)
from app.services.auth_service import AuthService
from app.services.password_recovery_service import PasswordRecoveryService


router = APIRouter()


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Business applicant login",
)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.login_business(request.email, request.password)


@router.post(
    "/admin/login",
    response_model=TokenResponse,
    summary="Administrator login",
)
async def admin_login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    return await auth_service.login_admin(request.email, request.password)


# ===========================================
# FORGOT PASSWORD
# ===========================================

@router.post(
    "/forgot-password/request-otp",
    response_model=MessageResponse,
    summary="Request a password reset code",
    description="Emails a one-time code if the account exists. The response is the same either way.",
)
async def request_otp(
    request: OTPRequest,
    recovery: PasswordRecoveryService = Depends(get_recovery_service),
):
    message = await recovery.request_otp(request.email)
    return MessageResponse(message=message, success=True)


@router.post(
    "/forgot-password/verify-otp",
    response_model=ResetTokenResponse,
    summary="Verify a password reset code",
)
async def verify_otp(
    request: OTPVerifyRequest,
    recovery: PasswordRecoveryService = Depends(get_recovery_service),
):
    token, expires_in = await recovery.verify_otp(request.email, request.otp)
    return ResetTokenResponse(
        message="OTP verified successfully",
        reset_token=token,
        expires_in=expires_in,
    )


@router.post(
    "/forgot-password/reset",
    response_model=MessageResponse,
    summary="Reset password with token",
)
async def reset_password(
    request: PasswordResetConfirm,
    recovery: PasswordRecoveryService = Depends(get_recovery_service),
):
    await recovery.reset_password(request.email, request.reset_token, request.new_password)
    return MessageResponse(
        message="Password reset successfully",
        success=True,
    )
