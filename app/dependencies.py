"""
Eswatini MSME Registry - FastAPI Dependencies

Shared dependencies for authentication, database sessions and services.

This module provides dependency injection for:
1. Database sessions and the counter session factory
2. Current administrator authentication
3. Service construction (so tests can override collaborators)
"""

import uuid
from typing import Optional

from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import get_async_session, get_session_factory
from app.models.user import AdminUser
from app.services.analytics_aggregator import AnalyticsAggregator
from app.services.auth_service import ROLE_ADMIN, ROLE_SUPER_ADMIN, AuthService
from app.services.business_verification_service import BusinessVerificationService
from app.services.counter_store import CounterStore
from app.services.email_service import BackgroundNotifier, EmailService
from app.services.lifecycle_events import LifecycleEventPublisher, build_event_publisher
from app.services.password_recovery_service import PasswordRecoveryService
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> AdminUser:
    """
    Get the current administrator from the JWT token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        HTTPException: 401 if the token is missing or invalid,
        403 if it does not belong to an active administrator
    """
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise _unauthorized("Not authenticated")

    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        raise _unauthorized("Invalid or expired token")

    if payload.get("role") not in (ROLE_ADMIN, ROLE_SUPER_ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )

    try:
        admin_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise _unauthorized("Invalid user ID in token")

    admin = await db.get(AdminUser, admin_id)
    if admin is None:
        raise _unauthorized("User not found")
    if not admin.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    return admin


async def require_super_admin(
    admin: AdminUser = Depends(get_current_admin),
) -> AdminUser:
    """Restrict an endpoint to super administrators."""
    if not admin.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return admin


# ===========================================
# SERVICES
# ===========================================

def get_mailer() -> EmailService:
    return EmailService()


def get_notifier(
    background_tasks: BackgroundTasks,
    mailer: EmailService = Depends(get_mailer),
) -> BackgroundNotifier:
    """Emails are queued and sent after the response."""
    return BackgroundNotifier(mailer, background_tasks)


def get_event_publisher(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> LifecycleEventPublisher:
    return build_event_publisher(session_factory)


def get_auth_service(db: AsyncSession = Depends(get_async_session)) -> AuthService:
    return AuthService(db)


def get_verification_service(
    db: AsyncSession = Depends(get_async_session),
    publisher: LifecycleEventPublisher = Depends(get_event_publisher),
    notifier: BackgroundNotifier = Depends(get_notifier),
) -> BusinessVerificationService:
    return BusinessVerificationService(db, publisher, notifier)


def get_recovery_service(
    db: AsyncSession = Depends(get_async_session),
    notifier: BackgroundNotifier = Depends(get_notifier),
) -> PasswordRecoveryService:
    return PasswordRecoveryService(db, notifier)


def get_analytics_aggregator(
    db: AsyncSession = Depends(get_async_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AnalyticsAggregator:
    return AnalyticsAggregator(db, CounterStore(session_factory))
