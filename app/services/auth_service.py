"""
Eswatini MSME Registry - Authentication Service

Password login for administrators and for business applicants, issuing
short-lived JWT access tokens.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.business import MSMEBusiness
from app.models.user import AdminUser
from app.utils.clock import utcnow
from app.utils.error_handling import AuthenticationException, ErrorCode
from app.utils.security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"
ROLE_BUSINESS = "business"


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ===========================================
    # ADMINISTRATORS
    # ===========================================

    async def get_admin_by_email(self, email: str) -> Optional[AdminUser]:
        return await self.db.scalar(
            select(AdminUser).where(AdminUser.email == email.strip().lower())
        )

    async def create_admin(
        self,
        email: str,
        password: str,
        full_name: str,
        is_super_admin: bool = False,
    ) -> AdminUser:
        admin = AdminUser(
            email=email.strip().lower(),
            hashed_password=get_password_hash(password),
            full_name=full_name,
            is_super_admin=is_super_admin,
        )
        self.db.add(admin)
        await self.db.commit()
        await self.db.refresh(admin)
        return admin

    async def authenticate_admin(self, email: str, password: str) -> Optional[AdminUser]:
        """
        Authenticate an administrator with email and password.

        Returns:
            AdminUser if authentication successful, None otherwise
        """
        admin = await self.get_admin_by_email(email)
        if not admin or not admin.is_active:
            return None
        if not verify_password(password, admin.hashed_password):
            return None

        admin.last_login_at = utcnow()
        await self.db.commit()
        return admin

    # ===========================================
    # BUSINESS APPLICANTS
    # ===========================================

    async def authenticate_business(self, email: str, password: str) -> Optional[MSMEBusiness]:
        business = await self.db.scalar(
            select(MSMEBusiness).where(
                MSMEBusiness.email_address == email.strip().lower(),
                MSMEBusiness.deleted_at.is_(None),
            )
        )
        if not business or not verify_password(password, business.hashed_password):
            return None
        return business

    # ===========================================
    # TOKENS
    # ===========================================

    @staticmethod
    def issue_token(subject_id, role: str) -> dict:
        token = create_access_token({"sub": str(subject_id), "role": role})
        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
            "subject_id": subject_id,
            "role": role,
        }

    async def login_admin(self, email: str, password: str) -> dict:
        admin = await self.authenticate_admin(email, password)
        if admin is None:
            logger.warning("Failed admin login attempt")
            raise AuthenticationException(
                "Incorrect email or password",
                code=ErrorCode.INVALID_CREDENTIALS,
            )
        logger.info(f"Admin {admin.id} logged in")
        return self.issue_token(admin.id, ROLE_SUPER_ADMIN if admin.is_super_admin else ROLE_ADMIN)

    async def login_business(self, email: str, password: str) -> dict:
        business = await self.authenticate_business(email, password)
        if business is None:
            logger.warning("Failed business login attempt")
            raise AuthenticationException(
                "Incorrect email or password",
                code=ErrorCode.INVALID_CREDENTIALS,
            )
        return self.issue_token(business.id, ROLE_BUSINESS)
