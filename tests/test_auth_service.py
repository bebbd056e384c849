"""
Eswatini MSME Registry - Auth Service Tests

Unit tests for authentication service.
"""

import pytest

from app.services.auth_service import ROLE_BUSINESS, ROLE_SUPER_ADMIN, AuthService
from app.utils.error_handling import AuthenticationException, ErrorCode
from app.utils.security import decode_token


class TestAuthService:
    """Test cases for AuthService."""

    @pytest.mark.asyncio
    async def test_create_admin_hashes_password(self, db_session):
        service = AuthService(db_session)

        admin = await service.create_admin("New.Admin@msme.gov.sz", "Secret12345", "New Admin")

        assert admin.email == "new.admin@msme.gov.sz"
        assert admin.hashed_password != "Secret12345"

    @pytest.mark.asyncio
    async def test_authenticate_admin_success(self, db_session, test_admin):
        admin = await AuthService(db_session).authenticate_admin("reviewer@msme.gov.sz", "ReviewerPass123!")

        assert admin is not None
        assert admin.last_login_at is not None

    @pytest.mark.asyncio
    async def test_authenticate_admin_wrong_password(self, db_session, test_admin):
        assert await AuthService(db_session).authenticate_admin("reviewer@msme.gov.sz", "wrong") is None

    @pytest.mark.asyncio
    async def test_inactive_admin_cannot_log_in(self, db_session, test_admin):
        test_admin.is_active = False
        await db_session.commit()

        with pytest.raises(AuthenticationException) as exc_info:
            await AuthService(db_session).login_admin("reviewer@msme.gov.sz", "ReviewerPass123!")
        assert exc_info.value.code == ErrorCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_super_admin_token_role(self, db_session, super_admin):
        token = await AuthService(db_session).login_admin("root@msme.gov.sz", "RootPass123!")

        payload = decode_token(token["access_token"])
        assert payload["role"] == ROLE_SUPER_ADMIN
        assert payload["sub"] == str(super_admin.id)

    @pytest.mark.asyncio
    async def test_business_login(self, db_session, verification_service, make_registration):
        business = await verification_service.create(make_registration())

        token = await AuthService(db_session).login_business("info@lubombohoney.co.sz", "HoneyBees2025")

        assert token["role"] == ROLE_BUSINESS
        assert token["subject_id"] == business.id

    @pytest.mark.asyncio
    async def test_deleted_business_cannot_log_in(self, db_session, verification_service, make_registration):
        business = await verification_service.create(make_registration())
        await verification_service.soft_delete(business.id)

        with pytest.raises(AuthenticationException):
            await AuthService(db_session).login_business("info@lubombohoney.co.sz", "HoneyBees2025")
