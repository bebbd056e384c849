"""
Eswatini MSME Registry - API Endpoint Tests

Tests for the HTTP surface: registration, review, password recovery
and dashboard reads, including the error envelope.
"""

import uuid
from datetime import date

import pytest

from app.services.analytics_aggregator import AnalyticsAggregator
from app.services.counter_store import CounterStore


class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestBusinessEndpoints:

    @pytest.mark.asyncio
    async def test_register_business(self, client, make_registration, notifier):
        response = await client.post("/business", json=make_registration())

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["is_verified"] == 1
        assert body["data"]["owner_gender_summary"] == "Female"
        assert "hashed_password" not in body["data"]
        assert notifier.templates() == ["registration_received"]

    @pytest.mark.asyncio
    async def test_register_invalid_ownership(self, client, make_registration):
        payload = make_registration(ownership_type="Partnership", owners=[{"gender": "Male"}])

        response = await client.post("/business", json=payload)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "OWNER_COUNT_MISMATCH"
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_register_malformed_body(self, client, make_registration):
        response = await client.post("/business", json=make_registration(email_address="not-an-email"))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, client, make_registration):
        await client.post("/business", json=make_registration())
        response = await client.post("/business", json=make_registration())
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_review_requires_admin(self, client, make_registration):
        created = (await client.post("/business", json=make_registration())).json()["data"]

        response = await client.put(f"/business/{created['id']}/verify", json={"is_verified": 2})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_business_token_cannot_review(self, client, make_registration):
        created = (await client.post("/business", json=make_registration())).json()["data"]
        login = await client.post(
            "/auth/login",
            json={"email": "info@lubombohoney.co.sz", "password": "HoneyBees2025"},
        )
        headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

        response = await client.put(
            f"/business/{created['id']}/verify", json={"is_verified": 2}, headers=headers
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_approve_and_reject(self, client, make_registration, admin_headers, notifier):
        created = (await client.post("/business", json=make_registration())).json()["data"]
        url = f"/business/{created['id']}/verify"

        missing_reason = await client.put(url, json={"is_verified": 3}, headers=admin_headers)
        assert missing_reason.status_code == 400
        assert missing_reason.json()["error"]["code"] == "REJECTION_REASON_REQUIRED"

        rejected = await client.put(
            url, json={"is_verified": 3, "comments": "Upload your trading licence"}, headers=admin_headers
        )
        assert rejected.status_code == 200
        assert rejected.json()["data"]["verification_comments"] == "Upload your trading licence"

        approved = await client.put(url, json={"is_verified": 2}, headers=admin_headers)
        assert approved.status_code == 200
        assert approved.json()["data"]["is_verified"] == 2
        assert approved.json()["data"]["verification_comments"] is None
        assert notifier.templates() == [
            "registration_received",
            "registration_rejected",
            "registration_approved",
        ]

        back_to_pending = await client.put(url, json={"is_verified": 1}, headers=admin_headers)
        assert back_to_pending.status_code == 400
        assert back_to_pending.json()["error"]["code"] == "ILLEGAL_TRANSITION"

    @pytest.mark.asyncio
    async def test_out_of_range_status(self, client, make_registration, admin_headers):
        created = (await client.post("/business", json=make_registration())).json()["data"]
        response = await client.put(
            f"/business/{created['id']}/verify", json={"is_verified": 9}, headers=admin_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_business(self, client, admin_headers):
        response = await client.get(f"/business/{uuid.uuid4()}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BUSINESS_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_change_category(self, client, make_registration, admin_headers, other_category, counters):
        created = (await client.post("/business", json=make_registration())).json()["data"]

        response = await client.put(
            f"/business/{created['id']}/category",
            json={"business_category_id": str(other_category.id)},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["business_category_id"] == str(other_category.id)
        assert await counters.get(f"category:{other_category.id}") == 1

    @pytest.mark.asyncio
    async def test_delete_and_purge(
        self, client, make_registration, admin_headers, super_admin_headers
    ):
        created = (await client.post("/business", json=make_registration())).json()["data"]

        deleted = await client.delete(f"/business/{created['id']}", headers=admin_headers)
        assert deleted.status_code == 200

        hidden = await client.get(f"/business/{created['id']}", headers=admin_headers)
        assert hidden.status_code == 404

        forbidden = await client.delete(f"/business/{created['id']}/purge", headers=admin_headers)
        assert forbidden.status_code == 403

        purged = await client.delete(f"/business/{created['id']}/purge", headers=super_admin_headers)
        assert purged.status_code == 200


class TestAuthEndpoints:

    @pytest.mark.asyncio
    async def test_admin_login(self, client, test_admin):
        response = await client.post(
            "/auth/admin/login",
            json={"email": "reviewer@msme.gov.sz", "password": "ReviewerPass123!"},
        )
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_admin_login_wrong_password(self, client, test_admin):
        response = await client.post(
            "/auth/admin/login",
            json={"email": "reviewer@msme.gov.sz", "password": "nope"},
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_forgot_password_flow(self, client, make_registration, notifier):
        await client.post("/business", json=make_registration())
        email = "info@lubombohoney.co.sz"

        requested = await client.post("/auth/forgot-password/request-otp", json={"email": email})
        assert requested.status_code == 200
        assert requested.json()["message"] == "If this email exists, an OTP has been sent."
        otp = notifier.last("password_reset_otp")["otp"]

        verified = await client.post(
            "/auth/forgot-password/verify-otp", json={"email": email, "otp": f" {otp} "}
        )
        assert verified.status_code == 200
        reset_token = verified.json()["reset_token"]

        reset = await client.post(
            "/auth/forgot-password/reset",
            json={"email": email, "reset_token": reset_token, "new_password": "FreshStart2025"},
        )
        assert reset.status_code == 200
        assert reset.json()["message"] == "Password reset successfully"

        login = await client.post("/auth/login", json={"email": email, "password": "FreshStart2025"})
        assert login.status_code == 200
        assert login.json()["role"] == "business"

    @pytest.mark.asyncio
    async def test_unknown_email_is_not_revealed(self, client):
        response = await client.post(
            "/auth/forgot-password/request-otp", json={"email": "nobody@nowhere.co.sz"}
        )
        assert response.status_code == 200
        assert response.json()["message"] == "If this email exists, an OTP has been sent."

    @pytest.mark.asyncio
    async def test_lockout_returns_429(self, client, make_registration):
        await client.post("/business", json=make_registration())
        email = "info@lubombohoney.co.sz"

        for _ in range(5):
            response = await client.post(
                "/auth/forgot-password/verify-otp", json={"email": email, "otp": "000000"}
            )
            assert response.status_code == 400
            assert response.json()["error"]["code"] == "INVALID_OTP"

        locked = await client.post(
            "/auth/forgot-password/verify-otp", json={"email": email, "otp": "000000"}
        )
        assert locked.status_code == 429
        assert locked.json()["error"]["code"] == "TOO_MANY_ATTEMPTS"
        assert "Retry-After" in locked.headers

    @pytest.mark.asyncio
    async def test_reset_with_bad_token(self, client, make_registration):
        await client.post("/business", json=make_registration())
        response = await client.post(
            "/auth/forgot-password/reset",
            json={
                "email": "info@lubombohoney.co.sz",
                "reset_token": "0" * 64,
                "new_password": "FreshStart2025",
            },
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_RESET_REQUEST"


class TestDashboardEndpoints:

    @pytest.mark.asyncio
    async def test_requires_admin(self, client):
        response = await client.get("/dashboard/analytics/daily/latest")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_no_snapshot_yet(self, client, admin_headers):
        response = await client.get("/dashboard/analytics/daily/latest", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SNAPSHOT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_read_daily_snapshot(
        self, client, admin_headers, db_session, session_factory, make_registration, clock
    ):
        await client.post("/business", json=make_registration())
        aggregator = AnalyticsAggregator(db_session, CounterStore(session_factory), clock=clock)
        await aggregator.generate_daily_snapshot(date(2025, 6, 1))

        period = "2025-06-01"
        response = await client.get(f"/dashboard/analytics/daily/{period}", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["period"] == period
        assert body["total_businesses"] == 1
        assert body["pending_businesses"] == 1

    @pytest.mark.asyncio
    async def test_bad_period_format(self, client, admin_headers):
        response = await client.get("/dashboard/analytics/daily/June", headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_unknown_snapshot_type(self, client, admin_headers):
        response = await client.get("/dashboard/analytics/weekly/2025-06", headers=admin_headers)
        assert response.status_code == 400
