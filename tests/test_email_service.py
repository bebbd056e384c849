"""
Eswatini MSME Registry - Email Service Tests
"""

import pytest
from fastapi import BackgroundTasks

from app.models.business import VerificationStatus
from app.services.business_verification_service import BusinessVerificationService
from app.services.email_service import BackgroundNotifier, EmailProvider, EmailService, mask_email
from app.services.email_templates import (
    REGISTRATION_APPROVED,
    REGISTRATION_RECEIVED,
    REGISTRATION_REJECTED,
    render,
    template_for_status,
)


class TestTemplates:

    def test_status_mapping(self):
        assert template_for_status(VerificationStatus.PENDING) is REGISTRATION_RECEIVED
        assert template_for_status(2) is REGISTRATION_APPROVED
        assert template_for_status(VerificationStatus.REJECTED) is REGISTRATION_REJECTED

    def test_rendering_does_not_change_templates(self):
        render("registration_rejected", {"organization_name": "A", "comments": "first"})
        second = render("registration_rejected", {"organization_name": "B", "comments": "second"})

        assert second.subject == "Registration Request Update"
        assert "first" not in second.body_text
        assert "{comments}" in REGISTRATION_REJECTED.body

    def test_html_body_is_escaped(self):
        rendered = render("registration_rejected", {"organization_name": "<b>Acme</b>", "comments": "x"})
        assert "&lt;b&gt;Acme&lt;/b&gt;" in rendered.body_html
        assert "<b>Acme</b>" in rendered.body_text

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            render("newsletter", {})


class TestEmailService:

    def test_mock_provider_without_credentials(self):
        service = EmailService()
        service.provider = EmailProvider.SENDGRID
        service.sendgrid_api_key = None
        assert service._determine_provider() == EmailProvider.MOCK

    @pytest.mark.asyncio
    async def test_send_through_mock(self):
        assert await EmailService().send(
            "registration_approved", {"organization_name": "Acme"}, "owner@acme.co.sz"
        ) is True

    @pytest.mark.asyncio
    async def test_unknown_template_is_not_sent(self):
        assert await EmailService().send("newsletter", {}, "owner@acme.co.sz") is False

    @pytest.mark.asyncio
    async def test_provider_errors_become_false(self, monkeypatch):
        service = EmailService()

        async def boom(message):
            raise ConnectionError("smtp down")

        monkeypatch.setattr(service, "_send_mock", boom)
        assert await service.send("registration_approved", {"organization_name": "Acme"}, "a@acme.co.sz") is False

    def test_mask_email(self):
        assert mask_email("thandi@lubombohoney.co.sz") == "t***@lubombohoney.co.sz"
        assert mask_email("broken") == "***"


class TestBackgroundNotifier:

    @pytest.mark.asyncio
    async def test_send_only_queues(self, notifier):
        tasks = BackgroundTasks()
        queued = BackgroundNotifier(notifier, tasks)

        assert await queued.send("registration_approved", {"organization_name": "Acme"}, "a@acme.co.sz") is True
        assert notifier.sent == []

        await tasks()
        assert notifier.templates() == ["registration_approved"]

    @pytest.mark.asyncio
    async def test_delivery_errors_are_logged_not_raised(self, failing_notifier):
        tasks = BackgroundTasks()
        await BackgroundNotifier(failing_notifier, tasks).send("registration_approved", {}, "a@acme.co.sz")

        await tasks()
        assert failing_notifier.templates() == ["registration_approved"]

    @pytest.mark.asyncio
    async def test_status_email_waits_for_the_response(
        self, db_session, publisher, notifier, clock, make_registration, test_admin
    ):
        tasks = BackgroundTasks()
        service = BusinessVerificationService(
            db_session, publisher, BackgroundNotifier(notifier, tasks), clock=clock
        )
        business = await service.create(make_registration())
        await service.set_status(business.id, VerificationStatus.APPROVED, admin=test_admin)

        assert notifier.sent == []
        await tasks()
        assert notifier.templates() == ["registration_received", "registration_approved"]
