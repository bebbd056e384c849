"""
Eswatini MSME Registry - Email Service

Handles transactional email sending.
Supports SendGrid, SMTP, or a logging mock for development.

Request handlers hand messages to BackgroundNotifier, which sends them
after the response. Sending is best-effort: every failure is logged and
reported as False, never raised to the caller.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

import httpx
from fastapi import BackgroundTasks

from app.config import settings
from app.services.email_templates import render

logger = logging.getLogger(__name__)


class EmailProvider:
    """Email provider types."""
    SMTP = "smtp"
    SENDGRID = "sendgrid"
    MOCK = "mock"


@dataclass
class EmailMessage:
    """Email message data structure."""
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    reply_to: Optional[str] = None


def mask_email(address: str) -> str:
    """j***@example.com, for log lines."""
    local, _, domain = address.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"


class EmailService:
    """Service for sending registry notifications."""

    def __init__(self):
        self.from_email = settings.email_from
        self.from_name = settings.mail_from_name
        self.provider = (settings.email_provider or EmailProvider.MOCK).lower()
        self.timeout = settings.email_timeout_seconds

        # SMTP settings
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.mail_port
        self.smtp_username = settings.mail_username
        self.smtp_password = settings.mail_password
        self.smtp_use_tls = settings.mail_use_tls

        # SendGrid settings
        self.sendgrid_api_key = settings.sendgrid_api_key

    def _determine_provider(self) -> str:
        """Use the configured provider only when its credentials are present."""
        if self.provider == EmailProvider.SENDGRID and self.sendgrid_api_key:
            return EmailProvider.SENDGRID
        if self.provider == EmailProvider.SMTP and self.smtp_host:
            return EmailProvider.SMTP
        return EmailProvider.MOCK

    async def send(self, template_id: str, data: Dict[str, Any], to_address: str) -> bool:
        """
        Render `template_id` with `data` and send it to `to_address`.

        Returns False (and logs) on any failure, including unknown templates.
        """
        try:
            rendered = render(template_id, data)
        except KeyError:
            logger.error(f"Unknown email template: {template_id}")
            return False

        return await self.send_email(EmailMessage(
            to=[to_address],
            subject=rendered.subject,
            body_text=rendered.body_text,
            body_html=rendered.body_html,
        ))

    async def send_email(self, message: EmailMessage) -> bool:
        """
        Send an email using the configured provider.
        """
        provider = self._determine_provider()

        try:
            if provider == EmailProvider.SENDGRID:
                return await self._send_via_sendgrid(message)
            elif provider == EmailProvider.SMTP:
                return await self._send_via_smtp(message)
            else:
                return await self._send_mock(message)
        except Exception as e:
            logger.error(f"Failed to send email via {provider}: {e}")
            return False

    async def _send_via_sendgrid(self, message: EmailMessage) -> bool:
        """Send email via SendGrid API."""
        payload = {
            "personalizations": [
                {"to": [{"email": email} for email in message.to]}
            ],
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.body_text},
            ],
        }

        if message.body_html:
            payload["content"].append({
                "type": "text/html",
                "value": message.body_html,
            })

        if message.reply_to:
            payload["reply_to"] = {"email": message.reply_to}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                "https://api.sendgrid.com/v3/mail/send",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
            )

        if response.status_code in (200, 202):
            logger.info(f"Email sent via SendGrid: {message.subject} to {self._recipients(message)}")
            return True

        logger.error(f"SendGrid API error: {response.status_code} - {response.text}")
        return False

    async def _send_via_smtp(self, message: EmailMessage) -> bool:
        """Send email via SMTP on a worker thread; smtplib blocks."""
        await asyncio.to_thread(self._deliver_smtp, message)
        logger.info(f"Email sent via SMTP: {message.subject} to {self._recipients(message)}")
        return True

    def _deliver_smtp(self, message: EmailMessage) -> None:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = ', '.join(message.to)

        if message.reply_to:
            msg['Reply-To'] = message.reply_to

        msg.attach(MIMEText(message.body_text, 'plain'))
        if message.body_html:
            msg.attach(MIMEText(message.body_html, 'html'))

        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, message.to, msg.as_string())

    async def _send_mock(self, message: EmailMessage) -> bool:
        """Mock email sending for development."""
        # Body is not logged: it may carry a one-time code.
        logger.info(f"[MOCK EMAIL] To: {self._recipients(message)} | Subject: {message.subject}")
        return True

    @staticmethod
    def _recipients(message: EmailMessage) -> str:
        return ", ".join(mask_email(address) for address in message.to)


class BackgroundNotifier:
    """
    Notifier that queues messages on a request's BackgroundTasks.

    `send` returns as soon as the message is queued; the wrapped notifier
    runs after the response has been sent, so callers never wait on the
    mail provider.
    """

    def __init__(self, notifier: Any, background_tasks: BackgroundTasks):
        self.notifier = notifier
        self.background_tasks = background_tasks

    async def send(self, template_id: str, data: Dict[str, Any], to_address: str) -> bool:
        self.background_tasks.add_task(self._deliver, template_id, dict(data), to_address)
        return True

    async def _deliver(self, template_id: str, data: Dict[str, Any], to_address: str) -> None:
        try:
            sent = await self.notifier.send(template_id, data, to_address)
        except Exception as e:
            logger.error(f"Queued email {template_id} raised: {e}", exc_info=True)
            return
        if not sent:
            logger.warning(f"Queued email {template_id} to {mask_email(to_address)} was not delivered")
