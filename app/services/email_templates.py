"""
Eswatini MSME Registry - Email Templates

Pure lookup from a verification status (or the OTP flow) to the template
that should be sent. No module state is mutated while rendering, so
concurrent requests cannot pick up each other's subject lines.
"""

from dataclasses import dataclass
from html import escape
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

from app.models.business import VerificationStatus


@dataclass(frozen=True)
class EmailTemplate:
    template_id: str
    subject: str
    body: str  # str.format() placeholders, values are HTML-escaped


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    body_text: str
    body_html: str


REGISTRATION_RECEIVED = EmailTemplate(
    template_id="registration_received",
    subject="Registration Request Received by Eswatini MSME Platform",
    body=(
        "Dear {organization_name},\n\n"
        "Your registration request has been received and is awaiting review "
        "by the Eswatini MSME administrators. You will be notified once a "
        "decision has been made."
    ),
)

REGISTRATION_APPROVED = EmailTemplate(
    template_id="registration_approved",
    subject="Registration Request Approved by Eswatini MSME Administrator",
    body=(
        "Dear {organization_name},\n\n"
        "Your business registration has been approved and is now listed in "
        "the Eswatini MSME directory."
    ),
)

REGISTRATION_REJECTED = EmailTemplate(
    template_id="registration_rejected",
    subject="Registration Request Update",
    body=(
        "Dear {organization_name},\n\n"
        "Your registration could not be approved for the following reason:\n\n"
        "{comments}\n\n"
        "Please update your details and submit again."
    ),
)

PASSWORD_RESET_OTP = EmailTemplate(
    template_id="password_reset_otp",
    subject="OTP for Password Reset",
    body=(
        "Your one-time password is {otp}.\n\n"
        "It expires in {expires_minutes} minutes. If you did not request a "
        "password reset you can ignore this email."
    ),
)

STATUS_TEMPLATES: Mapping[VerificationStatus, EmailTemplate] = MappingProxyType({
    VerificationStatus.PENDING: REGISTRATION_RECEIVED,
    VerificationStatus.APPROVED: REGISTRATION_APPROVED,
    VerificationStatus.REJECTED: REGISTRATION_REJECTED,
})

TEMPLATES: Mapping[str, EmailTemplate] = MappingProxyType({
    t.template_id: t
    for t in (REGISTRATION_RECEIVED, REGISTRATION_APPROVED, REGISTRATION_REJECTED, PASSWORD_RESET_OTP)
})


def template_for_status(status: Union[VerificationStatus, int]) -> EmailTemplate:
    return STATUS_TEMPLATES[VerificationStatus(status)]


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(template_id: str, data: Dict[str, Any]) -> RenderedEmail:
    """Fill a template; unknown placeholders render empty. Raises KeyError for unknown ids."""
    template = TEMPLATES[template_id]
    text = template.body.format_map(_SafeDict({k: "" if v is None else str(v) for k, v in data.items()}))
    html_values = _SafeDict({k: "" if v is None else escape(str(v)) for k, v in data.items()})
    html_body = "".join(
        f"<p>{paragraph}</p>"
        for paragraph in template.body.format_map(html_values).split("\n\n")
    )
    return RenderedEmail(
        subject=template.subject,
        body_text=text,
        body_html=f"<html><body>{html_body}</body></html>",
    )
