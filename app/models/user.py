"""
Eswatini MSME Registry - User Models

Administrator accounts (reviewers of business registrations) and the
per-identity attempt ledger that backs the one-time-code lockout.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class AdminUser(BaseModel):
    """
    Registry administrator.

    Any active admin may review registrations; purging records is
    reserved for super admins.
    """

    __tablename__ = "admin_users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<AdminUser(email={self.email}, super={self.is_super_admin})>"


class OTPAttempt(BaseModel):
    """
    One-time-code checks for a single identity (lower-cased email).

    attempt_count counts checks since window_started_at; a new window opens
    with the first check after the previous one has elapsed. Every change
    is a single conditional UPDATE, so parallel guesses from different
    workers each get their own position in the count.
    """

    __tablename__ = "otp_attempts"

    identity: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    window_started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OTPAttempt(identity={self.identity}, attempts={self.attempt_count})>"
