"""
Eswatini MSME Registry - Password Recovery Service

Forgot-password flow for business accounts, keyed by email address:

    request_otp  -> 6-digit code, valid for otp_expire_minutes
    verify_otp   -> one-time reset token, valid for reset_token_expire_minutes
    reset_password

Responses never reveal whether an account exists. Code checks are
counted per identity in a window of otp_attempt_window_minutes, opened by
the first check. The otp_max_attempts-th check locks the identity (known
or not) for otp_lockout_minutes; every later request_otp / verify_otp call
is refused with 429 until the lock expires. A successful check clears the
count.

Every check takes its place in the count with one atomic UPDATE before the
code is compared, and codes and reset tokens are consumed with conditional
UPDATEs, so parallel requests cannot share an attempt or reuse a credential.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol, Tuple

from sqlalchemy import DateTime, and_, case, delete, literal, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.business import MSMEBusiness
from app.models.user import OTPAttempt
from app.services.email_templates import PASSWORD_RESET_OTP
from app.utils.clock import Clock, as_utc, utcnow
from app.utils.error_handling import (
    CredentialRecoveryException,
    ErrorCode,
    RateLimitException,
    TransientStoreException,
    ValidationException,
)
from app.utils.security import (
    constant_time_equals,
    generate_otp,
    generate_reset_token,
    get_password_hash,
    hash_token,
)

logger = logging.getLogger(__name__)

OTP_SENT_MESSAGE = "If this email exists, an OTP has been sent."
INVALID_OTP_MESSAGE = "Invalid OTP"
EXPIRED_OTP_MESSAGE = "OTP has expired"
INVALID_RESET_MESSAGE = "Invalid or expired reset request"


class Notifier(Protocol):
    async def send(self, template_id: str, data: Dict[str, Any], to_address: str) -> bool: ...


def normalize_identity(email: str) -> str:
    return (email or "").strip().lower()


class PasswordRecoveryService:
    """Service for OTP-based password resets."""

    def __init__(self, db: AsyncSession, notifier: Notifier, clock: Clock = utcnow):
        self.db = db
        self.notifier = notifier
        self.clock = clock

    # ===========================================
    # ATTEMPT LEDGER / LOCKOUT
    # ===========================================

    def _lockout_error(self, locked_until: datetime) -> RateLimitException:
        remaining = (as_utc(locked_until) - self.clock()).total_seconds()
        return RateLimitException(
            retry_after=max(1, math.ceil(remaining)),
            code=ErrorCode.TOO_MANY_ATTEMPTS,
        )

    async def _ensure_not_locked(self, identity: str) -> None:
        locked_until = await self.db.scalar(
            select(OTPAttempt.locked_until).where(OTPAttempt.identity == identity)
        )
        if locked_until is not None and as_utc(locked_until) > self.clock():
            logger.warning("OTP request refused: identity is locked out")
            raise self._lockout_error(locked_until)

    def _insert_ledger_row(self, identity: str, now: datetime):
        """INSERT ... ON CONFLICT DO NOTHING for the identity's ledger row."""
        dialect = self.db.get_bind().dialect.name
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        return (
            insert(OTPAttempt)
            .values(identity=identity, attempt_count=0, window_started_at=now)
            .on_conflict_do_nothing(index_elements=["identity"])
        )

    async def _count_attempt(self, identity: str) -> Tuple[int, Optional[datetime]]:
        """
        Add one code check to the identity's window in a single UPDATE.

        Returns (position of this check in the window, locked_until). An
        active lock keeps its window; an expired window or lock starts a
        new one at 1.
        """
        now = self.clock()
        window_start = now - timedelta(minutes=settings.otp_attempt_window_minutes)
        lock_until = literal(
            now + timedelta(minutes=settings.otp_lockout_minutes), DateTime(timezone=True)
        )
        now_value = literal(now, DateTime(timezone=True))

        lock_active = and_(OTPAttempt.locked_until.is_not(None), OTPAttempt.locked_until > now_value)
        window_open = and_(OTPAttempt.locked_until.is_(None), OTPAttempt.window_started_at > window_start)
        continues = or_(lock_active, window_open)
        next_count = case((continues, OTPAttempt.attempt_count + 1), else_=1)

        await self.db.execute(self._insert_ledger_row(identity, now))
        await self.db.execute(
            update(OTPAttempt)
            .where(OTPAttempt.identity == identity)
            .values(
                attempt_count=next_count,
                window_started_at=case((continues, OTPAttempt.window_started_at), else_=now_value),
                locked_until=case(
                    (lock_active, OTPAttempt.locked_until),
                    (next_count >= settings.otp_max_attempts, lock_until),
                    else_=None,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(
            select(OTPAttempt.attempt_count, OTPAttempt.locked_until)
            .where(OTPAttempt.identity == identity)
        )).one()
        await self.db.commit()
        return row.attempt_count, row.locked_until

    async def _register_attempt(self, identity: str) -> None:
        """
        Take a place in the identity's attempt count before a code is compared.

        Raises RateLimitException once the count is past otp_max_attempts.
        Write conflicts are retried with backoff like counter writes.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                count, locked_until = await self._count_attempt(identity)
                break
            except (IntegrityError, OperationalError) as exc:
                await self.db.rollback()
                if attempt >= settings.counter_max_retries:
                    logger.error(f"OTP attempt ledger write failed after {attempt} attempts: {exc}")
                    raise TransientStoreException("record OTP attempt", attempt, exc) from exc
                delay = settings.counter_retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"OTP attempt ledger conflict (attempt {attempt}), "
                    f"retrying in {delay:.3f}s: {type(exc).__name__}"
                )
                await asyncio.sleep(delay)

        if count > settings.otp_max_attempts and locked_until is not None:
            logger.warning("OTP check refused: identity is locked out")
            raise self._lockout_error(locked_until)
        if count == settings.otp_max_attempts:
            logger.warning(
                f"OTP identity locked for {settings.otp_lockout_minutes} minutes "
                f"after {count} attempts"
            )

    async def _clear_attempts(self, identity: str) -> None:
        await self.db.execute(delete(OTPAttempt).where(OTPAttempt.identity == identity))
        await self.db.commit()

    async def _find_account(self, identity: str) -> Optional[MSMEBusiness]:
        return await self.db.scalar(
            select(MSMEBusiness).where(
                MSMEBusiness.email_address == identity,
                MSMEBusiness.deleted_at.is_(None),
            )
        )

    # ===========================================
    # FLOW
    # ===========================================

    async def request_otp(self, email: str) -> str:
        """
        Issue a code if the account exists.

        Always returns the same message; only a lockout changes the outcome.
        The email is handed to the notifier, which queues it; delivery
        happens after the response.
        """
        identity = normalize_identity(email)
        await self._ensure_not_locked(identity)

        business = await self._find_account(identity)
        if business is None:
            logger.info("OTP requested for an unknown identity")
            return OTP_SENT_MESSAGE

        now = self.clock()
        otp = generate_otp(settings.otp_length)
        business.reset_otp = otp
        business.reset_otp_expires_at = now + timedelta(minutes=settings.otp_expire_minutes)
        business.otp_verified = False
        business.reset_token_hash = None
        business.reset_token_expires_at = None
        await self.db.commit()

        logger.info(f"OTP issued for business {business.id}")

        try:
            queued = await self.notifier.send(
                PASSWORD_RESET_OTP.template_id,
                {"otp": otp, "expires_minutes": settings.otp_expire_minutes},
                business.email_address,
            )
            if not queued:
                logger.warning(f"OTP email for business {business.id} was not delivered")
        except Exception as e:
            logger.error(f"OTP email for business {business.id} raised: {e}", exc_info=True)

        return OTP_SENT_MESSAGE

    async def verify_otp(self, email: str, code: str) -> Tuple[str, int]:
        """
        Exchange a valid code for a reset token.

        Returns (reset_token, expires_in_seconds). The code is consumed by a
        conditional UPDATE, so one code yields at most one token.
        """
        identity = normalize_identity(email)
        await self._ensure_not_locked(identity)
        await self._register_attempt(identity)

        code = (code or "").strip()
        invalid = CredentialRecoveryException(INVALID_OTP_MESSAGE, ErrorCode.INVALID_OTP)

        business = await self._find_account(identity)
        if (
            business is None
            or business.otp_verified
            or not constant_time_equals(business.reset_otp, code)
        ):
            raise invalid

        now = self.clock()
        expires_at = as_utc(business.reset_otp_expires_at)
        if expires_at is None or expires_at <= now:
            business.reset_otp = None
            business.reset_otp_expires_at = None
            await self.db.commit()
            raise CredentialRecoveryException(EXPIRED_OTP_MESSAGE, ErrorCode.EXPIRED_OTP)

        token = generate_reset_token()
        ttl = timedelta(minutes=settings.reset_token_expire_minutes)
        result = await self.db.execute(
            update(MSMEBusiness)
            .where(
                MSMEBusiness.id == business.id,
                MSMEBusiness.reset_otp == code,
                MSMEBusiness.otp_verified.is_(False),
                MSMEBusiness.reset_otp_expires_at > now,
            )
            .values(
                reset_otp=None,
                reset_otp_expires_at=None,
                otp_verified=True,
                reset_token_hash=hash_token(token),
                reset_token_expires_at=now + ttl,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(business)

        if result.rowcount != 1:
            logger.warning(f"OTP for business {business.id} was already consumed")
            raise invalid

        await self._clear_attempts(identity)
        logger.info(f"OTP verified for business {business.id}")
        return token, int(ttl.total_seconds())

    async def reset_password(self, email: str, reset_token: str, new_password: str) -> None:
        """
        Set a new password using a token from verify_otp.

        Every token problem produces the same error. The token is consumed
        by the same UPDATE that stores the new password.
        """
        if len(new_password or "") < settings.password_min_length:
            raise ValidationException(
                f"Password must be at least {settings.password_min_length} characters",
                field="new_password",
                code=ErrorCode.PASSWORD_TOO_SHORT,
            )

        identity = normalize_identity(email)
        business = await self._find_account(identity)
        invalid = CredentialRecoveryException(INVALID_RESET_MESSAGE, ErrorCode.INVALID_RESET_REQUEST)

        if business is None or not business.otp_verified or not business.reset_token_hash:
            raise invalid
        token_hash = hash_token(reset_token or "")
        if not constant_time_equals(business.reset_token_hash, token_hash):
            raise invalid

        now = self.clock()
        expires_at = as_utc(business.reset_token_expires_at)
        if expires_at is None or expires_at <= now:
            raise invalid

        result = await self.db.execute(
            update(MSMEBusiness)
            .where(
                MSMEBusiness.id == business.id,
                MSMEBusiness.deleted_at.is_(None),
                MSMEBusiness.reset_token_hash == token_hash,
                MSMEBusiness.otp_verified.is_(True),
                MSMEBusiness.reset_token_expires_at > now,
            )
            .values(
                hashed_password=get_password_hash(new_password),
                reset_token_hash=None,
                reset_token_expires_at=None,
                otp_verified=False,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(business)

        if result.rowcount != 1:
            logger.warning(f"Reset token for business {business.id} was already used")
            raise invalid

        logger.info(f"Password reset completed for business {business.id}")

    # ===========================================
    # MAINTENANCE
    # ===========================================

    async def cleanup_expired_credentials(self, batch_size: Optional[int] = None) -> Dict[str, int]:
        """
        Clear expired codes and reset tokens in bounded batches.

        Each batch is committed on its own, so a failure keeps earlier
        batches. Stale attempt-ledger rows are removed at the end.
        """
        batch_size = batch_size or settings.cleanup_batch_size
        now = self.clock()
        window_start = now - timedelta(minutes=settings.otp_attempt_window_minutes)
        otp_expired = and_(
            MSMEBusiness.reset_otp_expires_at.is_not(None),
            MSMEBusiness.reset_otp_expires_at <= now,
        )
        token_expired = and_(
            MSMEBusiness.reset_token_expires_at.is_not(None),
            MSMEBusiness.reset_token_expires_at <= now,
        )

        stats = {"otps_cleared": 0, "tokens_cleared": 0, "batches": 0, "attempts_removed": 0}
        while True:
            rows = (await self.db.scalars(
                select(MSMEBusiness)
                .where(or_(otp_expired, token_expired))
                .order_by(MSMEBusiness.id)
                .limit(batch_size)
            )).all()
            if not rows:
                break

            for business in rows:
                otp_expiry = as_utc(business.reset_otp_expires_at)
                if otp_expiry is not None and otp_expiry <= now:
                    business.reset_otp = None
                    business.reset_otp_expires_at = None
                    stats["otps_cleared"] += 1
                token_expiry = as_utc(business.reset_token_expires_at)
                if token_expiry is not None and token_expiry <= now:
                    business.reset_token_hash = None
                    business.reset_token_expires_at = None
                    business.otp_verified = False
                    stats["tokens_cleared"] += 1

            await self.db.commit()
            stats["batches"] += 1
            if len(rows) < batch_size:
                break

        result = await self.db.execute(
            delete(OTPAttempt).where(or_(
                and_(OTPAttempt.locked_until.is_not(None), OTPAttempt.locked_until <= now),
                and_(OTPAttempt.locked_until.is_(None), OTPAttempt.window_started_at <= window_start),
            ))
        )
        await self.db.commit()
        stats["attempts_removed"] = result.rowcount or 0

        logger.info(
            f"Credential cleanup: {stats['otps_cleared']} codes, {stats['tokens_cleared']} tokens "
            f"in {stats['batches']} batch(es), {stats['attempts_removed']} attempt records expired"
        )
        return stats


