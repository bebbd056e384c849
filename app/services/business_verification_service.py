"""
Eswatini MSME Registry - Business Verification Service

Owns the verification status of MSME business records:

    Pending (1) -> Approved (2) | Rejected (3)
    Approved <-> Rejected      (an admin may reverse a decision)

Nothing returns to Pending once reviewed. Every committed change is
followed by a lifecycle event (counter updates) and, where relevant, an
applicant email. Neither can undo the write: publisher and notifier
failures are logged only.

Callers are responsible for authorization; the HTTP layer only reaches
these methods through an authenticated admin dependency.
"""

import logging
import uuid
from typing import Any, Dict, Optional, Protocol, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.business import (
    BusinessCategory,
    BusinessDirector,
    BusinessOwner,
    Classification,
    Gender,
    MSMEBusiness,
    Nationality,
    OwnershipType,
    VerificationStatus,
)
from app.models.user import AdminUser
from app.services.email_templates import REGISTRATION_RECEIVED, template_for_status
from app.services.lifecycle_events import (
    BusinessCategoryChanged,
    BusinessCreated,
    BusinessDeleted,
    BusinessStatusChanged,
    LifecycleEvent,
)
from app.services.ownership_validator import compute_gender_summary, validate_registration
from app.utils.clock import Clock, utcnow
from app.utils.error_handling import (
    BusinessNotFoundException,
    DuplicateEntryException,
    ErrorCode,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from app.utils.security import get_password_hash

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, template_id: str, data: Dict[str, Any], to_address: str) -> bool: ...


class EventPublisher(Protocol):
    async def publish(self, event: LifecycleEvent) -> None: ...


class BusinessVerificationService:
    """Service for registering and reviewing MSME businesses."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: EventPublisher,
        notifier: Notifier,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.publisher = publisher
        self.notifier = notifier
        self.clock = clock

    # ===========================================
    # HELPERS
    # ===========================================

    async def _get_business(
        self,
        business_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> MSMEBusiness:
        business = await self.db.get(MSMEBusiness, business_id)
        if business is None or (business.deleted_at is not None and not include_deleted):
            raise BusinessNotFoundException(business_id)
        return business

    async def _require_category(self, category_id: Union[uuid.UUID, str]) -> uuid.UUID:
        category_id = category_id if isinstance(category_id, uuid.UUID) else uuid.UUID(str(category_id))
        if await self.db.get(BusinessCategory, category_id) is None:
            raise NotFoundException("Business category", category_id)
        return category_id

    async def _notify(self, template_id: str, data: Dict[str, Any], to_address: str) -> None:
        try:
            sent = await self.notifier.send(template_id, data, to_address)
        except Exception as e:
            logger.error(f"Notification {template_id} raised: {e}", exc_info=True)
            return
        if not sent:
            logger.warning(f"Notification {template_id} was not delivered")

    async def get_business(
        self,
        business_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> MSMEBusiness:
        return await self._get_business(business_id, include_deleted=include_deleted)

    # ===========================================
    # REGISTRATION
    # ===========================================

    async def create(self, payload: Any) -> MSMEBusiness:
        """
        Validate and store a new registration with status Pending.

        Raises ValidationException with the first failing rule's code;
        nothing is written in that case.
        """
        data: Dict[str, Any] = payload.model_dump() if hasattr(payload, "model_dump") else dict(payload)

        result = validate_registration(data)
        if not result.valid:
            raise ValidationException(result.message, code=result.error)

        email = str(data["email_address"]).strip().lower()
        existing = await self.db.scalar(
            select(MSMEBusiness.id).where(MSMEBusiness.email_address == email)
        )
        if existing is not None:
            raise DuplicateEntryException("Business", "email_address", email)

        category_id = await self._require_category(data["business_category_id"])
        owners = data.get("owners") or []
        directors = data.get("directors") or []

        business = MSMEBusiness(
            organization_name=data["organization_name"].strip(),
            email_address=email,
            hashed_password=get_password_hash(data["password"]) if data.get("password") else None,
            contact_number=data.get("contact_number"),
            business_category_id=category_id,
            business_sub_category_id=data.get("business_sub_category_id"),
            region=data["region"],
            inkhundla=data["inkhundla"].strip(),
            rural_urban_classification=Classification(data["rural_urban_classification"]),
            turnover=data.get("turnover"),
            ownership_type=OwnershipType(data["ownership_type"]),
            owner_gender_summary=compute_gender_summary(owners),
            is_verified=VerificationStatus.PENDING.value,
            owners=[
                BusinessOwner(position=i, name=o.get("name"), gender=Gender(o["gender"]))
                for i, o in enumerate(owners)
            ],
            directors=[
                BusinessDirector(
                    position=i,
                    name=d.get("name"),
                    nationality=Nationality(d["nationality"]),
                    age=d.get("age"),
                )
                for i, d in enumerate(directors)
            ],
        )

        self.db.add(business)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEntryException("Business", "email_address", email)
        await self.db.refresh(business)

        logger.info(f"Business registered: {business.id} ({business.organization_name})")

        await self.publisher.publish(BusinessCreated(
            business_id=str(business.id),
            occurred_at=self.clock(),
            category_id=str(business.business_category_id),
        ))
        await self._notify(
            REGISTRATION_RECEIVED.template_id,
            {"organization_name": business.organization_name},
            business.email_address,
        )
        return business

    # ===========================================
    # STATUS TRANSITIONS
    # ===========================================

    async def set_status(
        self,
        business_id: uuid.UUID,
        new_status: Union[VerificationStatus, int],
        comment: Optional[str] = None,
        admin: Optional[AdminUser] = None,
    ) -> MSMEBusiness:
        """
        Move a business to Approved or Rejected.

        Rejection needs a non-empty comment of at most
        `rejection_comment_max_length` characters; approval clears it.
        Repeating the current status changes nothing and sends no email.
        """
        try:
            target = VerificationStatus(int(new_status))
        except ValueError:
            raise ValidationException(
                "is_verified must be 1 (Pending), 2 (Approved) or 3 (Rejected)",
                field="is_verified",
            ) from None

        business = await self._get_business(business_id)
        current = business.status

        if target == VerificationStatus.PENDING and current != VerificationStatus.PENDING:
            raise StateConflictException(
                f"Cannot move a {current.label} business back to pending",
                code=ErrorCode.ILLEGAL_TRANSITION,
                details={"from": current.label, "to": target.label},
            )

        comment = (comment or "").strip() or None
        if target == VerificationStatus.REJECTED:
            if not comment:
                raise StateConflictException(
                    "A rejection reason is required",
                    code=ErrorCode.REJECTION_REASON_REQUIRED,
                    field="comments",
                )
            max_length = settings.rejection_comment_max_length
            if len(comment) > max_length:
                raise StateConflictException(
                    f"Rejection reason must be at most {max_length} characters",
                    code=ErrorCode.REJECTION_REASON_TOO_LONG,
                    field="comments",
                )

        if target == current:
            if target == VerificationStatus.REJECTED and comment != business.verification_comments:
                business.verification_comments = comment
                await self.db.commit()
                await self.db.refresh(business)
            logger.info(f"Business {business.id} already {target.label}; no transition")
            return business

        now = self.clock()
        business.is_verified = target.value
        business.verification_comments = comment if target == VerificationStatus.REJECTED else None
        business.verified_by_id = admin.id if admin else None
        business.verified_at = now

        await self.db.commit()
        await self.db.refresh(business)

        logger.info(
            f"Business {business.id} {current.label} -> {target.label}"
            + (f" by {admin.email}" if admin else "")
        )

        await self.publisher.publish(BusinessStatusChanged(
            business_id=str(business.id),
            occurred_at=now,
            old_status=current.value,
            new_status=target.value,
        ))

        template = template_for_status(target)
        await self._notify(
            template.template_id,
            {
                "organization_name": business.organization_name,
                "comments": business.verification_comments,
            },
            business.email_address,
        )
        return business

    # ===========================================
    # CATEGORY / DELETION
    # ===========================================

    async def reassign_category(
        self,
        business_id: uuid.UUID,
        new_category_id: Union[uuid.UUID, str],
    ) -> MSMEBusiness:
        business = await self._get_business(business_id)
        new_category_id = await self._require_category(new_category_id)
        old_category_id = business.business_category_id

        if old_category_id == new_category_id:
            return business

        business.business_category_id = new_category_id
        await self.db.commit()
        await self.db.refresh(business)

        logger.info(f"Business {business.id} moved from category {old_category_id} to {new_category_id}")

        await self.publisher.publish(BusinessCategoryChanged(
            business_id=str(business.id),
            occurred_at=self.clock(),
            old_category_id=str(old_category_id),
            new_category_id=str(new_category_id),
        ))
        return business

    async def soft_delete(self, business_id: uuid.UUID) -> MSMEBusiness:
        """Hide a business from the registry. Deleting twice is a no-op."""
        business = await self._get_business(business_id, include_deleted=True)
        if business.deleted_at is not None:
            return business

        now = self.clock()
        business.deleted_at = now
        await self.db.commit()
        await self.db.refresh(business)

        logger.info(f"Business {business.id} soft-deleted")

        await self.publisher.publish(BusinessDeleted(
            business_id=str(business.id),
            occurred_at=now,
            category_id=str(business.business_category_id),
        ))
        return business

    async def purge(self, business_id: uuid.UUID) -> None:
        """
        Permanently remove a business and its owners and directors.

        The category counter is only decremented here if the record was
        still live; a soft delete has already accounted for it.
        """
        business = await self._get_business(business_id, include_deleted=True)
        was_live = business.deleted_at is None
        category_id = business.business_category_id
        record_id = business.id

        await self.db.delete(business)
        await self.db.commit()

        logger.info(f"Business {record_id} purged")

        if was_live:
            await self.publisher.publish(BusinessDeleted(
                business_id=str(record_id),
                occurred_at=self.clock(),
                category_id=str(category_id),
                hard=True,
            ))
