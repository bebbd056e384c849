"""
Eswatini MSME Registry - Business Models

MSME business records, their owners and directors, and the category
lookup table used by the dashboard.
"""

import uuid
from datetime import datetime
from enum import Enum, IntEnum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, SoftDeleteMixin


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def _value_enum(enum_cls, name: str) -> SQLEnum:
    """Store the human-readable value ("Semi Urban"), not the member name."""
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=_enum_values,
        native_enum=False,
        length=20,
    )


class VerificationStatus(IntEnum):
    """Verification state of a business record."""
    PENDING = 1
    APPROVED = 2
    REJECTED = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class OwnershipType(str, Enum):
    INDIVIDUAL = "Individual"
    PARTNERSHIP = "Partnership"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class GenderSummary(str, Enum):
    """Denormalized owner gender mix, derived from the owners list."""
    MALE = "Male"
    FEMALE = "Female"
    BOTH = "Both"


class Classification(str, Enum):
    RURAL = "Rural"
    URBAN = "Urban"
    SEMI_URBAN = "Semi Urban"


class Nationality(str, Enum):
    SWAZI = "Swazi"
    NON_SWAZI = "Non Swazi"


class BusinessCategory(BaseModel):
    """Business category lookup (Agriculture, Manufacturing, ...)."""

    __tablename__ = "business_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<BusinessCategory(name={self.name})>"


class MSMEBusiness(BaseModel, SoftDeleteMixin):
    """
    A registered micro, small or medium enterprise.

    The record doubles as the applicant account: the business email and
    password hash live here, together with the one-time-code fields used
    by the forgot-password flow.
    """

    __tablename__ = "msme_businesses"

    # Basic Info
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email_address: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False,
    )
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    # Classification
    business_category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("business_categories.id"),
        nullable=False,
        index=True,
    )
    business_sub_category_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    region: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    inkhundla: Mapped[str] = mapped_column(String(100), nullable=False)
    rural_urban_classification: Mapped[Classification] = mapped_column(
        _value_enum(Classification, "classification"),
        nullable=False,
    )
    turnover: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Ownership
    ownership_type: Mapped[OwnershipType] = mapped_column(
        _value_enum(OwnershipType, "ownership_type"),
        nullable=False,
    )
    owner_gender_summary: Mapped[Optional[GenderSummary]] = mapped_column(
        _value_enum(GenderSummary, "gender_summary"),
        nullable=True,
    )

    # Verification
    is_verified: Mapped[int] = mapped_column(
        Integer,
        default=VerificationStatus.PENDING.value,
        nullable=False,
        index=True,
    )
    verification_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("admin_users.id", ondelete="SET NULL"),
        nullable=True,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Password recovery challenge
    reset_otp: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    reset_otp_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )
    otp_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reset_token_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reset_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )

    # Relationships
    category: Mapped["BusinessCategory"] = relationship(lazy="selectin")
    owners: Mapped[List["BusinessOwner"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BusinessOwner.position",
    )
    directors: Mapped[List["BusinessDirector"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BusinessDirector.position",
    )

    @property
    def status(self) -> VerificationStatus:
        return VerificationStatus(self.is_verified)

    def __repr__(self) -> str:
        return f"<MSMEBusiness(name={self.organization_name}, status={self.is_verified})>"


class BusinessOwner(BaseModel):
    """Owner of a business; an Individual business has exactly one."""

    __tablename__ = "business_owners"

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("msme_businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gender: Mapped[Gender] = mapped_column(_value_enum(Gender, "gender"), nullable=False)

    business: Mapped["MSMEBusiness"] = relationship(back_populates="owners")


class BusinessDirector(BaseModel):
    """Company director; optional for every ownership type."""

    __tablename__ = "business_directors"

    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("msme_businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    nationality: Mapped[Nationality] = mapped_column(
        _value_enum(Nationality, "nationality"), nullable=False,
    )
    age: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    business: Mapped["MSMEBusiness"] = relationship(back_populates="directors")
