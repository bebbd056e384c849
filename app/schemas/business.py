"""
Eswatini MSME Registry - Business Schemas

Request and response models for business registration and review.

Enumerated fields (ownership type, gender, classification, nationality)
are accepted as plain strings here; the ownership validator reports the
precise error code for bad values instead of a generic schema error.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.business import (
    Classification,
    Gender,
    GenderSummary,
    Nationality,
    OwnershipType,
)


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class OwnerInput(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    gender: Optional[str] = None


class DirectorInput(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    nationality: Optional[str] = None
    age: Optional[str] = Field(None, max_length=20)


class BusinessCreateRequest(BaseModel):
    """Schema for a new MSME registration."""
    organization_name: str = Field(..., min_length=1, max_length=255)
    email_address: EmailStr
    password: Optional[str] = Field(None, min_length=8, max_length=100)
    contact_number: Optional[str] = Field(None, max_length=30)

    business_category_id: UUID
    business_sub_category_id: Optional[str] = Field(None, max_length=100)
    region: str = Field(..., min_length=1, max_length=50)
    inkhundla: Optional[str] = Field(None, max_length=100)
    rural_urban_classification: Optional[str] = None
    turnover: Optional[str] = Field(None, max_length=50)

    ownership_type: Optional[str] = None
    owners: List[OwnerInput] = Field(default_factory=list)
    directors: Optional[List[DirectorInput]] = None

    @field_validator("email_address")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class VerifyBusinessRequest(BaseModel):
    """Admin decision on a registration: 2 = approve, 3 = reject."""
    is_verified: int = Field(..., ge=1, le=3)
    comments: Optional[str] = None


class CategoryChangeRequest(BaseModel):
    business_category_id: UUID


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class OwnerResponse(BaseModel):
    name: Optional[str] = None
    gender: Gender

    class Config:
        from_attributes = True


class DirectorResponse(BaseModel):
    name: Optional[str] = None
    nationality: Nationality
    age: Optional[str] = None

    class Config:
        from_attributes = True


class BusinessResponse(BaseModel):
    """Schema for business record response."""
    id: UUID
    organization_name: str
    email_address: str
    business_category_id: UUID
    business_sub_category_id: Optional[str] = None
    region: str
    inkhundla: str
    rural_urban_classification: Classification
    turnover: Optional[str] = None
    ownership_type: OwnershipType
    owner_gender_summary: Optional[GenderSummary] = None
    is_verified: int
    verification_comments: Optional[str] = None
    verified_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    owners: List[OwnerResponse] = []
    directors: List[DirectorResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class BusinessActionResponse(BaseModel):
    """Envelope returned by write endpoints."""
    message: str
    success: bool = True
    data: Optional[BusinessResponse] = None
