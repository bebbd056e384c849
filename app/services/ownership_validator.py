"""
Eswatini MSME Registry - Ownership Validator

Pure checks on the ownership, location and director fields of a business
registration. Nothing here touches the database or raises: each check
returns a ValidationResult and the caller decides what to do with it.

Rules:
- Individual businesses have exactly one owner.
- Partnerships have between two and five owners.
- Every owner is Male or Female.
- Inkhundla is required and the rural/urban classification must be valid.
- Directors are optional, but every listed director needs a nationality.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Sequence

from app.models.business import (
    Classification,
    Gender,
    GenderSummary,
    Nationality,
    OwnershipType,
)
from app.utils.error_handling import ErrorCode


MIN_PARTNERS = 2
MAX_PARTNERS = 5

VALID_GENDERS = {g.value for g in Gender}
VALID_CLASSIFICATIONS = {c.value for c in Classification}
VALID_NATIONALITIES = {n.value for n in Nationality}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a single validation step."""
    valid: bool
    error: Optional[ErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, error: ErrorCode, message: str) -> "ValidationResult":
        return cls(valid=False, error=error, message=message)


def _get(item: Any, name: str) -> Any:
    """Read a field from a dict-like payload or an object (schema / ORM row)."""
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _text(value: Any) -> Optional[str]:
    """Enum members compare by value, raw strings pass through."""
    if value is None:
        return None
    return getattr(value, "value", value)


def validate_ownership(ownership_type: Any, owners: Optional[Sequence[Any]]) -> ValidationResult:
    """Check the ownership type against the number and genders of owners."""
    kind = _text(ownership_type)
    if kind not in (OwnershipType.INDIVIDUAL.value, OwnershipType.PARTNERSHIP.value):
        return ValidationResult.fail(
            ErrorCode.INVALID_OWNERSHIP_TYPE,
            'Invalid ownership type. Must be "Individual" or "Partnership"',
        )

    owners = list(owners or [])

    if kind == OwnershipType.INDIVIDUAL.value and len(owners) != 1:
        return ValidationResult.fail(
            ErrorCode.OWNER_COUNT_MISMATCH,
            "Individual ownership requires exactly 1 owner",
        )
    if kind == OwnershipType.PARTNERSHIP.value and not (MIN_PARTNERS <= len(owners) <= MAX_PARTNERS):
        return ValidationResult.fail(
            ErrorCode.OWNER_COUNT_MISMATCH,
            f"Partnership requires {MIN_PARTNERS}-{MAX_PARTNERS} owners",
        )

    for index, owner in enumerate(owners, start=1):
        if _text(_get(owner, "gender")) not in VALID_GENDERS:
            return ValidationResult.fail(
                ErrorCode.INVALID_OWNER_GENDER,
                f"Owner {index} must have a valid gender (Male or Female)",
            )

    return ValidationResult.ok()


def compute_gender_summary(owners: Optional[Iterable[Any]]) -> Optional[GenderSummary]:
    """
    Collapse owner genders into Male, Female or Both.

    Returns None for an empty owner list. Order does not matter.
    """
    genders = {_text(_get(owner, "gender")) for owner in (owners or [])}
    genders.discard(None)
    if not genders:
        return None
    if len(genders) > 1:
        return GenderSummary.BOTH
    return GenderSummary(genders.pop())


def validate_additional_fields(data: Any) -> ValidationResult:
    """Inkhundla must be non-blank and the classification one of the known values."""
    inkhundla = _get(data, "inkhundla")
    if not inkhundla or not str(inkhundla).strip():
        return ValidationResult.fail(ErrorCode.MISSING_INKHUNDLA, "Inkhundla is required")

    if _text(_get(data, "rural_urban_classification")) not in VALID_CLASSIFICATIONS:
        return ValidationResult.fail(
            ErrorCode.INVALID_CLASSIFICATION,
            "Valid rural urban classification is required (Rural, Urban, or Semi Urban)",
        )

    return ValidationResult.ok()


def validate_directors_nationality(directors: Optional[Sequence[Any]]) -> ValidationResult:
    if directors is None:
        return ValidationResult.ok()

    for index, director in enumerate(directors, start=1):
        if _text(_get(director, "nationality")) not in VALID_NATIONALITIES:
            return ValidationResult.fail(
                ErrorCode.INVALID_DIRECTOR_NATIONALITY,
                f"Director {index} must have a valid nationality (Swazi or Non Swazi)",
            )

    return ValidationResult.ok()


def validate_registration(data: Any) -> ValidationResult:
    """Run every check in order and return the first failure."""
    for result in (
        validate_ownership(_get(data, "ownership_type"), _get(data, "owners")),
        validate_additional_fields(data),
        validate_directors_nationality(_get(data, "directors")),
    ):
        if not result.valid:
            return result
    return ValidationResult.ok()
