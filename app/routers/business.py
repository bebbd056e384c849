"""
Eswatini MSME Registry - Business Router

Registration and administrator review of MSME businesses.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.dependencies import (
    get_current_admin,
    get_verification_service,
    require_super_admin,
)
from app.models.user import AdminUser
from app.schemas.auth import MessageResponse
from app.schemas.business import (
    BusinessActionResponse,
    BusinessCreateRequest,
    BusinessResponse,
    CategoryChangeRequest,
    VerifyBusinessRequest,
)
from app.services.business_verification_service import BusinessVerificationService


router = APIRouter()


@router.post(
    "",
    response_model=BusinessActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a business",
)
async def create_business(
    request: BusinessCreateRequest,
    service: BusinessVerificationService = Depends(get_verification_service),
):
    """Submit a new MSME registration; it starts as Pending."""
    business = await service.create(request)
    return BusinessActionResponse(
        message="Business registered successfully and is awaiting verification",
        data=BusinessResponse.model_validate(business),
    )


@router.get(
    "/{business_id}",
    response_model=BusinessResponse,
    summary="Get a business",
)
async def get_business(
    business_id: UUID,
    admin: AdminUser = Depends(get_current_admin),
    service: BusinessVerificationService = Depends(get_verification_service),
):
    return await service.get_business(business_id)


@router.put(
    "/{business_id}/verify",
    response_model=BusinessActionResponse,
    summary="Approve or reject a business",
)
async def verify_business(
    business_id: UUID,
    request: VerifyBusinessRequest,
    admin: AdminUser = Depends(get_current_admin),
    service: BusinessVerificationService = Depends(get_verification_service),
):
    """
    Set the verification status.

    Rejection (3) requires `comments`; approval (2) clears them.
    """
    business = await service.set_status(
        business_id,
        request.is_verified,
        comment=request.comments,
        admin=admin,
    )
    return BusinessActionResponse(
        message=f"Business status is now {business.status.label}",
        data=BusinessResponse.model_validate(business),
    )


@router.put(
    "/{business_id}/category",
    response_model=BusinessActionResponse,
    summary="Move a business to another category",
)
async def change_category(
    business_id: UUID,
    request: CategoryChangeRequest,
    admin: AdminUser = Depends(get_current_admin),
    service: BusinessVerificationService = Depends(get_verification_service),
):
    business = await service.reassign_category(business_id, request.business_category_id)
    return BusinessActionResponse(
        message="Business category updated",
        data=BusinessResponse.model_validate(business),
    )


@router.delete(
    "/{business_id}",
    response_model=MessageResponse,
    summary="Soft-delete a business",
)
async def delete_business(
    business_id: UUID,
    admin: AdminUser = Depends(get_current_admin),
    service: BusinessVerificationService = Depends(get_verification_service),
):
    await service.soft_delete(business_id)
    return MessageResponse(message="Business deleted")


@router.delete(
    "/{business_id}/purge",
    response_model=MessageResponse,
    summary="Permanently remove a business",
)
async def purge_business(
    business_id: UUID,
    admin: AdminUser = Depends(require_super_admin),
    service: BusinessVerificationService = Depends(get_verification_service),
):
    await service.purge(business_id)
    return MessageResponse(message="Business permanently deleted")
