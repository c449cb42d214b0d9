"""Single policy instance operations (creation lives under /clients) and form helpers."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db
from app.api.schemas.common import ApiResponse, MessageResponse
from app.api.schemas.policies import (
    AssociationCheck,
    AssociationCheckRequest,
    ExpiryCalculation,
    ExpiryCalculationRequest,
    PolicyInstanceOut,
    PolicyInstanceStatusUpdate,
    PolicyInstanceUpdate,
)
from app.core.rate_limit import rate_limiters
from app.services import policy_instances as instance_service

router = APIRouter(
    prefix="/policy-instances",
    tags=["Policy Instances"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


# ── Form helpers ──────────────────────────

@router.post("/calculate-expiry", response_model=ApiResponse[ExpiryCalculation])
async def calculate_expiry(payload: ExpiryCalculationRequest) -> ApiResponse[ExpiryCalculation]:
    expiry = instance_service.calculate_expiry(payload.start_date, payload.duration_months)
    return ApiResponse(
        data=ExpiryCalculation(
            start_date=payload.start_date,
            duration_months=payload.duration_months,
            expiry_date=expiry,
        )
    )


@router.post("/validate-association", response_model=ApiResponse[AssociationCheck])
async def validate_association(
    payload: AssociationCheckRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AssociationCheck]:
    """Whether the client can take this template (an edited instance may keep its own)."""
    unique = await instance_service.is_unique_association(
        db, payload.client_id, payload.policy_template_id, payload.exclude_instance_id
    )
    message = "Association is valid" if unique else "Client already has this policy template"
    return ApiResponse(data=AssociationCheck(is_unique=unique, message=message))


# ── Instances ─────────────────────────────

@router.get("/{instance_id}", response_model=ApiResponse[PolicyInstanceOut])
async def get_instance(instance_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[PolicyInstanceOut]:
    instance = await instance_service.get_instance_or_404(db, instance_id)
    return ApiResponse(data=PolicyInstanceOut.model_validate(instance))


@router.put(
    "/{instance_id}",
    response_model=ApiResponse[PolicyInstanceOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_instance(
    instance_id: UUID,
    payload: PolicyInstanceUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyInstanceOut]:
    """Partial update; ``durationMonths`` recomputes the expiry date."""
    instance = await instance_service.update_instance(db, instance_id, payload.model_dump(exclude_unset=True))
    return ApiResponse(data=PolicyInstanceOut.model_validate(instance), message="Policy updated successfully")


@router.patch(
    "/{instance_id}/status",
    response_model=ApiResponse[PolicyInstanceOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_status(
    instance_id: UUID,
    payload: PolicyInstanceStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyInstanceOut]:
    instance = await instance_service.update_status(db, instance_id, payload.status)
    return ApiResponse(data=PolicyInstanceOut.model_validate(instance), message="Policy status updated successfully")


@router.delete(
    "/{instance_id}",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def delete_instance(instance_id: UUID, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await instance_service.delete_instance(db, instance_id)
    return MessageResponse(message="Policy removed successfully")
