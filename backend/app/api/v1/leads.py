"""Lead pipeline CRUD and lead-to-client conversion."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db, page_query
from app.api.schemas.common import ApiResponse, MessageResponse, PageQuery, Pagination
from app.api.schemas.leads import LeadConversion, LeadCreate, LeadList, LeadOut, LeadUpdate
from app.core.constants import LeadStatus
from app.core.rate_limit import rate_limiters
from app.repositories import leads as lead_repository
from app.services import leads as lead_service

router = APIRouter(
    prefix="/leads",
    tags=["Leads"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


@router.get("", response_model=ApiResponse[LeadList], dependencies=[Depends(rate_limiters.search)])
async def list_leads(
    page: PageQuery = Depends(page_query),
    search: str | None = Query(None, max_length=100),
    lead_status: LeadStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[LeadList]:
    """List leads newest first."""
    leads, total = await lead_repository.list_leads(
        db,
        search=search.strip() if search else None,
        status=lead_status.value if lead_status else None,
        offset=page.offset,
        limit=page.limit,
    )
    return ApiResponse(
        data=LeadList(
            leads=[LeadOut.model_validate(lead) for lead in leads],
            pagination=Pagination.build(page=page.page, limit=page.limit, total=total),
        )
    )


@router.post(
    "",
    response_model=ApiResponse[LeadOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def create_lead(payload: LeadCreate, db: AsyncSession = Depends(get_db)) -> ApiResponse[LeadOut]:
    lead = await lead_service.create_lead(db, payload.model_dump())
    return ApiResponse(data=LeadOut.model_validate(lead), message="Lead created successfully")


@router.get("/{lead_id}", response_model=ApiResponse[LeadOut])
async def get_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[LeadOut]:
    lead = await lead_service.get_lead_or_404(db, lead_id)
    return ApiResponse(data=LeadOut.model_validate(lead))


@router.put(
    "/{lead_id}",
    response_model=ApiResponse[LeadOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_lead(
    lead_id: UUID,
    payload: LeadUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[LeadOut]:
    lead = await lead_service.update_lead(db, lead_id, payload.model_dump(exclude_unset=True))
    return ApiResponse(data=LeadOut.model_validate(lead), message="Lead updated successfully")


@router.delete(
    "/{lead_id}",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def delete_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    await lead_service.delete_lead(db, lead_id)
    return MessageResponse(message="Lead deleted successfully")


@router.post(
    "/{lead_id}/convert",
    response_model=ApiResponse[LeadConversion],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def convert_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[LeadConversion]:
    """Create a client from the lead and mark the lead Won."""
    lead, client = await lead_service.convert_lead(db, lead_id)
    return ApiResponse(
        data=LeadConversion(lead=LeadOut.model_validate(lead), client_id=client.id),
        message="Lead converted to client successfully",
    )
