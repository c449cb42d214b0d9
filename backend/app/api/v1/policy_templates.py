"""Policy template catalogue: listing, search, statistics and CRUD."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db, page_query
from app.api.schemas.common import ApiResponse, PageQuery, Pagination
from app.api.schemas.policies import (
    PolicyTemplateCreate,
    PolicyTemplateList,
    PolicyTemplateOut,
    PolicyTemplateUpdate,
    TemplateClients,
    TemplateDeleteResult,
    TemplateDetailStats,
    TemplateFilters,
    TemplateInstanceOut,
    TemplateListStats,
    TemplateSystemStats,
)
from app.core.constants import PolicyStatus
from app.core.rate_limit import rate_limiters
from app.repositories import policy_instances as instance_repository
from app.repositories.policy_templates import TemplateRow
from app.services import policy_templates as template_service

router = APIRouter(
    prefix="/policy-templates",
    tags=["Policy Templates"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


def _split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    items = [part.strip() for part in value.split(",") if part.strip()]
    return items or None


def _template_out(row: TemplateRow) -> PolicyTemplateOut:
    return PolicyTemplateOut.model_validate(row.template).model_copy(
        update={
            "instance_count": row.instance_count,
            "active_instance_count": row.active_instance_count,
        }
    )


@router.get("", response_model=ApiResponse[PolicyTemplateList], dependencies=[Depends(rate_limiters.search)])
async def list_templates(
    page: PageQuery = Depends(page_query),
    search: str | None = Query(None, max_length=100),
    policy_types: str | None = Query(None, alias="policyTypes"),
    providers: str | None = Query(None),
    has_instances: bool | None = Query(None, alias="hasInstances"),
    sort_field: Literal["policyNumber", "policyType", "provider", "createdAt"] = Query(
        "createdAt", alias="sortField"
    ),
    sort_direction: Literal["asc", "desc"] = Query("desc", alias="sortDirection"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyTemplateList]:
    rows, total, stats = await template_service.list_templates(
        db,
        search=search.strip() if search else None,
        policy_types=_split_csv(policy_types),
        providers=_split_csv(providers),
        has_instances=has_instances,
        sort_field=sort_field,
        sort_direction=sort_direction,
        offset=page.offset,
        limit=page.limit,
    )
    return ApiResponse(
        data=PolicyTemplateList(
            templates=[_template_out(row) for row in rows],
            pagination=Pagination.build(page=page.page, limit=page.limit, total=total),
            stats=TemplateListStats(**stats),
        )
    )


@router.get(
    "/search",
    response_model=ApiResponse[list[PolicyTemplateOut]],
    dependencies=[Depends(rate_limiters.search)],
)
async def search_templates(
    q: str = Query("", max_length=100),
    exclude_client_id: UUID | None = Query(None, alias="excludeClientId"),
    limit: int = Query(10, ge=1),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PolicyTemplateOut]]:
    """Quick search for the "add policy" picker."""
    rows = await template_service.search_templates(db, q, exclude_client_id=exclude_client_id, limit=limit)
    return ApiResponse(data=[_template_out(row) for row in rows])


@router.get("/filters", response_model=ApiResponse[TemplateFilters])
async def get_filters(db: AsyncSession = Depends(get_db)) -> ApiResponse[TemplateFilters]:
    return ApiResponse(data=TemplateFilters(**await template_service.get_filters(db)))


@router.get("/stats", response_model=ApiResponse[TemplateSystemStats])
async def get_stats(db: AsyncSession = Depends(get_db)) -> ApiResponse[TemplateSystemStats]:
    return ApiResponse(data=TemplateSystemStats(**await template_service.get_system_stats(db)))


@router.post(
    "",
    response_model=ApiResponse[PolicyTemplateOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def create_template(
    payload: PolicyTemplateCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyTemplateOut]:
    template = await template_service.create_template(db, payload.model_dump())
    return ApiResponse(data=PolicyTemplateOut.model_validate(template), message="Policy template created successfully")


@router.get("/{template_id}", response_model=ApiResponse[PolicyTemplateOut])
async def get_template(template_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[PolicyTemplateOut]:
    template = await template_service.get_template_or_404(db, template_id)
    instances = await instance_repository.list_for_template(db, template_id)
    return ApiResponse(
        data=PolicyTemplateOut.model_validate(template).model_copy(
            update={
                "instance_count": len(instances),
                "active_instance_count": sum(1 for i in instances if i.status == PolicyStatus.ACTIVE.value),
            }
        )
    )


@router.get("/{template_id}/clients", response_model=ApiResponse[TemplateClients])
async def get_template_clients(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TemplateClients]:
    """Template with every client holding it and the detail statistics."""
    template, instances, stats = await template_service.get_template_clients(db, template_id)
    return ApiResponse(
        data=TemplateClients(
            template=PolicyTemplateOut.model_validate(template).model_copy(
                update={
                    "instance_count": len(instances),
                    "active_instance_count": stats["active_instances"],
                }
            ),
            instances=[TemplateInstanceOut.model_validate(i) for i in instances],
            stats=TemplateDetailStats(**stats),
        )
    )


@router.get("/{template_id}/instances", response_model=ApiResponse[list[TemplateInstanceOut]])
async def list_template_instances(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[TemplateInstanceOut]]:
    await template_service.get_template_or_404(db, template_id)
    instances = await instance_repository.list_for_template(db, template_id)
    return ApiResponse(data=[TemplateInstanceOut.model_validate(i) for i in instances])


@router.put(
    "/{template_id}",
    response_model=ApiResponse[PolicyTemplateOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_template(
    template_id: UUID,
    payload: PolicyTemplateUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyTemplateOut]:
    template = await template_service.update_template(db, template_id, payload.model_dump(exclude_unset=True))
    return ApiResponse(data=PolicyTemplateOut.model_validate(template), message="Policy template updated successfully")


@router.delete(
    "/{template_id}",
    response_model=ApiResponse[TemplateDeleteResult],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def delete_template(
    template_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TemplateDeleteResult]:
    affected = await template_service.delete_template(db, template_id)
    return ApiResponse(
        data=TemplateDeleteResult(affected_clients=affected),
        message="Policy template deleted successfully",
    )
