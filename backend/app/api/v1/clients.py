"""Client CRUD, audit trail and the client's policy instances."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_agent, get_db, page_query
from app.api.schemas.clients import (
    AuditLogList,
    AuditLogOut,
    AuditStats,
    ClientCreate,
    ClientDetail,
    ClientList,
    ClientListItem,
    ClientOut,
    ClientUpdate,
)
from app.api.schemas.common import ApiResponse, MessageResponse, PageQuery, Pagination
from app.api.schemas.policies import PolicyInstanceCreate, PolicyInstanceOut
from app.core.rate_limit import rate_limiters
from app.repositories import audit_logs as audit_repository
from app.repositories import clients as client_repository
from app.services import audit as audit_service
from app.services import clients as client_service
from app.services import policy_instances as instance_service

router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
    dependencies=[Depends(get_current_agent), Depends(rate_limiters.general)],
)


@router.get("", response_model=ApiResponse[ClientList], dependencies=[Depends(rate_limiters.search)])
async def list_clients(
    page: PageQuery = Depends(page_query),
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ClientList]:
    rows, total = await client_repository.list_clients(
        db,
        search=search.strip() if search else None,
        offset=page.offset,
        limit=page.limit,
    )
    items = [
        ClientListItem.model_validate(client).model_copy(update={"policy_count": count})
        for client, count in rows
    ]
    return ApiResponse(
        data=ClientList(
            clients=items,
            pagination=Pagination.build(page=page.page, limit=page.limit, total=total),
        )
    )


@router.post(
    "",
    response_model=ApiResponse[ClientOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def create_client(payload: ClientCreate, db: AsyncSession = Depends(get_db)) -> ApiResponse[ClientOut]:
    client = await client_service.create_client(db, payload.model_dump())
    return ApiResponse(data=ClientOut.model_validate(client), message="Client created successfully")


@router.get("/{client_id}", response_model=ApiResponse[ClientDetail])
async def get_client(client_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[ClientDetail]:
    """Client with its policy instances and their template summaries."""
    client = await client_service.get_client_or_404(db, client_id, with_policies=True)
    return ApiResponse(data=ClientDetail.model_validate(client))


@router.put(
    "/{client_id}",
    response_model=ApiResponse[ClientOut],
    dependencies=[Depends(rate_limiters.modifications)],
)
async def update_client(
    client_id: UUID,
    payload: ClientUpdate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[ClientOut]:
    client = await client_service.update_client(db, client_id, payload.model_dump(exclude_unset=True))
    return ApiResponse(data=ClientOut.model_validate(client), message="Client updated successfully")


@router.delete(
    "/{client_id}",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def delete_client(client_id: UUID, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    removed = await client_service.delete_client(db, client_id)
    message = "Client deleted successfully"
    if removed:
        message += f" ({removed} {'policy' if removed == 1 else 'policies'} removed)"
    return MessageResponse(message=message)


@router.get("/{client_id}/audit-logs", response_model=ApiResponse[AuditLogList])
async def list_audit_logs(
    client_id: UUID,
    page: PageQuery = Depends(page_query),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[AuditLogList]:
    logs, total = await audit_repository.list_for_client(db, client_id, offset=page.offset, limit=page.limit)
    return ApiResponse(
        data=AuditLogList(
            logs=[AuditLogOut.model_validate(log) for log in logs],
            pagination=Pagination.build(page=page.page, limit=page.limit, total=total),
        )
    )


@router.get("/{client_id}/audit-stats", response_model=ApiResponse[AuditStats])
async def get_audit_stats(client_id: UUID, db: AsyncSession = Depends(get_db)) -> ApiResponse[AuditStats]:
    await client_service.get_client_or_404(db, client_id)
    return ApiResponse(data=AuditStats(**await audit_service.get_client_audit_stats(db, client_id)))


# ── Policy instances ──────────────────────

@router.get("/{client_id}/policy-instances", response_model=ApiResponse[list[PolicyInstanceOut]])
async def list_policy_instances(
    client_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[PolicyInstanceOut]]:
    instances = await instance_service.list_client_instances(db, client_id)
    return ApiResponse(data=[PolicyInstanceOut.model_validate(i) for i in instances])


@router.post(
    "/{client_id}/policy-instances",
    response_model=ApiResponse[PolicyInstanceOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limiters.modifications)],
)
async def create_policy_instance(
    client_id: UUID,
    payload: PolicyInstanceCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PolicyInstanceOut]:
    """Give the client a policy from an existing template."""
    instance = await instance_service.create_instance(db, client_id, payload.model_dump())
    return ApiResponse(data=PolicyInstanceOut.model_validate(instance), message="Policy added to client successfully")
