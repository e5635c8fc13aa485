"""
slots.py
--------
Purpose:
    Slot assignment, lifecycle updates and ranking history.

Usage:
    GET    /api/slots                 - Slots within the caller's reach
    POST   /api/slots                 - Assign a slot below the caller (agency and up)
    GET    /api/slots/{id}            - Slot detail with its current ranking
    PUT    /api/slots/{id}            - Update keyword / url / status / progress
    DELETE /api/slots/{id}            - Remove a slot (admin)
    POST   /api/slots/{id}/ranking    - Record an observed rank
    GET    /api/slots/{id}/rankings   - Ranking history, newest first
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from slotdesk.auth.hierarchy import Role
from slotdesk.auth.verify import get_current_user, require_roles
from slotdesk.config import settings
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.pagination import Page, PageParams, page_params
from slotdesk.models.api.slot_request import RankingRequest, SlotCreateRequest, SlotUpdateRequest
from slotdesk.models.api.user_response import MessageResponse
from slotdesk.models.domain.slot_domain import RankingEntry, Slot, SlotCategory, SlotStatus
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services import slot_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/slots", tags=["slots"])


@router.get("", response_model=Page[Slot])
async def list_slots(
    params: PageParams = Depends(page_params),
    status_filter: SlotStatus | None = Query(None, alias="status"),
    category: SlotCategory | None = None,
    search: str | None = Query(None, max_length=100),
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await slot_service.list_slots(
        db, user, params, status=status_filter, category=category, search=search
    )


@router.post("", response_model=Slot, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreateRequest,
    request: Request,
    user: CurrentUser = Depends(require_roles(Role.ADMIN, Role.DISTRIBUTOR, Role.AGENCY)),
    db: DatabasePoolManager = Depends(get_db),
):
    slot = await slot_service.create_slot(db, user, payload)

    await record_activity(
        request,
        db,
        user.id,
        "slot_created",
        "slot",
        slot.id,
        {"slot_code": slot.slot_code, "assigned_user_id": str(slot.assigned_user_id)},
    )

    return slot


@router.get("/{slot_id}", response_model=Slot)
async def get_slot(
    slot_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    """
    Raises:
        403: Slot owner is outside the caller's hierarchy
        404: Unknown slot
    """
    return await slot_service.get_slot(db, user, slot_id)


@router.put("/{slot_id}", response_model=Slot)
async def update_slot(
    slot_id: UUID,
    payload: SlotUpdateRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    slot = await slot_service.update_slot(db, user, slot_id, payload)

    await record_activity(
        request,
        db,
        user.id,
        "slot_updated",
        "slot",
        slot_id,
        {"fields": sorted(payload.model_dump(exclude_none=True))},
    )

    return slot


@router.delete("/{slot_id}", response_model=MessageResponse)
async def delete_slot(
    slot_id: UUID,
    request: Request,
    user: CurrentUser = Depends(require_roles(Role.ADMIN)),
    db: DatabasePoolManager = Depends(get_db),
):
    deleted_id = await slot_service.delete_slot(db, slot_id)

    await record_activity(request, db, user.id, "slot_deleted", "slot", deleted_id)

    return MessageResponse(message="Slot deleted", id=deleted_id)


@router.post("/{slot_id}/ranking", response_model=RankingEntry)
async def record_ranking(
    slot_id: UUID,
    payload: RankingRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    entry = await slot_service.record_rank(db, user, slot_id, payload.current_rank)

    await record_activity(
        request,
        db,
        user.id,
        "ranking_recorded",
        "slot",
        slot_id,
        {"current_rank": entry.current_rank, "rank_change": entry.rank_change.value},
    )

    return entry


@router.get("/{slot_id}/rankings", response_model=list[RankingEntry])
async def list_rankings(
    slot_id: UUID,
    limit: int = Query(30, ge=1, le=settings.MAX_PAGE_SIZE),
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await slot_service.list_rankings(db, user, slot_id, limit)
