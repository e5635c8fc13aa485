"""
users.py
--------
Purpose:
    Account management within the caller's part of the hierarchy.

Usage:
    GET  /api/users                 - Accounts below the caller (agency and up)
    POST /api/users                 - Create an account one level below the caller
    GET  /api/users/{id}            - Account detail
    PUT  /api/users/{id}            - Update profile fields
    POST /api/users/{id}/password   - Change own password
    GET  /api/users/{id}/children   - Direct children of an account
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from slotdesk.auth.hierarchy import MAX_LEVEL, MIN_LEVEL, Role
from slotdesk.auth.verify import get_current_user, require_roles
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.pagination import Page, PageParams, page_params
from slotdesk.models.api.user_request import (
    PasswordChangeRequest,
    UserCreateRequest,
    UserUpdateRequest,
)
from slotdesk.models.api.user_response import MessageResponse
from slotdesk.models.domain.user_domain import CurrentUser, User, UserDetail, UserStatus, UserSummary
from slotdesk.services import user_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/users", tags=["users"])

_staff = require_roles(Role.ADMIN, Role.DISTRIBUTOR, Role.AGENCY)


@router.get("", response_model=Page[UserSummary])
async def list_users(
    params: PageParams = Depends(page_params),
    level: int | None = Query(None, ge=MIN_LEVEL, le=MAX_LEVEL),
    status_filter: UserStatus | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=100),
    user: CurrentUser = Depends(_staff),
    db: DatabasePoolManager = Depends(get_db),
):
    return await user_service.list_users(
        db, user, params, level=level, status=status_filter, search=search
    )


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreateRequest,
    request: Request,
    user: CurrentUser = Depends(_staff),
    db: DatabasePoolManager = Depends(get_db),
):
    created = await user_service.create_user(db, user, payload)

    await record_activity(
        request, db, user.id, "user_created", "user", created.id, {"level": created.level}
    )

    return created


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await user_service.get_user(db, user, user_id)


@router.put("/{user_id}", response_model=User)
async def update_user(
    user_id: UUID,
    payload: UserUpdateRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    updated = await user_service.update_user(db, user, user_id, payload)

    await record_activity(
        request,
        db,
        user.id,
        "user_updated",
        "user",
        user_id,
        {"fields": sorted(payload.model_dump(exclude_none=True))},
    )

    return updated


@router.post("/{user_id}/password", response_model=MessageResponse)
async def change_password(
    user_id: UUID,
    payload: PasswordChangeRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    await user_service.change_password(db, user, user_id, payload)

    await record_activity(request, db, user.id, "password_changed", "user", user_id)

    return MessageResponse(message="Password changed", id=user_id)


@router.get("/{user_id}/children", response_model=list[UserSummary])
async def list_children(
    user_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await user_service.list_children(db, user, user_id)
