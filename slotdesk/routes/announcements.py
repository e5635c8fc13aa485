"""
announcements.py
----------------
Purpose:
    Broadcast announcements. Reading is public (a token, when sent, widens
    the audience to the caller's role); writing is for administrators.

Usage:
    GET    /api/announcements        - Visible, unexpired announcements
    GET    /api/announcements/{id}   - One announcement (counts a view)
    POST   /api/announcements        - Create (admin)
    PUT    /api/announcements/{id}   - Update (admin)
    DELETE /api/announcements/{id}   - Delete (admin)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from slotdesk.auth.hierarchy import Role
from slotdesk.auth.verify import get_optional_user, require_roles
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.announcement_request import (
    AnnouncementCreateRequest,
    AnnouncementUpdateRequest,
)
from slotdesk.models.api.pagination import Page, PageParams, page_params
from slotdesk.models.api.user_response import MessageResponse
from slotdesk.models.domain.announcement_domain import (
    Announcement,
    AnnouncementPriority,
    AnnouncementType,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services import announcement_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/announcements", tags=["announcements"])

_admin = require_roles(Role.ADMIN)


@router.get("", response_model=Page[Announcement])
async def list_announcements(
    params: PageParams = Depends(page_params),
    type: AnnouncementType | None = None,
    priority: AnnouncementPriority | None = None,
    is_pinned: bool | None = None,
    viewer: CurrentUser | None = Depends(get_optional_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await announcement_service.list_announcements(
        db, viewer, params, type=type, priority=priority, is_pinned=is_pinned
    )


@router.get("/{announcement_id}", response_model=Announcement)
async def get_announcement(
    announcement_id: UUID,
    viewer: CurrentUser | None = Depends(get_optional_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await announcement_service.get_announcement(db, viewer, announcement_id)


@router.post("", response_model=Announcement, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    payload: AnnouncementCreateRequest,
    request: Request,
    user: CurrentUser = Depends(_admin),
    db: DatabasePoolManager = Depends(get_db),
):
    announcement = await announcement_service.create_announcement(db, user, payload)

    await record_activity(
        request, db, user.id, "announcement_created", "announcement", announcement.id
    )

    return announcement


@router.put("/{announcement_id}", response_model=Announcement)
async def update_announcement(
    announcement_id: UUID,
    payload: AnnouncementUpdateRequest,
    request: Request,
    user: CurrentUser = Depends(_admin),
    db: DatabasePoolManager = Depends(get_db),
):
    announcement = await announcement_service.update_announcement(db, announcement_id, payload)

    await record_activity(
        request, db, user.id, "announcement_updated", "announcement", announcement_id
    )

    return announcement


@router.delete("/{announcement_id}", response_model=MessageResponse)
async def delete_announcement(
    announcement_id: UUID,
    request: Request,
    user: CurrentUser = Depends(_admin),
    db: DatabasePoolManager = Depends(get_db),
):
    deleted_id = await announcement_service.delete_announcement(db, announcement_id)

    await record_activity(
        request, db, user.id, "announcement_deleted", "announcement", deleted_id
    )

    return MessageResponse(message="Announcement deleted", id=deleted_id)
