"""
inquiries.py
------------
Purpose:
    Support threads between accounts and the staff above them.

Usage:
    GET   /api/inquiries                 - Threads within reach
    POST  /api/inquiries                 - Open a thread with its first message
    GET   /api/inquiries/{id}            - Thread with messages (marks them read)
    POST  /api/inquiries/{id}/messages   - Reply
    PATCH /api/inquiries/{id}/status     - Change status (agency and up)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from slotdesk.auth.hierarchy import Role
from slotdesk.auth.verify import get_current_user, require_roles
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.inquiry_request import (
    InquiryCreateRequest,
    InquiryMessageRequest,
    InquiryStatusRequest,
)
from slotdesk.models.api.pagination import Page, PageParams, page_params
from slotdesk.models.domain.inquiry_domain import (
    Inquiry,
    InquiryMessage,
    InquiryPriority,
    InquiryStatus,
    InquiryThread,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services import inquiry_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/inquiries", tags=["inquiries"])


@router.get("", response_model=Page[Inquiry])
async def list_inquiries(
    params: PageParams = Depends(page_params),
    status_filter: InquiryStatus | None = Query(None, alias="status"),
    priority: InquiryPriority | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await inquiry_service.list_inquiries(
        db, user, params, status=status_filter, priority=priority
    )


@router.post("", response_model=Inquiry, status_code=status.HTTP_201_CREATED)
async def create_inquiry(
    payload: InquiryCreateRequest,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    inquiry = await inquiry_service.create_inquiry(db, user, payload)

    await record_activity(
        request, db, user.id, "inquiry_created", "inquiry", inquiry.id, {"title": inquiry.title}
    )

    return inquiry


@router.get("/{inquiry_id}", response_model=InquiryThread)
async def get_inquiry(
    inquiry_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await inquiry_service.get_inquiry(db, user, inquiry_id)


@router.post("/{inquiry_id}/messages", response_model=InquiryMessage)
async def add_message(
    inquiry_id: UUID,
    payload: InquiryMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await inquiry_service.add_message(db, user, inquiry_id, payload.message)


@router.patch("/{inquiry_id}/status", response_model=Inquiry)
async def update_status(
    inquiry_id: UUID,
    payload: InquiryStatusRequest,
    request: Request,
    user: CurrentUser = Depends(require_roles(Role.ADMIN, Role.DISTRIBUTOR, Role.AGENCY)),
    db: DatabasePoolManager = Depends(get_db),
):
    inquiry = await inquiry_service.update_status(db, user, inquiry_id, payload.status)

    await record_activity(
        request,
        db,
        user.id,
        "inquiry_status_changed",
        "inquiry",
        inquiry_id,
        {"status": payload.status},
    )

    return inquiry
