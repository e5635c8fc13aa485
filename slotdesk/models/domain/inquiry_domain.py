from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

InquiryStatus = Literal["open", "in_progress", "resolved", "closed"]
InquiryPriority = Literal["low", "normal", "high", "urgent"]
SenderType = Literal["user", "admin"]

CLOSING_STATUSES = ("resolved", "closed")


class Inquiry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    inquiry_code: str
    user_id: UUID
    assigned_admin_id: UUID | None = None
    title: str
    category: str
    priority: InquiryPriority
    status: InquiryStatus
    last_message_at: datetime | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    user_name: str | None = None
    user_email: str | None = None
    admin_name: str | None = None
    unread_count: int | None = None
    last_message: str | None = None


class InquiryMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    inquiry_id: UUID
    sender_id: UUID
    sender_type: SenderType
    message: str
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime

    sender_name: str | None = None
    sender_email: str | None = None


class InquiryThread(BaseModel):
    inquiry: Inquiry
    messages: list[InquiryMessage]
