from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

AnnouncementType = Literal["info", "warning", "success", "error", "general"]
AnnouncementPriority = Literal["low", "normal", "high", "urgent"]
TargetAudience = Literal["all", "admin", "distributor", "agency", "user"]


class Announcement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    announcement_code: str
    title: str
    content: str
    type: AnnouncementType
    priority: AnnouncementPriority
    is_pinned: bool
    is_visible: bool
    target_audience: TargetAudience
    author_id: UUID
    view_count: int
    expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    author_name: str | None = None
    author_email: str | None = None
