from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from slotdesk.models.domain.announcement_domain import (
    AnnouncementPriority,
    AnnouncementType,
    TargetAudience,
)


class AnnouncementCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    type: AnnouncementType = "info"
    priority: AnnouncementPriority = "normal"
    is_pinned: bool = False
    target_audience: TargetAudience = "all"
    expires_at: datetime | None = None


class AnnouncementUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)
    type: AnnouncementType | None = None
    priority: AnnouncementPriority | None = None
    is_pinned: bool | None = None
    is_visible: bool | None = None
    target_audience: TargetAudience | None = None
    expires_at: datetime | None = None
