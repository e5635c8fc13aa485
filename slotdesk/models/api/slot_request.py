from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, model_validator

from slotdesk.models.domain.slot_domain import SlotCategory, SlotStatus, WorkType


class SlotCreateRequest(BaseModel):
    """Body for POST /api/slots."""

    slot_code: str = Field(..., min_length=1, max_length=50)
    slot_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    keyword: str = Field(..., min_length=1, max_length=255)
    url: AnyHttpUrl
    thumbnail: str | None = Field(None, max_length=500)
    category: SlotCategory = "basic"
    work_type: WorkType = "marketing"
    assigned_user_id: UUID
    start_date: date | None = None
    end_date: date | None = None
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SlotUpdateRequest(BaseModel):
    """Body for PUT /api/slots/{id}; assignment fields are fixed at creation."""

    model_config = ConfigDict(extra="forbid")

    keyword: str | None = Field(None, min_length=1, max_length=255)
    url: AnyHttpUrl | None = None
    thumbnail: str | None = Field(None, max_length=500)
    description: str | None = None
    status: SlotStatus | None = None
    progress: int | None = Field(None, ge=0, le=100)


class RankingRequest(BaseModel):
    current_rank: int = Field(..., gt=0)
