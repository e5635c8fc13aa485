from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

SlotStatus = Literal["pending", "active", "completed", "cancelled"]
SlotCategory = Literal["basic", "premium", "vip"]
WorkType = Literal["translation", "design", "development", "content", "marketing", "other"]

# Statuses that count against the per-user slot cap
OPEN_SLOT_STATUSES = ("pending", "active")


class RankChange(StrEnum):
    NEW = "new"
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


def classify_rank_change(previous_rank: int | None, current_rank: int) -> RankChange:
    """
    Compare a new observation with the one before it.

    A smaller rank number is a better position, so moving from 10 to 5 is "up".
    """
    if previous_rank is None:
        return RankChange.NEW
    if current_rank < previous_rank:
        return RankChange.UP
    if current_rank > previous_rank:
        return RankChange.DOWN
    return RankChange.STABLE


class RankingEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    slot_id: UUID
    current_rank: int
    previous_rank: int | None = None
    rank_change: RankChange
    checked_at: datetime


class Slot(BaseModel):
    """Slot row joined with assignee names and its newest ranking."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    slot_code: str
    slot_name: str
    description: str | None = None
    keyword: str
    url: str
    thumbnail: str | None = None
    category: SlotCategory
    work_type: WorkType
    assigned_user_id: UUID
    assigned_by_id: UUID
    assigned_at: datetime | None = None
    status: SlotStatus
    price: Decimal
    start_date: date | None = None
    end_date: date | None = None
    progress: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Derived from the date range at read time
    duration_days: int = 0
    remaining_days: int = 0

    assigned_user_name: str | None = None
    assigned_user_email: str | None = None
    assigned_by_name: str | None = None

    current_rank: int | None = None
    previous_rank: int | None = None
    rank_change: RankChange | None = None
