from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field

from slotdesk.auth.hierarchy import Role, role_of

UserStatus = Literal["active", "inactive", "suspended"]


class CurrentUser(BaseModel):
    """The authenticated caller, loaded fresh from `users` on every request."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_code: str
    email: str
    full_name: str
    level: int
    status: UserStatus
    parent_id: UUID | None = None

    @property
    def role(self) -> Role:
        return role_of(self.level)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class User(BaseModel):
    """Public view of a user row (never carries the password hash)."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_code: str
    email: str
    full_name: str
    phone: str | None = None
    level: int
    status: UserStatus
    parent_id: UUID | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @computed_field
    @property
    def role(self) -> Role:
        return role_of(self.level)


class UserSummary(User):
    """Row shape used by list and children endpoints."""

    parent_name: str | None = None
    children_count: int = 0
    slot_count: int = 0
    active_slot_count: int = 0
    cash_balance: Decimal = Decimal("0")
    point_balance: Decimal = Decimal("0")

    @computed_field
    @property
    def total_balance(self) -> Decimal:
        return self.cash_balance + self.point_balance


class UserDetail(UserSummary):
    parent_email: str | None = None
