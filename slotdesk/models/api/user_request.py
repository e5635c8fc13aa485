# slotdesk/models/api/user_request.py
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field

from slotdesk.config import settings
from slotdesk.models.domain.user_domain import UserStatus


def _strip(value):
    return value.strip() if isinstance(value, str) else value


TrimmedStr = Annotated[str, BeforeValidator(_strip)]


class RegisterRequest(BaseModel):
    """Body for POST /api/auth/register."""

    email: EmailStr
    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)
    full_name: TrimmedStr = Field(..., min_length=1, max_length=100)
    user_code: TrimmedStr = Field(..., min_length=1, max_length=20)
    phone: TrimmedStr | None = Field(None, max_length=20)
    parent_id: UUID | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserCreateRequest(BaseModel):
    """Body for POST /api/users; the new account is placed under the caller."""

    email: EmailStr
    password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)
    full_name: TrimmedStr = Field(..., min_length=1, max_length=100)
    user_code: TrimmedStr = Field(..., min_length=1, max_length=20)
    phone: TrimmedStr | None = Field(None, max_length=20)


class UserUpdateRequest(BaseModel):
    """
    Body for PUT /api/users/{id}.

    Only these columns can ever be written; `status` and `email` are further
    restricted to administrators by the service.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: TrimmedStr | None = Field(None, min_length=1, max_length=100)
    phone: TrimmedStr | None = Field(None, max_length=20)
    status: UserStatus | None = None
    email: EmailStr | None = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=settings.PASSWORD_MIN_LENGTH, max_length=128)
