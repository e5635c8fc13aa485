# slotdesk/models/api/user_response.py
from uuid import UUID

from pydantic import BaseModel, Field

from slotdesk.models.domain.user_domain import User


class AuthResponse(BaseModel):
    """Response for POST /api/auth/register and /api/auth/login"""

    user: User
    token: str = Field(..., description="Bearer token for the Authorization header")


class MessageResponse(BaseModel):
    """Plain acknowledgement, optionally naming the affected row."""

    message: str
    id: UUID | None = None
