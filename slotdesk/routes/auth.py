"""
auth.py
-------
Purpose:
    Registration, login and the caller's own profile.

Usage:
    1. POST /api/auth/register - Create an account (optionally under a parent)
    2. POST /api/auth/login    - Exchange email + password for a bearer token
    3. GET  /api/auth/me       - Profile of the token's owner
    4. POST /api/auth/logout   - Acknowledge logout (tokens are stateless)
"""

from fastapi import APIRouter, Depends, Request, status

from slotdesk.auth.verify import get_current_user
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.infrastructure.observability.logging import get_logger
from slotdesk.models.api.user_request import LoginRequest, RegisterRequest
from slotdesk.models.api.user_response import AuthResponse, MessageResponse
from slotdesk.models.domain.user_domain import CurrentUser, UserDetail
from slotdesk.services import auth_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = get_logger(__name__)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: DatabasePoolManager = Depends(get_db),
):
    user, token = await auth_service.register(db, payload)

    await record_activity(request, db, user.id, "register", "user", user.id)

    return AuthResponse(user=user, token=token)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: DatabasePoolManager = Depends(get_db),
):
    """
    Raises:
        401: Unknown email, wrong password or inactive account
    """
    user, token = await auth_service.login(db, payload.email, payload.password)

    await record_activity(request, db, user.id, "login", "user", user.id)

    return AuthResponse(user=user, token=token)


@router.get("/me", response_model=UserDetail)
async def me(
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await auth_service.get_me(db, user)


@router.post("/logout", response_model=MessageResponse)
async def logout(user: CurrentUser = Depends(get_current_user)):
    logger.info("User logged out", user_id=str(user.id))
    return MessageResponse(message="Logged out")
