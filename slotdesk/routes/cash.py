"""
cash.py
-------
Purpose:
    Balances, charge requests and the transaction ledger.

Usage:
    GET   /api/cash/balance          - Own balance, or ?user_id= within reach
    GET   /api/cash/requests         - Charge requests within reach
    POST  /api/cash/requests         - Ask for a cash charge
    PATCH /api/cash/requests/{id}    - Approve or reject (agency and up)
    GET   /api/cash/transactions     - Ledger entries within reach
    GET   /api/cash/statistics       - Revenue figures (agency and up)
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status

from slotdesk.auth.hierarchy import Role
from slotdesk.auth.verify import get_current_user, require_roles
from slotdesk.db.pool import DatabasePoolManager, get_db
from slotdesk.models.api.cash_request import ChargeRequestCreate, ChargeRequestDecision
from slotdesk.models.api.cash_response import ChargeDecisionResponse
from slotdesk.models.api.pagination import Page, PageParams, page_params
from slotdesk.models.domain.cash_domain import (
    Balance,
    CashStatistics,
    ChargeRequest,
    ChargeStatus,
    LedgerEntry,
    TransactionType,
)
from slotdesk.models.domain.user_domain import CurrentUser
from slotdesk.services import cash_service
from slotdesk.utils.activity_helpers import record_activity

router = APIRouter(prefix="/api/cash", tags=["cash"])

_staff = require_roles(Role.ADMIN, Role.DISTRIBUTOR, Role.AGENCY)


@router.get("/balance", response_model=Balance)
async def get_balance(
    user_id: UUID | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await cash_service.get_balance(db, user, user_id)


@router.get("/requests", response_model=Page[ChargeRequest])
async def list_requests(
    params: PageParams = Depends(page_params),
    status_filter: ChargeStatus | None = Query(None, alias="status"),
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await cash_service.list_charge_requests(db, user, params, status=status_filter)


@router.post("/requests", response_model=ChargeRequest, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: ChargeRequestCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    charge = await cash_service.create_charge_request(db, user, payload)

    await record_activity(
        request,
        db,
        user.id,
        "charge_requested",
        "cash_charge_request",
        charge.id,
        {"amount": str(charge.amount)},
    )

    return charge


@router.patch("/requests/{request_id}", response_model=ChargeDecisionResponse)
async def process_request(
    request_id: UUID,
    payload: ChargeRequestDecision,
    request: Request,
    user: CurrentUser = Depends(_staff),
    db: DatabasePoolManager = Depends(get_db),
):
    """
    Raises:
        403: Outside the requester's hierarchy, or the caller's own request
        404: Unknown request
        409: Request already processed
    """
    result = await cash_service.process_charge_request(
        db, request_id, payload.status, user, payload.rejection_reason
    )

    await record_activity(
        request,
        db,
        user.id,
        "charge_processed",
        "cash_charge_request",
        request_id,
        {"status": payload.status, "amount": str(result.request.amount)},
    )

    return ChargeDecisionResponse(
        success=True,
        message=f"Request {payload.status}",
        request=result.request,
        balance=result.balance,
        ledger_entry=result.ledger_entry,
    )


@router.get("/transactions", response_model=Page[LedgerEntry])
async def list_transactions(
    params: PageParams = Depends(page_params),
    type: TransactionType | None = None,
    user_id: UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: DatabasePoolManager = Depends(get_db),
):
    return await cash_service.list_transactions(
        db,
        user,
        params,
        transaction_type=type,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
    )


@router.get("/statistics", response_model=CashStatistics)
async def get_statistics(
    user: CurrentUser = Depends(_staff),
    db: DatabasePoolManager = Depends(get_db),
):
    return await cash_service.get_statistics(db, user)
