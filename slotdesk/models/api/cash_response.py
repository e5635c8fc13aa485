from pydantic import BaseModel

from slotdesk.models.domain.cash_domain import Balance, ChargeRequest, LedgerEntry


class ChargeDecisionResponse(BaseModel):
    """Response for PATCH /api/cash/requests/{id}"""

    success: bool
    message: str
    request: ChargeRequest
    balance: Balance | None = None
    ledger_entry: LedgerEntry | None = None
