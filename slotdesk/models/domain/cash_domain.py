from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, computed_field

ChargeStatus = Literal["pending", "approved", "rejected"]
ChargeDecision = Literal["approved", "rejected"]
TransactionType = Literal["charge", "withdrawal", "payment", "refund", "bonus"]
BalanceType = Literal["paid", "free", "mixed"]

CHARGE_DESCRIPTION = "cash charge"


class Balance(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: UUID
    cash_balance: Decimal = Decimal("0")
    point_balance: Decimal = Decimal("0")
    last_updated: datetime | None = None

    @computed_field
    @property
    def total_balance(self) -> Decimal:
        return self.cash_balance + self.point_balance


class ChargeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_id: UUID
    amount: Decimal
    status: ChargeStatus
    free_cash_percentage: int = 0
    account_holder: str | None = None
    requested_at: datetime
    processed_at: datetime | None = None
    processor_id: UUID | None = None
    rejection_reason: str | None = None

    # Joined for list views
    email: str | None = None
    full_name: str | None = None
    user_code: str | None = None
    processor_name: str | None = None


class LedgerEntry(BaseModel):
    """One append-only `cash_history` row."""

    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_id: UUID
    transaction_type: TransactionType
    amount: Decimal
    balance_type: BalanceType
    balance_after: Decimal
    description: str | None = None
    reference_id: UUID | None = None
    status: str
    transaction_at: datetime

    email: str | None = None
    full_name: str | None = None
    user_code: str | None = None


class ChargeProcessingResult(BaseModel):
    request: ChargeRequest
    balance: Balance | None = None
    ledger_entry: LedgerEntry | None = None


class CashStatistics(BaseModel):
    total_revenue: Decimal
    monthly_revenue: Decimal
    pending_requests: int
    today_transactions: int
    average_charge: Decimal
    total_users: int
