from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from slotdesk.models.domain.cash_domain import ChargeDecision


class ChargeRequestCreate(BaseModel):
    """Body for POST /api/cash/requests."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    account_holder: str | None = Field(None, max_length=100)


class ChargeRequestDecision(BaseModel):
    """Body for PATCH /api/cash/requests/{id}."""

    status: ChargeDecision
    rejection_reason: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def reason_only_on_reject(self):
        if self.status == "approved" and self.rejection_reason:
            raise ValueError("rejection_reason is only accepted when rejecting")
        return self
