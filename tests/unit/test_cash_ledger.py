"""
Tests for charge request processing: the only place balances change.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from slotdesk.errors import AuthorizationError, ConflictError, NotFoundError, ValidationFailed
from slotdesk.models.api.cash_request import ChargeRequestCreate
from slotdesk.models.domain.cash_domain import CHARGE_DESCRIPTION
from slotdesk.services import cash_service
from tests.fakes import FakeDatabase


@pytest.mark.asyncio
async def test_approve_credits_balance_and_appends_ledger(hierarchy, ledger):
    user = hierarchy["user"]
    request_id = ledger.add_request(user, Decimal("50000"))
    db = FakeDatabase(ledger)

    result = await cash_service.process_charge_request(
        db, request_id, "approved", hierarchy["agency"]
    )

    assert result.request.status == "approved"
    assert result.request.processor_id == hierarchy["agency"].id
    assert result.balance.cash_balance == Decimal("50000")
    assert result.ledger_entry.amount == Decimal("50000")
    assert result.ledger_entry.balance_after == Decimal("50000")
    assert result.ledger_entry.description == CHARGE_DESCRIPTION
    assert result.ledger_entry.reference_id == request_id

    assert ledger.balance_of(user)["cash_balance"] == Decimal("50000")
    assert len(ledger.history_of(user)) == 1
    assert db.commits == 1
    assert db.acquired == db.released == 1


@pytest.mark.asyncio
async def test_approve_adds_to_existing_balance(hierarchy, ledger):
    user = hierarchy["user"]
    db = FakeDatabase(ledger)

    first = ledger.add_request(user, Decimal("10000"))
    second = ledger.add_request(user, Decimal("25000"))
    await cash_service.process_charge_request(db, first, "approved", hierarchy["agency"])
    result = await cash_service.process_charge_request(db, second, "approved", hierarchy["distributor"])

    assert result.balance.cash_balance == Decimal("35000")
    assert [h["balance_after"] for h in ledger.history_of(user)] == [
        Decimal("10000"),
        Decimal("35000"),
    ]


@pytest.mark.asyncio
async def test_reject_stores_reason_and_moves_no_money(hierarchy, ledger):
    user = hierarchy["user"]
    request_id = ledger.add_request(user, Decimal("50000"))
    db = FakeDatabase(ledger)

    result = await cash_service.process_charge_request(
        db, request_id, "rejected", hierarchy["agency"], rejection_reason="No deposit received"
    )

    assert result.request.status == "rejected"
    assert result.request.rejection_reason == "No deposit received"
    assert result.balance is None
    assert result.ledger_entry is None
    assert ledger.balance_of(user) is None
    assert ledger.history_of(user) == []
    assert not any("user_balances" in sql for sql, _ in db.statements)


@pytest.mark.asyncio
async def test_rejection_reason_ignored_on_approval(hierarchy, ledger):
    request_id = ledger.add_request(hierarchy["user"], Decimal("20000"))
    db = FakeDatabase(ledger)

    result = await cash_service.process_charge_request(
        db, request_id, "approved", hierarchy["admin"], rejection_reason="ignored"
    )

    assert result.request.rejection_reason is None


@pytest.mark.asyncio
async def test_second_decision_conflicts_and_credits_once(hierarchy, ledger):
    user = hierarchy["user"]
    request_id = ledger.add_request(user, Decimal("50000"))
    db = FakeDatabase(ledger)

    await cash_service.process_charge_request(db, request_id, "approved", hierarchy["agency"])

    with pytest.raises(ConflictError, match="already processed"):
        await cash_service.process_charge_request(db, request_id, "approved", hierarchy["distributor"])

    with pytest.raises(ConflictError):
        await cash_service.process_charge_request(db, request_id, "rejected", hierarchy["admin"])

    assert ledger.balance_of(user)["cash_balance"] == Decimal("50000")
    assert len(ledger.history_of(user)) == 1


@pytest.mark.asyncio
async def test_request_row_is_locked_before_any_write(hierarchy, ledger):
    request_id = ledger.add_request(hierarchy["user"], Decimal("50000"))
    db = FakeDatabase(ledger)

    await cash_service.process_charge_request(db, request_id, "approved", hierarchy["agency"])

    statements = [sql for sql, _ in db.statements]
    assert "FOR UPDATE OF cr" in statements[0]
    assert "UPDATE cash_charge_requests" in statements[1]
    assert "INSERT INTO user_balances" in statements[2]
    assert "INSERT INTO cash_history" in statements[3]


@pytest.mark.asyncio
async def test_failed_ledger_append_rolls_everything_back(hierarchy, ledger):
    user = hierarchy["user"]
    request_id = ledger.add_request(user, Decimal("50000"))
    ledger.fail_on = "INSERT INTO cash_history"
    db = FakeDatabase(ledger)

    with pytest.raises(RuntimeError):
        await cash_service.process_charge_request(db, request_id, "approved", hierarchy["agency"])

    assert db.rollbacks == 1
    assert db.commits == 0
    assert db.released == db.acquired == 1
    assert ledger.state["requests"][request_id]["status"] == "pending"
    assert ledger.balance_of(user) is None
    assert ledger.history_of(user) == []


@pytest.mark.asyncio
async def test_cannot_process_own_request(hierarchy, ledger):
    agency = hierarchy["agency"]
    request_id = ledger.add_request(agency, Decimal("50000"))

    with pytest.raises(AuthorizationError, match="your own"):
        await cash_service.process_charge_request(
            FakeDatabase(ledger), request_id, "approved", agency
        )

    assert ledger.state["requests"][request_id]["status"] == "pending"


@pytest.mark.asyncio
async def test_admin_may_process_own_request(hierarchy, ledger):
    admin = hierarchy["admin"]
    request_id = ledger.add_request(admin, Decimal("50000"))

    result = await cash_service.process_charge_request(
        FakeDatabase(ledger), request_id, "approved", admin
    )

    assert result.request.status == "approved"


@pytest.mark.asyncio
async def test_processor_outside_hierarchy_is_denied(hierarchy, ledger):
    request_id = ledger.add_request(hierarchy["user"], Decimal("50000"))

    with pytest.raises(AuthorizationError, match="Access denied"):
        await cash_service.process_charge_request(
            FakeDatabase(ledger), request_id, "approved", hierarchy["other_agency"]
        )

    assert ledger.balance_of(hierarchy["user"]) is None


@pytest.mark.asyncio
async def test_user_level_cannot_process(hierarchy, ledger):
    request_id = ledger.add_request(hierarchy["user"], Decimal("50000"))
    db = FakeDatabase(ledger)

    with pytest.raises(AuthorizationError):
        await cash_service.process_charge_request(db, request_id, "approved", hierarchy["other_user"])

    assert db.statements == []


@pytest.mark.asyncio
async def test_unknown_request_is_not_found(hierarchy, ledger):
    with pytest.raises(NotFoundError):
        await cash_service.process_charge_request(
            FakeDatabase(ledger), uuid4(), "approved", hierarchy["admin"]
        )


@pytest.mark.asyncio
async def test_charge_request_below_minimum_is_rejected(hierarchy, monkeypatch):
    async def fake_minimum(conn, key, default):
        return Decimal("10000")

    monkeypatch.setattr(cash_service, "get_decimal_setting", fake_minimum)
    db = FakeDatabase()

    with pytest.raises(ValidationFailed, match="Minimum charge amount"):
        await cash_service.create_charge_request(
            db, hierarchy["user"], ChargeRequestCreate(amount=Decimal("9999"))
        )

    assert db.statements == []


@pytest.mark.asyncio
async def test_balance_defaults_to_zero_when_never_credited(hierarchy):
    user = hierarchy["user"]

    balance = await cash_service.get_balance(FakeDatabase(), user)

    assert balance.user_id == user.id
    assert balance.cash_balance == Decimal("0")
    assert balance.total_balance == Decimal("0")
