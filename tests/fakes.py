"""Test doubles for the database layer and shared account fixtures."""

import copy
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from slotdesk.models.domain.user_domain import CurrentUser


def query_text(query) -> str:
    """SQL text of a plain string or a psycopg.sql composition."""
    return query if isinstance(query, str) else repr(query)


class FakeCursor:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn
        self._rows: list[dict] = []
        self.rowcount = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, query, params=()):
        result = self.conn.run(query, params)
        if isinstance(result, int):
            self._rows, self.rowcount = [], result
        else:
            self._rows = [dict(row) for row in result or []]
            self.rowcount = len(self._rows)
        return self

    async def fetchone(self):
        return self._rows[0] if self._rows else None

    async def fetchall(self):
        return list(self._rows)


class FakeConnection:
    """
    Connection double routing every statement to `handler(sql, params)`.

    The handler returns a list of row dicts, or an int rowcount for
    statements without RETURNING.
    """

    def __init__(self, handler):
        self.handler = handler
        self.statements: list[tuple[str, tuple]] = []

    def run(self, query, params):
        sql_text = query_text(query)
        params = tuple(params or ())
        self.statements.append((sql_text, params))
        return self.handler(sql_text, params)

    def cursor(self):
        return FakeCursor(self)

    async def execute(self, query, params=()):
        cursor = FakeCursor(self)
        return await cursor.execute(query, params)


class FakeDatabase:
    """
    Stand-in for DatabasePoolManager.

    `transaction()` snapshots `handler.state` (when the handler has one) and
    restores it if the block raises, mirroring a database rollback.
    """

    def __init__(self, handler=None):
        self.handler = handler or (lambda sql, params: [])
        self.conn = FakeConnection(self.handler)
        self.acquired = 0
        self.released = 0
        self.commits = 0
        self.rollbacks = 0

    @property
    def statements(self):
        return self.conn.statements

    @asynccontextmanager
    async def connection(self):
        self.acquired += 1
        try:
            yield self.conn
        finally:
            self.released += 1

    @asynccontextmanager
    async def transaction(self):
        async with self.connection() as conn:
            state = getattr(self.handler, "state", None)
            snapshot = copy.deepcopy(state) if state is not None else None
            try:
                yield conn
            except BaseException:
                self.rollbacks += 1
                if snapshot is not None:
                    self.handler.state = snapshot
                raise
            else:
                self.commits += 1

    async def health_check(self):
        return {"healthy": True, "service": "database_pool"}


def make_user(level: int, *, parent: CurrentUser | None = None, name: str | None = None) -> CurrentUser:
    user_id = uuid4()
    code = name or f"L{level}-{user_id.hex[:6]}"
    return CurrentUser(
        id=user_id,
        user_code=code,
        email=f"{code.lower()}@example.com",
        full_name=code,
        level=level,
        status="active",
        parent_id=parent.id if parent else None,
    )


def chain_of(user: CurrentUser, users: dict[UUID, CurrentUser]) -> tuple[UUID | None, UUID | None]:
    parent = users.get(user.parent_id) if user.parent_id else None
    return user.parent_id, parent.parent_id if parent else None


class LedgerStore:
    """
    In-memory stand-in for the charge request / balance / history tables.

    Understands exactly the statements issued by cash_service.process_charge_request.
    Set `fail_on` to a statement fragment to make that statement raise.
    """

    def __init__(self, users: dict[UUID, CurrentUser]):
        self.users = users
        self.fail_on: str | None = None
        self.state = {"requests": {}, "balances": {}, "history": []}

    def add_request(self, owner: CurrentUser, amount: Decimal, status: str = "pending") -> UUID:
        request_id = uuid4()
        self.state["requests"][request_id] = {
            "id": request_id,
            "user_id": owner.id,
            "amount": amount,
            "status": status,
            "free_cash_percentage": 0,
            "account_holder": None,
            "requested_at": datetime.now(UTC),
            "processed_at": None,
            "processor_id": None,
            "rejection_reason": None,
        }
        return request_id

    def __call__(self, sql: str, params: tuple):
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError(f"simulated failure in: {self.fail_on}")

        if "FROM cash_charge_requests cr" in sql and "FOR UPDATE" in sql:
            request = self.state["requests"].get(params[0])
            if not request:
                return []
            owner = self.users[request["user_id"]]
            parent_id, grandparent_id = chain_of(owner, self.users)
            return [
                {**request, "owner_parent_id": parent_id, "owner_grandparent_id": grandparent_id}
            ]

        if "UPDATE cash_charge_requests" in sql:
            status, processor_id, reason, request_id = params
            request = self.state["requests"][request_id]
            request.update(
                status=status,
                processor_id=processor_id,
                rejection_reason=reason,
                processed_at=datetime.now(UTC),
            )
            return [dict(request)]

        if "INSERT INTO user_balances" in sql:
            user_id, amount = params
            balances = self.state["balances"]
            balance = balances.setdefault(
                user_id,
                {"user_id": user_id, "cash_balance": Decimal("0"), "point_balance": Decimal("0")},
            )
            balance["cash_balance"] += amount
            balance["last_updated"] = datetime.now(UTC)
            return [dict(balance)]

        if "INSERT INTO cash_history" in sql:
            user_id, amount, balance_after, description, reference_id = params
            entry = {
                "id": uuid4(),
                "user_id": user_id,
                "transaction_type": "charge",
                "amount": amount,
                "balance_type": "paid",
                "balance_after": balance_after,
                "description": description,
                "reference_id": reference_id,
                "status": "completed",
                "transaction_at": datetime.now(UTC),
            }
            self.state["history"].append(entry)
            return [dict(entry)]

        raise AssertionError(f"Unexpected statement: {sql}")

    def balance_of(self, user: CurrentUser) -> dict | None:
        return self.state["balances"].get(user.id)

    def history_of(self, user: CurrentUser) -> list[dict]:
        return [h for h in self.state["history"] if h["user_id"] == user.id]


def slot_row(owner, users, **overrides):
    """Row shaped like the slot service SELECT, owned by `owner`."""
    parent_id, grandparent_id = chain_of(owner, users)
    now = datetime.now(UTC)
    row = {
        "id": uuid4(),
        "slot_code": "SLOT-001",
        "slot_name": "Spring campaign",
        "description": None,
        "keyword": "running shoes",
        "url": "https://shop.example.com/item/1",
        "thumbnail": None,
        "category": "basic",
        "work_type": "marketing",
        "assigned_user_id": owner.id,
        "assigned_by_id": owner.parent_id or owner.id,
        "assigned_at": now,
        "status": "active",
        "price": Decimal("30000"),
        "start_date": date(2026, 1, 1),
        "end_date": date(2026, 1, 31),
        "progress": 0,
        "created_at": now,
        "updated_at": now,
        "duration_days": 30,
        "remaining_days": 0,
        "assigned_user_name": owner.full_name,
        "assigned_user_email": owner.email,
        "assigned_by_name": None,
        "owner_parent_id": parent_id,
        "owner_grandparent_id": grandparent_id,
        "current_rank": None,
        "previous_rank": None,
        "rank_change": None,
    }
    row.update(overrides)
    return row


_COMPARISONS = {
    "=": lambda value, param: value == param,
    "<>": lambda value, param: value != param,
    "ILIKE": lambda value, param: param.strip("%").lower() in (value or "").lower(),
}


def where_clause(sql: str) -> str:
    """Top-level WHERE clause of a list query (the last WHERE in the text)."""
    text = " ".join(sql.split())
    clause = text.rsplit(" WHERE ", 1)[1]
    for stop in (" ORDER BY ", " LIMIT "):
        clause = clause.split(stop, 1)[0]
    return clause


def where_matches(sql: str, params: tuple, row: dict) -> bool:
    """
    Evaluate a list query's WHERE clause against one in-memory row.

    Understands what the services build: TRUE / FALSE and AND-ed terms that
    are either a `column op %s` comparison (=, <>, ILIKE) or a parenthesised
    OR group of them. `row` is keyed by SQL column, e.g. "u.parent_id".
    Parameters past the clause (LIMIT / OFFSET) are ignored.
    """
    remaining = iter(params)
    matched = True
    for term in where_clause(sql).split(" AND "):
        if term in ("TRUE", "FALSE"):
            matched = matched and term == "TRUE"
            continue
        hits = []
        for comparison in term.strip("()").split(" OR "):
            column, operator, _ = comparison.split(" ")
            hits.append(_COMPARISONS[operator](row[column], next(remaining)))
        matched = matched and any(hits)
    return matched
