"""
Tests for inquiry threads: creation, sender side, first-reply assignment,
read marks and resolution stamps.
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from slotdesk.errors import AuthorizationError, NotFoundError
from slotdesk.models.api.inquiry_request import InquiryCreateRequest
from slotdesk.models.api.pagination import PageParams
from slotdesk.services import inquiry_service
from tests.fakes import FakeDatabase, chain_of


class InquiryStore:
    """In-memory inquiries / inquiry_messages tables."""

    def __init__(self, users):
        self.users = users
        self.fail_on = None
        self.state = {"inquiries": {}, "messages": []}

    def add_inquiry(self, owner, status="open"):
        inquiry_id = uuid4()
        self.state["inquiries"][inquiry_id] = {
            "id": inquiry_id,
            "inquiry_code": f"INQ{inquiry_id.hex[:8].upper()}",
            "user_id": owner.id,
            "assigned_admin_id": None,
            "title": "Slot not updating",
            "category": "general",
            "priority": "normal",
            "status": status,
            "resolved_at": None,
            "created_at": datetime.now(UTC),
        }
        return inquiry_id

    def add_message(self, inquiry_id, sender, sender_type):
        self.state["messages"].append(
            {
                "id": uuid4(),
                "inquiry_id": inquiry_id,
                "sender_id": sender.id,
                "sender_type": sender_type,
                "message": "hello",
                "is_read": False,
                "read_at": None,
                "created_at": datetime.now(UTC),
            }
        )

    def inquiry(self, inquiry_id):
        return self.state["inquiries"][inquiry_id]

    def _inquiry_row(self, inquiry_id):
        inquiry = self.state["inquiries"].get(inquiry_id)
        if not inquiry:
            return []
        owner = self.users[inquiry["user_id"]]
        parent_id, grandparent_id = chain_of(owner, self.users)
        return [{**inquiry, "owner_parent_id": parent_id, "owner_grandparent_id": grandparent_id}]

    def __call__(self, sql, params):
        if self.fail_on and self.fail_on in sql:
            raise RuntimeError(f"simulated failure in: {self.fail_on}")

        if "INSERT INTO inquiries" in sql:
            code, user_id, title, category, priority = params
            inquiry_id = uuid4()
            self.state["inquiries"][inquiry_id] = {
                "id": inquiry_id,
                "inquiry_code": code,
                "user_id": user_id,
                "assigned_admin_id": None,
                "title": title,
                "category": category,
                "priority": priority,
                "status": "open",
                "resolved_at": None,
                "created_at": datetime.now(UTC),
            }
            return [{"id": inquiry_id}]

        if "FROM inquiries i" in sql and "WHERE i.id = %s" in sql:
            return self._inquiry_row(params[0])

        if "INSERT INTO inquiry_messages" in sql:
            if len(params) == 3:
                # Opening message of a new inquiry, side fixed in the SQL
                (inquiry_id, sender_id, message), sender_type = params, "user"
            else:
                inquiry_id, sender_id, sender_type, message = params
            row = {
                "id": uuid4(),
                "inquiry_id": inquiry_id,
                "sender_id": sender_id,
                "sender_type": sender_type,
                "message": message,
                "is_read": False,
                "read_at": None,
                "created_at": datetime.now(UTC),
            }
            self.state["messages"].append(row)
            return [{"id": row["id"]}]

        if "UPDATE inquiry_messages" in sql:
            inquiry_id, sender_type = params
            count = 0
            for message in self.state["messages"]:
                if (
                    message["inquiry_id"] == inquiry_id
                    and message["sender_type"] == sender_type
                    and not message["is_read"]
                ):
                    message.update(is_read=True, read_at=datetime.now(UTC))
                    count += 1
            return count

        if "UPDATE inquiries" in sql and "assigned_admin_id = %s" in sql:
            admin_id, status, inquiry_id = params
            self.inquiry(inquiry_id).update(assigned_admin_id=admin_id, status=status)
            return 1

        if "UPDATE inquiries" in sql and "SET status = %s" in sql:
            status, stamp_resolved, inquiry_id = params
            inquiry = self.inquiry(inquiry_id)
            inquiry["status"] = status
            if stamp_resolved:
                inquiry["resolved_at"] = datetime.now(UTC)
            return 1

        if "UPDATE inquiries" in sql:
            return 1

        if "FROM inquiry_messages m" in sql and "WHERE m.id = %s" in sql:
            return [dict(m) for m in self.state["messages"] if m["id"] == params[0]]

        if "FROM inquiry_messages m" in sql and "WHERE m.inquiry_id = %s" in sql:
            return [dict(m) for m in self.state["messages"] if m["inquiry_id"] == params[0]]

        raise AssertionError(f"Unexpected statement: {sql}")


@pytest.fixture
def inquiries(users_by_id):
    return InquiryStore(users_by_id)


def test_sender_side_follows_ownership(hierarchy):
    owner = hierarchy["agency"]
    assert inquiry_service.sender_side(owner, owner.id) == "user"
    assert inquiry_service.sender_side(hierarchy["distributor"], owner.id) == "admin"
    # An admin writing on their own inquiry is still the "user" side
    assert inquiry_service.sender_side(hierarchy["admin"], hierarchy["admin"].id) == "user"


@pytest.mark.asyncio
async def test_owner_message_is_user_side_and_keeps_thread_unassigned(hierarchy, inquiries):
    user = hierarchy["user"]
    inquiry_id = inquiries.add_inquiry(user)

    message = await inquiry_service.add_message(FakeDatabase(inquiries), user, inquiry_id, "any news?")

    assert message.sender_type == "user"
    assert message.message == "any news?"
    assert inquiries.inquiry(inquiry_id)["assigned_admin_id"] is None
    assert inquiries.inquiry(inquiry_id)["status"] == "open"


@pytest.mark.asyncio
async def test_first_staff_reply_assigns_and_starts_progress(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"])
    agency = hierarchy["agency"]

    message = await inquiry_service.add_message(FakeDatabase(inquiries), agency, inquiry_id, "on it")

    assert message.sender_type == "admin"
    assert inquiries.inquiry(inquiry_id)["assigned_admin_id"] == agency.id
    assert inquiries.inquiry(inquiry_id)["status"] == "in_progress"


@pytest.mark.asyncio
async def test_later_staff_reply_does_not_reassign(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"])
    db = FakeDatabase(inquiries)

    await inquiry_service.add_message(db, hierarchy["agency"], inquiry_id, "first")
    await inquiry_service.add_message(db, hierarchy["distributor"], inquiry_id, "second")

    assert inquiries.inquiry(inquiry_id)["assigned_admin_id"] == hierarchy["agency"].id


@pytest.mark.asyncio
async def test_inquiry_row_is_locked_when_posting(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"])
    db = FakeDatabase(inquiries)

    await inquiry_service.add_message(db, hierarchy["agency"], inquiry_id, "hi")

    assert "FOR UPDATE OF i" in db.statements[0][0]


@pytest.mark.asyncio
async def test_outsider_cannot_post(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"])

    with pytest.raises(AuthorizationError):
        await inquiry_service.add_message(
            FakeDatabase(inquiries), hierarchy["other_agency"], inquiry_id, "hi"
        )

    assert inquiries.state["messages"] == []


@pytest.mark.asyncio
async def test_unknown_inquiry_is_not_found(hierarchy, inquiries):
    with pytest.raises(NotFoundError):
        await inquiry_service.get_inquiry(FakeDatabase(inquiries), hierarchy["admin"], uuid4())


@pytest.mark.asyncio
async def test_opening_thread_marks_other_side_read(hierarchy, inquiries):
    user = hierarchy["user"]
    agency = hierarchy["agency"]
    inquiry_id = inquiries.add_inquiry(user)
    inquiries.add_message(inquiry_id, user, "user")
    inquiries.add_message(inquiry_id, agency, "admin")

    thread = await inquiry_service.get_inquiry(FakeDatabase(inquiries), user, inquiry_id)

    read_by_side = {m.sender_type: m.is_read for m in thread.messages}
    assert read_by_side == {"user": False, "admin": True}
    assert thread.inquiry.id == inquiry_id


@pytest.mark.asyncio
async def test_resolving_stamps_resolved_at_once(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"], status="in_progress")
    db = FakeDatabase(inquiries)

    resolved = await inquiry_service.update_status(db, hierarchy["agency"], inquiry_id, "resolved")
    stamped_at = resolved.resolved_at
    again = await inquiry_service.update_status(db, hierarchy["agency"], inquiry_id, "resolved")

    assert resolved.status == "resolved"
    assert stamped_at is not None
    assert again.resolved_at == stamped_at


@pytest.mark.asyncio
async def test_reopening_keeps_resolved_at(hierarchy, inquiries):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"], status="in_progress")
    db = FakeDatabase(inquiries)

    await inquiry_service.update_status(db, hierarchy["agency"], inquiry_id, "closed")
    reopened = await inquiry_service.update_status(db, hierarchy["agency"], inquiry_id, "open")

    assert reopened.status == "open"
    assert reopened.resolved_at is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["resolved", "closed"])
async def test_first_staff_reply_on_finished_inquiry_does_not_reopen(hierarchy, inquiries, status):
    inquiry_id = inquiries.add_inquiry(hierarchy["user"], status=status)
    agency = hierarchy["agency"]

    await inquiry_service.add_message(FakeDatabase(inquiries), agency, inquiry_id, "late answer")

    assert inquiries.inquiry(inquiry_id)["assigned_admin_id"] == agency.id
    assert inquiries.inquiry(inquiry_id)["status"] == status


@pytest.mark.asyncio
async def test_create_inquiry_opens_thread_with_owner_message(hierarchy, inquiries):
    user = hierarchy["user"]
    payload = InquiryCreateRequest(title="Rank missing", priority="high", message="Rank is empty")
    db = FakeDatabase(inquiries)

    inquiry = await inquiry_service.create_inquiry(db, user, payload)

    assert inquiry.status == "open"
    assert inquiry.user_id == user.id
    assert inquiry.inquiry_code.startswith("INQ")
    (message,) = inquiries.state["messages"]
    assert message["inquiry_id"] == inquiry.id
    assert message["sender_type"] == "user"
    assert message["message"] == "Rank is empty"
    assert db.commits == 1


@pytest.mark.asyncio
async def test_create_inquiry_rolls_back_when_message_insert_fails(hierarchy, inquiries):
    inquiries.fail_on = "INSERT INTO inquiry_messages"
    db = FakeDatabase(inquiries)
    payload = InquiryCreateRequest(title="Rank missing", message="Rank is empty")

    with pytest.raises(RuntimeError):
        await inquiry_service.create_inquiry(db, hierarchy["user"], payload)

    assert db.rollbacks == 1
    assert inquiries.state["inquiries"] == {}
    assert inquiries.state["messages"] == []


@pytest.mark.asyncio
async def test_unread_count_uses_same_side_rule_as_read_marks(hierarchy):
    distributor = hierarchy["distributor"]
    db = FakeDatabase(lambda sql, params: [] if "AS listed" in sql else [{"count": 0}])

    await inquiry_service.list_inquiries(db, distributor, PageParams())

    rows_sql, rows_params = db.statements[1]
    unread = " ".join(rows_sql.split())
    assert "m.sender_type <> CASE WHEN listed.user_id = %s THEN 'user' ELSE 'admin' END" in unread
    assert "m.sender_id" not in unread
    assert rows_params[0] == distributor.id
