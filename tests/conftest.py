import pytest

from tests.fakes import FakeDatabase, LedgerStore, make_user


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def hierarchy():
    """admin -> distributor -> agency -> user, plus an unrelated second branch."""
    admin = make_user(1, name="admin")
    distributor = make_user(2, parent=admin, name="dist")
    agency = make_user(3, parent=distributor, name="agency")
    user = make_user(4, parent=agency, name="user")
    other_distributor = make_user(2, parent=admin, name="dist2")
    other_agency = make_user(3, parent=other_distributor, name="agency2")
    other_user = make_user(4, parent=other_agency, name="user2")
    return {
        "admin": admin,
        "distributor": distributor,
        "agency": agency,
        "user": user,
        "other_distributor": other_distributor,
        "other_agency": other_agency,
        "other_user": other_user,
    }


@pytest.fixture
def users_by_id(hierarchy):
    return {u.id: u for u in hierarchy.values()}


@pytest.fixture
def ledger(users_by_id):
    return LedgerStore(users_by_id)
