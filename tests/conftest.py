import os

# Before any renewals import: config is read once at import time
os.environ.setdefault("ORDINARY_MEMBER_FEE", "24.00")
os.environ.setdefault("ASSOCIATE_MEMBER_FEE", "6.00")
os.environ.setdefault("FRIEND_FEE", "5.00")
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Dict, Generator, List, Optional, Tuple
from fastapi.testclient import TestClient

from renewals.app_setup.factory import create_app
from renewals.errors import GatewayError, MemberNotFound, SaleNotFound, StoreError
from renewals.fees import FeeCatalog
from renewals.membership.models import MembershipSale, PaymentStatus
from renewals.membership.repository import get_store
from renewals.payments.stripe_client import CheckoutRedirect, GatewaySession

# Automatic marking by folder
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/") or nodeid.startswith("unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/") or nodeid.startswith("integration/"):
            item.add_marker(pytest.mark.integration)


MUTATIONS = (
    "create_sale",
    "update_sale",
    "set_end_date",
    "set_date_last_paid",
    "set_last_payment",
    "set_donation_to_society",
    "set_donation_to_museum",
    "set_friend_tickbox",
    "set_giftaid_tickbox",
    "set_members_at_address",
    "set_friends_at_address",
)


class FakeStore:
    """
    In-memory membership store recording every call as (name, *args).
    - fail_on: name of a method that raises StoreError (once, then recovers).
    """

    def __init__(self, members: Optional[Dict[int, Tuple[str, str, str]]] = None):
        self.members: Dict[int, Dict] = {}
        for member_id, (first, last, email) in (members or {}).items():
            self.members[member_id] = {"first_name": first, "last_name": last, "email": email}
        self.sales: Dict[int, MembershipSale] = {}
        self.calls: List[tuple] = []
        self.fail_on: Optional[str] = None
        self._next_sale_id = 1

    def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.fail_on == name:
            self.fail_on = None
            raise StoreError(f"{name} failed")

    def mutations(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in MUTATIONS]

    def find_member(self, first_name, last_name, email):
        self._record("find_member", first_name, last_name, email)
        found = [
            member_id for member_id, m in self.members.items()
            if m["first_name"].lower() == first_name.lower()
            and m["last_name"].lower() == last_name.lower()
            and (not email or m["email"].lower() == email.lower())
        ]
        if len(found) != 1:
            raise MemberNotFound(f"no member {first_name} {last_name}")
        return found[0]

    def member_exists(self, member_id):
        self._record("member_exists", member_id)
        return member_id in self.members

    def _set(self, name, member_id, column, value):
        self._record(name, member_id, value)
        if member_id not in self.members:
            raise MemberNotFound(f"no member with id {member_id}")
        self.members[member_id][column] = value

    def set_end_date(self, member_id, membership_year):
        self._set("set_end_date", member_id, "end_year", membership_year)

    def set_date_last_paid(self, member_id, when):
        self._set("set_date_last_paid", member_id, "date_last_paid", when)

    def set_last_payment(self, member_id, amount):
        self._set("set_last_payment", member_id, "last_payment", amount)

    def set_donation_to_society(self, member_id, amount):
        self._set("set_donation_to_society", member_id, "donation_to_society", amount)

    def set_donation_to_museum(self, member_id, amount):
        self._set("set_donation_to_museum", member_id, "donation_to_museum", amount)

    def set_friend_tickbox(self, member_id, is_friend):
        self._set("set_friend_tickbox", member_id, "is_friend_of_museum", is_friend)

    def set_giftaid_tickbox(self, member_id, giftaid):
        self._set("set_giftaid_tickbox", member_id, "giftaid", giftaid)

    def set_members_at_address(self, member_id, n):
        self._set("set_members_at_address", member_id, "members_at_address", n)

    def set_friends_at_address(self, member_id, n):
        self._set("set_friends_at_address", member_id, "friends_at_address", n)

    def create_sale(self, sale):
        self._record("create_sale", sale)
        sale_id = self._next_sale_id
        self._next_sale_id += 1
        self.sales[sale_id] = sale.model_copy(update={"sale_id": sale_id})
        return sale_id

    def get_sale(self, sale_id):
        self._record("get_sale", sale_id)
        if sale_id not in self.sales:
            raise SaleNotFound(f"no membership sale with id {sale_id}")
        return self.sales[sale_id]

    def update_sale(self, sale_id, new_status, session_id, only_if=None):
        self._record("update_sale", sale_id, new_status, session_id)
        sale = self.sales[sale_id]
        if only_if is not None and sale.payment_status != only_if:
            return False
        self.sales[sale_id] = sale.model_copy(
            update={"payment_status": new_status, "payment_session_id": session_id}
        )
        return True


class FakeGateway:
    """Stands in for renewals.payments.stripe_client.create_session/get_session."""

    def __init__(self):
        self.created: List[dict] = []
        self.sessions: Dict[str, GatewaySession] = {}

    def create_session(self, **kwargs):
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append(kwargs)
        self.sessions[session_id] = GatewaySession(
            session_id=session_id,
            client_reference=kwargs["client_reference"],
            payment_status="paid",
        )
        return CheckoutRedirect(session_id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    def get_session(self, session_id):
        if session_id not in self.sessions:
            raise GatewayError(f"cannot retrieve the payment session: no such session {session_id}")
        return self.sessions[session_id]

    def add_session(self, session_id, client_reference, payment_status="paid"):
        self.sessions[session_id] = GatewaySession(
            session_id=session_id, client_reference=client_reference, payment_status=payment_status
        )


@pytest.fixture
def fees() -> FeeCatalog:
    return FeeCatalog.from_strings("24.00", "6.00", "5.00")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore({
        42: ("a", "b", "a@b.com"),
        77: ("Alice", "Smith", "alice@example.com"),
    })


@pytest.fixture
def gateway(monkeypatch) -> FakeGateway:
    fake = FakeGateway()
    monkeypatch.setattr("renewals.payments.stripe_client.create_session", fake.create_session)
    monkeypatch.setattr("renewals.payments.stripe_client.get_session", fake.get_session)
    return fake


@pytest.fixture
def pending_sale() -> MembershipSale:
    """Scenario sale: member 42 (friend) with associate 77, no donations, for 2025."""
    return MembershipSale(
        sale_id=0,
        membership_year=2025,
        full_member_id=42,
        full_member_fee="24.00",
        full_member_is_friend=True,
        full_member_friend_fee="5.00",
        associate_member_id=77,
        associate_member_fee="6.00",
        associate_member_is_friend=False,
        payment_status=PaymentStatus.PENDING,
    )


@pytest.fixture
def app(fees, store, gateway):
    fastapi_app = create_app(fees=fees)
    fastapi_app.dependency_overrides[get_store] = lambda: store
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
