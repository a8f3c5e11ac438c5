# module renewals.membership.repository
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from pydantic import ValidationError

from renewals.errors import MemberNotFound, SaleNotFound, StoreError
from renewals.infra.supabase_client import get_service_supabase
from renewals.membership.dates import end_of_year
from renewals.membership.models import MembershipSale, PaymentStatus

logger = logging.getLogger(__name__)

MEMBERS_TABLE = "members"
SALES_TABLE = "membership_sales"

SALE_COLUMNS = (
    "id, membership_year, full_member_id, full_member_fee, full_member_is_friend, "
    "full_member_friend_fee, associate_member_id, associate_member_fee, "
    "associate_member_is_friend, associate_member_friend_fee, donation_to_society, "
    "donation_to_museum, giftaid, payment_service, payment_status, payment_session_id"
)
MONEY_COLUMNS = frozenset({
    "full_member_fee",
    "full_member_friend_fee",
    "associate_member_fee",
    "associate_member_friend_fee",
    "donation_to_society",
    "donation_to_museum",
})


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _same(a: Optional[str], b: str) -> bool:
    return (a or "").strip().casefold() == (b or "").strip().casefold()


def sale_to_row(sale: MembershipSale) -> Dict[str, Any]:
    """Columns of a membership_sales row. A missing associate is stored as NULL."""
    return {
        "membership_year": sale.membership_year,
        "full_member_id": sale.full_member_id,
        "full_member_fee": _money(sale.full_member_fee),
        "full_member_is_friend": sale.full_member_is_friend,
        "full_member_friend_fee": _money(sale.full_member_friend_fee),
        "associate_member_id": sale.associate_member_id or None,
        "associate_member_fee": _money(sale.associate_member_fee),
        "associate_member_is_friend": sale.associate_member_is_friend,
        "associate_member_friend_fee": _money(sale.associate_member_friend_fee),
        "donation_to_society": _money(sale.donation_to_society),
        "donation_to_museum": _money(sale.donation_to_museum),
        "giftaid": sale.giftaid,
        "payment_service": sale.payment_service,
        "payment_status": sale.payment_status.value,
        "payment_session_id": sale.payment_session_id,
    }


def sale_from_row(row: Dict[str, Any]) -> MembershipSale:
    data = dict(row)
    data["sale_id"] = data.pop("id")
    data["associate_member_id"] = data.get("associate_member_id") or 0
    data["payment_session_id"] = data.get("payment_session_id") or ""
    for key in list(data):
        if data[key] is None:
            del data[key]
        elif key in MONEY_COLUMNS:
            data[key] = Decimal(str(data[key]))
    return MembershipSale(**data)


class MembershipStore:
    """
    Members and membership sales, through PostgREST.
    - One instance per request (see get_store), sharing the process-wide client.
    - No retry: database failures are raised as StoreError with the cause chained.
    - Writes to members are absolute assignments, so repeating one is harmless.
    """

    def __init__(self, client):
        self.client = client

    def _execute(self, operation: str, query):
        try:
            return query.execute()
        except (APIError, httpx.HTTPError) as e:
            logger.exception("membership.repository.%s failed", operation)
            raise StoreError(f"database error during {operation}: {e}") from e

    # --- members ---------------------------------------------------------
    def find_member(self, first_name: str, last_name: str, email: str) -> int:
        """
        Returns the id of the one member called first_name last_name with
        that email address, compared without regard to case.
        - An empty email matches on the names only.
        - No match, or more than one, raises MemberNotFound.
        """
        query = (
            self.client.table(MEMBERS_TABLE)
            .select("id, first_name, last_name, email")
            .ilike("first_name", first_name)
            .ilike("last_name", last_name)
        )
        if email:
            query = query.ilike("email", email)
        res = self._execute("find_member", query)
        # ilike treats % and _ as wildcards: keep exact matches only
        rows = [
            r for r in (res.data or [])
            if _same(r.get("first_name"), first_name)
            and _same(r.get("last_name"), last_name)
            and (not email or _same(r.get("email"), email))
        ]
        if not rows:
            raise MemberNotFound(f"no member {first_name} {last_name}")
        if len(rows) > 1:
            raise MemberNotFound(f"{len(rows)} members match {first_name} {last_name}")
        return int(rows[0]["id"])

    def member_exists(self, member_id: int) -> bool:
        res = self._execute(
            "member_exists",
            self.client.table(MEMBERS_TABLE).select("id").eq("id", member_id).limit(1),
        )
        return bool(res.data)

    def _update_member(self, operation: str, member_id: int, values: Dict[str, Any]) -> None:
        res = self._execute(
            operation,
            self.client.table(MEMBERS_TABLE).update(values).eq("id", member_id),
        )
        if not res.data:
            raise MemberNotFound(f"{operation}: no member with id {member_id}")

    def set_end_date(self, member_id: int, membership_year: int) -> None:
        self._update_member("set_end_date", member_id, {"end_date": end_of_year(membership_year).isoformat()})

    def set_date_last_paid(self, member_id: int, when: datetime) -> None:
        self._update_member("set_date_last_paid", member_id, {"date_last_paid": when.isoformat()})

    def set_last_payment(self, member_id: int, amount: Decimal) -> None:
        self._update_member("set_last_payment", member_id, {"last_payment": _money(amount)})

    def set_donation_to_society(self, member_id: int, amount: Decimal) -> None:
        self._update_member("set_donation_to_society", member_id, {"donation_to_society": _money(amount)})

    def set_donation_to_museum(self, member_id: int, amount: Decimal) -> None:
        self._update_member("set_donation_to_museum", member_id, {"donation_to_museum": _money(amount)})

    def set_friend_tickbox(self, member_id: int, is_friend: bool) -> None:
        self._update_member("set_friend_tickbox", member_id, {"is_friend_of_museum": bool(is_friend)})

    def set_giftaid_tickbox(self, member_id: int, giftaid: bool) -> None:
        self._update_member("set_giftaid_tickbox", member_id, {"giftaid": bool(giftaid)})

    def set_members_at_address(self, member_id: int, n: int) -> None:
        self._update_member("set_members_at_address", member_id, {"members_at_address": int(n)})

    def set_friends_at_address(self, member_id: int, n: int) -> None:
        self._update_member("set_friends_at_address", member_id, {"friends_at_address": int(n)})

    # --- sales -----------------------------------------------------------
    def create_sale(self, sale: MembershipSale) -> int:
        """Inserts the sale as Pending and returns the id the database gave it."""
        row = sale_to_row(sale)
        row["payment_status"] = PaymentStatus.PENDING.value
        row["payment_session_id"] = ""
        res = self._execute("create_sale", self.client.table(SALES_TABLE).insert(row))
        if not res.data or not res.data[0].get("id"):
            raise StoreError("create_sale: the database returned no sale id")
        return int(res.data[0]["id"])

    def get_sale(self, sale_id: int) -> MembershipSale:
        res = self._execute(
            "get_sale",
            self.client.table(SALES_TABLE).select(SALE_COLUMNS).eq("id", sale_id).limit(1),
        )
        if not res.data:
            raise SaleNotFound(f"no membership sale with id {sale_id}")
        try:
            return sale_from_row(res.data[0])
        except ValidationError as e:
            logger.exception("membership.repository.get_sale bad row id=%s", sale_id)
            raise StoreError(f"membership sale {sale_id} is inconsistent") from e

    def update_sale(
        self,
        sale_id: int,
        new_status: PaymentStatus,
        session_id: str,
        only_if: Optional[PaymentStatus] = None,
    ) -> bool:
        """
        Sets the status and gateway session id of a sale.
        - With only_if, the row changes only while its status is still only_if.
        - Returns True when a row was changed.
        """
        query = (
            self.client.table(SALES_TABLE)
            .update({"payment_status": new_status.value, "payment_session_id": session_id})
            .eq("id", sale_id)
        )
        if only_if is not None:
            query = query.eq("payment_status", only_if.value)
        res = self._execute("update_sale", query)
        return bool(res.data)


def get_store() -> Iterator[MembershipStore]:
    """FastAPI dependency: one store per request, dropped when the request ends."""
    store = MembershipStore(get_service_supabase())
    try:
        yield store
    finally:
        store.client = None
