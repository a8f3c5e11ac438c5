"""
Sale coordinator: the renewal state machine across three requests.

- confirm: a valid form becomes a priced, unsaved sale plus the hidden
  fields of the confirmation page.
- begin_checkout: the hidden fields become a Pending sale and a Stripe
  Checkout session whose client reference is the sale id.
- complete_sale: Stripe sends the member back with the session id; the sale
  is found through the client reference, the member records are updated and
  the sale becomes Complete, exactly once.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
import re
from typing import List, Optional, Tuple

from renewals import config
from renewals.errors import GatewayError, MemberNotFound, RequestDataError
from renewals.fees import FeeCatalog
from renewals.membership import dates
from renewals.membership.forms import SaleForm, TICKED, is_ticked
from renewals.membership.models import MAX_AMOUNT, ZERO, MembershipSale, PaymentStatus
from renewals.payments import stripe_client

logger = logging.getLogger(__name__)

CLIENT_REFERENCE_PATTERN = re.compile(r"[0-9]{1,18}")
SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


@dataclass(frozen=True)
class CheckoutRequest:
    """The hidden fields of the confirmation page, parsed."""
    user_id: int
    assoc_user_id: int = 0
    is_friend: bool = False
    assoc_is_friend: bool = False
    giftaid: bool = False
    donation_to_society: Decimal = ZERO
    donation_to_museum: Decimal = ZERO


# module renewals.membership.service
def to_minor_units(amount: Decimal) -> int:
    """Pounds to pence, rounding half-up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_sale(
    fees: FeeCatalog,
    membership_year: int,
    *,
    user_id: int,
    assoc_user_id: int = 0,
    is_friend: bool = False,
    assoc_is_friend: bool = False,
    giftaid: bool = False,
    donation_to_society: Decimal = ZERO,
    donation_to_museum: Decimal = ZERO,
) -> MembershipSale:
    """A Pending sale priced from the fee catalog. Associate fees only apply with an associate."""
    has_assoc = assoc_user_id > 0
    assoc_is_friend = has_assoc and assoc_is_friend
    return MembershipSale(
        membership_year=membership_year,
        full_member_id=user_id,
        full_member_fee=fees.ordinary,
        full_member_is_friend=is_friend,
        full_member_friend_fee=fees.friend if is_friend else ZERO,
        associate_member_id=assoc_user_id if has_assoc else 0,
        associate_member_fee=fees.associate if has_assoc else ZERO,
        associate_member_is_friend=assoc_is_friend,
        associate_member_friend_fee=fees.friend if assoc_is_friend else ZERO,
        donation_to_society=donation_to_society,
        donation_to_museum=donation_to_museum,
        giftaid=giftaid,
        payment_service=config.PAYMENT_SERVICE,
        payment_status=PaymentStatus.PENDING,
    )


def sale_from_form(form: SaleForm, fees: FeeCatalog, membership_year: int) -> MembershipSale:
    return build_sale(
        fees,
        membership_year,
        user_id=form.user_id,
        assoc_user_id=form.assoc_user_id,
        is_friend=form.is_friend,
        assoc_is_friend=form.assoc_is_friend,
        giftaid=form.giftaid_ticked,
        donation_to_society=form.society_donation,
        donation_to_museum=form.museum_donation,
    )


def hidden_fields(sale: MembershipSale) -> List[Tuple[str, str]]:
    """
    (name, value) pairs the confirmation page posts to /checkout.
    - user_id always; everything else only when it applies.
    """
    pairs = [("user_id", str(sale.full_member_id))]
    if sale.full_member_is_friend:
        pairs.append(("friend", TICKED))
    if sale.giftaid:
        pairs.append(("giftaid", TICKED))
    if sale.has_associate:
        pairs.append(("assoc_user_id", str(sale.associate_member_id)))
        if sale.associate_member_is_friend:
            pairs.append(("assoc_friend", TICKED))
    if sale.donation_to_society > 0:
        pairs.append(("donation_to_society", f"{sale.donation_to_society:.2f}"))
    if sale.donation_to_museum > 0:
        pairs.append(("donation_to_museum", f"{sale.donation_to_museum:.2f}"))
    return pairs


def _parse_id(name: str, raw: str) -> int:
    text = (raw or "").strip()
    if not CLIENT_REFERENCE_PATTERN.fullmatch(text) or int(text) <= 0:
        raise RequestDataError(f"illegal {name} {raw!r}")
    return int(text)


def _parse_amount(name: str, raw: str) -> Decimal:
    text = (raw or "").strip()
    if not text:
        return ZERO
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise RequestDataError(f"illegal {name} {raw!r}") from e
    if not value.is_finite() or value < 0 or value > MAX_AMOUNT:
        raise RequestDataError(f"illegal {name} {raw!r}")
    return value


def parse_checkout_fields(
    user_id: str,
    assoc_user_id: str = "",
    friend: str = "",
    assoc_friend: str = "",
    giftaid: str = "",
    donation_to_society: str = "",
    donation_to_museum: str = "",
) -> CheckoutRequest:
    """
    Parses the hidden fields posted to /checkout.
    - They come from our own confirmation page, so anything malformed is a
      RequestDataError rather than a message for the user.
    """
    assoc_id = _parse_id("assoc_user_id", assoc_user_id) if (assoc_user_id or "").strip() else 0
    return CheckoutRequest(
        user_id=_parse_id("user_id", user_id),
        assoc_user_id=assoc_id,
        is_friend=is_ticked(friend),
        assoc_is_friend=assoc_id > 0 and is_ticked(assoc_friend),
        giftaid=is_ticked(giftaid),
        donation_to_society=_parse_amount("donation_to_society", donation_to_society),
        donation_to_museum=_parse_amount("donation_to_museum", donation_to_museum),
    )


def gateway_urls(host: str) -> Tuple[str, str]:
    """Success and cancel URLs handed to Stripe. https only when TLS is configured."""
    base = f"{config.url_scheme()}://{host}"
    return f"{base}/success?session_id={SESSION_ID_PLACEHOLDER}", f"{base}/cancel"


def begin_checkout(
    request: CheckoutRequest,
    store,
    fees: FeeCatalog,
    host: str,
    membership_year: Optional[int] = None,
) -> str:
    """
    Creates the Pending sale and its Checkout session.
    - Both members must still exist, so no money is taken for nobody.
    - Returns the Stripe page to redirect the member to.
    """
    if not store.member_exists(request.user_id):
        raise MemberNotFound(f"no member with id {request.user_id}")
    if request.assoc_user_id and not store.member_exists(request.assoc_user_id):
        raise MemberNotFound(f"no member with id {request.assoc_user_id}")

    year = membership_year or dates.payment_year()
    sale = build_sale(
        fees,
        year,
        user_id=request.user_id,
        assoc_user_id=request.assoc_user_id,
        is_friend=request.is_friend,
        assoc_is_friend=request.assoc_is_friend,
        giftaid=request.giftaid,
        donation_to_society=request.donation_to_society,
        donation_to_museum=request.donation_to_museum,
    )
    sale_id = store.create_sale(sale)
    total = sale.total_payment()
    logger.info("sale created id=%s member=%s year=%s total=%s", sale_id, sale.full_member_id, year, total)

    success_url, cancel_url = gateway_urls(host)
    redirect = stripe_client.create_session(
        amount_minor_units=to_minor_units(total),
        description=f"{config.ORGANISATION_NAME} membership {year}",
        client_reference=str(sale_id),
        success_url=success_url,
        cancel_url=cancel_url,
        invoice=True,
    )
    logger.info("checkout session created sale=%s session=%s", sale_id, redirect.session_id)
    return redirect.url


def parse_client_reference(reference: str) -> int:
    """The sale id carried through Stripe: 1 to 18 digits, greater than zero."""
    return _parse_id("client reference", reference)


def apply_completion(store, sale: MembershipSale, when: datetime) -> None:
    """
    Writes the paid renewal into the member records, in this order.
    Every write sets an absolute value, so running this twice for the same
    sale leaves the members as running it once.
    """
    full_id = sale.full_member_id
    store.set_end_date(full_id, sale.membership_year)
    store.set_date_last_paid(full_id, when)
    store.set_friend_tickbox(full_id, sale.full_member_is_friend)
    store.set_giftaid_tickbox(full_id, sale.giftaid)
    if sale.has_associate:
        assoc_id = sale.associate_member_id
        store.set_end_date(assoc_id, sale.membership_year)
        store.set_friend_tickbox(assoc_id, sale.associate_member_is_friend)
        store.set_members_at_address(assoc_id, 2)
        store.set_friends_at_address(assoc_id, sale.friends_count)
    store.set_members_at_address(full_id, sale.members_count)
    store.set_friends_at_address(full_id, sale.friends_count)
    store.set_last_payment(full_id, sale.total_payment())
    store.set_donation_to_society(full_id, sale.donation_to_society)
    store.set_donation_to_museum(full_id, sale.donation_to_museum)


def complete_sale(session_id: str, store, when: Optional[datetime] = None) -> MembershipSale:
    """
    Handles the return from Stripe and returns the completed sale for the receipt.
    - A sale that is already Complete is returned untouched (replay).
    - Stripe must report the session as paid.
    - When another request changes the status first, its outcome is reported:
      the sale if it completed it, RequestDataError otherwise.
    - If a write fails the sale stays Pending and a new call finishes it.
    """
    if not (session_id or "").strip():
        raise RequestDataError("the payment service sent no session id")
    session = stripe_client.get_session(session_id.strip())
    sale_id = parse_client_reference(session.client_reference)
    sale = store.get_sale(sale_id)

    if sale.is_complete:
        logger.info("sale already complete id=%s session=%s, replay ignored", sale_id, session.session_id)
        return sale
    if sale.payment_status == PaymentStatus.CANCELLED:
        raise RequestDataError(f"membership sale {sale_id} was cancelled")
    if not session.is_paid:
        raise GatewayError(f"payment for sale {sale_id} is not complete (status {session.payment_status!r})")

    apply_completion(store, sale, when or dates.now())
    if not store.update_sale(sale_id, PaymentStatus.COMPLETE, session.session_id, only_if=PaymentStatus.PENDING):
        # Another request changed the status first: report what it left
        current = store.get_sale(sale_id)
        if not current.is_complete:
            raise RequestDataError(f"membership sale {sale_id} is {current.payment_status.value}, not complete")
        logger.info("sale completed concurrently id=%s", sale_id)
        return current
    logger.info("sale completed id=%s member=%s total=%s", sale_id, sale.full_member_id, sale.total_payment())
    return sale.model_copy(
        update={"payment_status": PaymentStatus.COMPLETE, "payment_session_id": session.session_id}
    )
