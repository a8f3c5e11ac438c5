"""
Payment form carrier and its two-phase validation.

- Phase 1 (validate_syntax): no I/O. Trims the fields, checks the mandatory
  ones, normalizes the tick boxes and parses the donations.
- Phase 2 (validate_members): looks the member(s) up in the store.

Problems are never raised: they end up as messages in SaleForm.errors, keyed
by form field name, and SaleForm.valid says whether there are any.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging
from typing import Dict, Optional, Tuple

from renewals.errors import MemberNotFound
from renewals.membership.models import MAX_AMOUNT, PENNY

logger = logging.getLogger(__name__)

MANDATORY_MARK = "*"
FIRST_NAME_MISSING = "You must fill in the first name"
LAST_NAME_MISSING = "You must fill in the last name"
EMAIL_MISSING = "You must fill in the email address"
ASSOC_FIRST_NAME_MISSING = "If you fill in anything in this section, you must fill in the first name"
ASSOC_LAST_NAME_MISSING = "If you fill in anything in this section, you must fill in the last name"
INVALID_NUMBER = "must be a number"
NEGATIVE_NUMBER = "must be a 0 or greater"
TOO_LARGE_NUMBER = "must be less than 100,000,000"
NO_SUCH_MEMBER = "cannot find this member"

TICKED = "on"
UNTICKED = "off"


# module renewals.membership.forms
@dataclass
class SaleForm:
    # raw submitted values, in the order the form shows them
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    friend: str = ""
    giftaid: str = ""
    assoc_first_name: str = ""
    assoc_last_name: str = ""
    assoc_email: str = ""
    assoc_friend: str = ""
    donation_to_society: str = ""
    donation_to_museum: str = ""

    # validation results
    errors: Dict[str, str] = field(default_factory=dict)
    valid: bool = False
    first_visit: bool = False
    is_friend: bool = False
    giftaid_ticked: bool = False
    assoc_is_friend: bool = False
    society_donation: Decimal = Decimal("0.00")
    museum_donation: Decimal = Decimal("0.00")
    user_id: int = 0
    assoc_user_id: int = 0

    @property
    def has_associate(self) -> bool:
        return bool(self.assoc_first_name or self.assoc_last_name)

    def error(self, name: str) -> str:
        return self.errors.get(name, "")

    def add_error(self, name: str, message: str) -> None:
        self.errors[name] = message
        self.valid = False


INPUT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "friend",
    "giftaid",
    "assoc_first_name",
    "assoc_last_name",
    "assoc_email",
    "assoc_friend",
    "donation_to_society",
    "donation_to_museum",
)
MANDATORY_FIELDS = ("first_name", "last_name", "email")


def is_ticked(raw: Optional[str]) -> bool:
    """Only the exact strings 'on' and 'checked' tick a box."""
    return raw in ("on", "checked")


def normalize_tickbox(raw: Optional[str]) -> str:
    """Maps any submitted tick box value to 'on' or 'off'."""
    return TICKED if is_ticked(raw) else UNTICKED


def check_donation(raw: str) -> Tuple[Optional[Decimal], str]:
    """
    Parses a donation.
    - Returns (amount rounded half-up to pennies, "") when it is a number >= 0.
    - Returns (None, message) otherwise. An empty string is not a number.
    - Amounts above MAX_AMOUNT are refused: the sale columns cannot hold them.
    """
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None, INVALID_NUMBER
    if not value.is_finite():
        return None, INVALID_NUMBER
    if value < 0:
        return None, NEGATIVE_NUMBER
    if value > MAX_AMOUNT:
        return None, TOO_LARGE_NUMBER
    try:
        return value.quantize(PENNY, rounding=ROUND_HALF_UP), ""
    except InvalidOperation:
        return None, INVALID_NUMBER


def validate_syntax(form: SaleForm) -> bool:
    """
    Phase 1 of the validation, no I/O.
    - An entirely empty form is a first visit: the mandatory fields get the
      '*' marker and the form is not valid.
    - Otherwise every field is trimmed and checked, and each problem becomes
      a message on the field concerned.
    """
    form.errors.clear()
    form.valid = True
    form.first_visit = False

    if not any(getattr(form, name) for name in INPUT_FIELDS):
        for name in MANDATORY_FIELDS:
            form.errors[name] = MANDATORY_MARK
        form.valid = False
        form.first_visit = True
        return False

    for name in INPUT_FIELDS:
        setattr(form, name, getattr(form, name).strip())

    if not form.first_name:
        form.add_error("first_name", FIRST_NAME_MISSING)
    if not form.last_name:
        form.add_error("last_name", LAST_NAME_MISSING)
    if not form.email:
        form.add_error("email", EMAIL_MISSING)

    form.is_friend = is_ticked(form.friend)
    form.friend = normalize_tickbox(form.friend)
    form.giftaid_ticked = is_ticked(form.giftaid)
    form.giftaid = normalize_tickbox(form.giftaid)

    # Anything in the associate block makes both associate names mandatory.
    if form.assoc_first_name or form.assoc_last_name or form.assoc_email or form.assoc_friend:
        if not form.assoc_first_name:
            form.add_error("assoc_first_name", ASSOC_FIRST_NAME_MISSING)
        if not form.assoc_last_name:
            form.add_error("assoc_last_name", ASSOC_LAST_NAME_MISSING)

    form.assoc_is_friend = is_ticked(form.assoc_friend)
    form.assoc_friend = normalize_tickbox(form.assoc_friend)

    amount, message = check_donation(form.donation_to_society)
    if message:
        form.add_error("donation_to_society", message)
    else:
        form.society_donation = amount

    amount, message = check_donation(form.donation_to_museum)
    if message:
        form.add_error("donation_to_museum", message)
    else:
        form.museum_donation = amount

    return form.valid


def validate_members(form: SaleForm, store) -> bool:
    """
    Phase 2 of the validation: the member, and the associate when one is
    given, must exist in the store. Store failures other than a missing
    member propagate to the caller.
    """
    try:
        form.user_id = store.find_member(form.first_name, form.last_name, form.email)
    except MemberNotFound:
        logger.debug("member lookup failed first=%s last=%s", form.first_name, form.last_name)
        for name in MANDATORY_FIELDS:
            form.add_error(name, NO_SUCH_MEMBER)

    if form.has_associate:
        try:
            form.assoc_user_id = store.find_member(
                form.assoc_first_name, form.assoc_last_name, form.assoc_email
            )
        except MemberNotFound:
            logger.debug("associate lookup failed first=%s last=%s", form.assoc_first_name, form.assoc_last_name)
            form.add_error("assoc_first_name", NO_SUCH_MEMBER)
            form.add_error("assoc_last_name", NO_SUCH_MEMBER)

    return form.valid


def validate(form: SaleForm, store) -> bool:
    """Both phases. The store is only consulted when phase 1 passes."""
    if not validate_syntax(form):
        return False
    return validate_members(form, store)
