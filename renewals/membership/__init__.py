"""
Module 'membership' (feature-first): the renewal flow.
Joins the sale aggregate, the payment form, the membership store, the
membership-year policy and the sale coordinator.
"""

from .models import PaymentStatus, CostLine, MembershipSale
from .forms import SaleForm, normalize_tickbox, validate, validate_syntax, validate_members
from .dates import payment_year, end_of_year
from .repository import MembershipStore, get_store
from .service import build_sale, begin_checkout, complete_sale, parse_client_reference, to_minor_units

__all__ = [
    # models
    "PaymentStatus",
    "CostLine",
    "MembershipSale",
    # forms
    "SaleForm",
    "normalize_tickbox",
    "validate",
    "validate_syntax",
    "validate_members",
    # dates
    "payment_year",
    "end_of_year",
    # repository
    "MembershipStore",
    "get_store",
    # services
    "build_sale",
    "begin_checkout",
    "complete_sale",
    "parse_client_reference",
    "to_minor_units",
]
