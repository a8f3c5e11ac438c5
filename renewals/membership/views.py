# module renewals.membership.views

"""Pages of the renewal flow.
- Payment form: GET shows it (empty on a first visit), POST validates it and
  shows the cost breakdown with the hidden fields for /checkout.
- Checkout: creates the Pending sale and sends the member to Stripe (303).
- Success / cancel: the two pages Stripe sends the member back to.
Errors raised here are rendered by renewals.app_setup.exceptions.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.status import HTTP_303_SEE_OTHER

from renewals import config
from renewals.fees import FeeCatalog
from renewals.membership import dates, service
from renewals.membership.forms import INPUT_FIELDS, SaleForm, validate, validate_syntax
from renewals.membership.repository import MembershipStore, get_store
from renewals.utils.rate_limit import optional_rate_limit
from renewals.utils.templates import render_page

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Membership"])


def get_fees(request: Request) -> FeeCatalog:
    """The fee catalog loaded by the app factory."""
    return request.app.state.fees


def _form_context(form: SaleForm, fees: FeeCatalog, year: int) -> Dict[str, Any]:
    return {
        "form": form,
        "fees": fees.for_display(),
        "membership_year": year,
        "contact_email": config.EMAIL_ADDRESS_FOR_QUESTIONS,
    }


def _empty_form_page(request: Request, fees: FeeCatalog) -> HTMLResponse:
    form = SaleForm()
    validate_syntax(form)
    # Members who do not donate should not have to type anything
    form.donation_to_society = "0"
    form.donation_to_museum = "0"
    return render_page(request, "payment_form.html", _form_context(form, fees, dates.payment_year()))


def _display_payment_form(
    request: Request, form: SaleForm, store: MembershipStore, fees: FeeCatalog
) -> HTMLResponse:
    year = dates.payment_year()
    if not validate(form, store):
        if form.first_visit:
            return _empty_form_page(request, fees)
        return render_page(request, "payment_form.html", _form_context(form, fees, year))

    sale = service.sale_from_form(form, fees, year)
    context = _form_context(form, fees, year)
    context.update({
        "sale": sale,
        "breakdown": sale.cost_breakdown(),
        "hidden_fields": service.hidden_fields(sale),
    })
    return render_page(request, "confirmation.html", context)


@router.get("/", response_class=HTMLResponse)
@router.get("/displayPaymentForm", response_class=HTMLResponse)
@router.get("/subscribe", response_class=HTMLResponse)
def payment_form_page(
    request: Request,
    store: MembershipStore = Depends(get_store),
    fees: FeeCatalog = Depends(get_fees),
) -> HTMLResponse:
    """Without query parameters this is the first visit: an empty form with the mandatory marks."""
    params = request.query_params
    form = SaleForm(**{name: params.get(name, "") for name in INPUT_FIELDS})
    return _display_payment_form(request, form, store, fees)


@router.post("/displayPaymentForm", response_class=HTMLResponse)
@router.post("/subscribe", response_class=HTMLResponse)
def submit_payment_form(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    friend: str = Form(""),
    giftaid: str = Form(""),
    assoc_first_name: str = Form(""),
    assoc_last_name: str = Form(""),
    assoc_email: str = Form(""),
    assoc_friend: str = Form(""),
    donation_to_society: str = Form(""),
    donation_to_museum: str = Form(""),
    store: MembershipStore = Depends(get_store),
    fees: FeeCatalog = Depends(get_fees),
) -> HTMLResponse:
    form = SaleForm(
        first_name=first_name,
        last_name=last_name,
        email=email,
        friend=friend,
        giftaid=giftaid,
        assoc_first_name=assoc_first_name,
        assoc_last_name=assoc_last_name,
        assoc_email=assoc_email,
        assoc_friend=assoc_friend,
        donation_to_society=donation_to_society,
        donation_to_museum=donation_to_museum,
    )
    return _display_payment_form(request, form, store, fees)


@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def checkout(
    request: Request,
    user_id: str = Form(""),
    assoc_user_id: str = Form(""),
    friend: str = Form(""),
    assoc_friend: str = Form(""),
    giftaid: str = Form(""),
    donation_to_society: str = Form(""),
    donation_to_museum: str = Form(""),
    store: MembershipStore = Depends(get_store),
    fees: FeeCatalog = Depends(get_fees),
):
    """
    Posted by the confirmation page.
    - No user_id means the form was bypassed: start again with an empty form.
    - Otherwise 303 to the Stripe Checkout page.
    """
    if not user_id.strip():
        logger.info("checkout without user_id, showing an empty form")
        return _empty_form_page(request, fees)

    checkout_request = service.parse_checkout_fields(
        user_id,
        assoc_user_id=assoc_user_id,
        friend=friend,
        assoc_friend=assoc_friend,
        giftaid=giftaid,
        donation_to_society=donation_to_society,
        donation_to_museum=donation_to_museum,
    )
    host = request.headers.get("host") or request.url.netloc
    url = service.begin_checkout(checkout_request, store, fees, host)
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


@router.get("/success", response_class=HTMLResponse)
def success(
    request: Request,
    session_id: str = "",
    store: MembershipStore = Depends(get_store),
) -> HTMLResponse:
    sale = service.complete_sale(session_id, store)
    return render_page(request, "success.html", {
        "sale": sale,
        "breakdown": sale.cost_breakdown(),
        "contact_email": config.EMAIL_ADDRESS_FOR_FAILURES,
    })


@router.get("/cancel", response_class=HTMLResponse)
def cancel(request: Request) -> HTMLResponse:
    return render_page(request, "cancel.html", {"contact_email": config.EMAIL_ADDRESS_FOR_QUESTIONS})
