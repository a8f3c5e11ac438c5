"""
Stripe adapter: the only module that talks to the hosted checkout.

The rest of the service sees two operations, create_session and
get_session, and GatewayError when Stripe fails.
"""
import logging

import stripe
from pydantic import BaseModel

from renewals import config
from renewals.errors import GatewayError

logger = logging.getLogger(__name__)


class CheckoutRedirect(BaseModel):
    session_id: str
    url: str


class GatewaySession(BaseModel):
    session_id: str
    client_reference: str = ""
    payment_status: str = ""

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


# module renewals.payments.stripe_client
def require_stripe():
    """
    Returns the stripe module with its API key set.
    - Without STRIPE_SECRET_KEY the SDK calls fail, and so do ours (GatewayError).
    """
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe


def create_session(
    *,
    amount_minor_units: int,
    description: str,
    client_reference: str,
    success_url: str,
    cancel_url: str,
    invoice: bool = True,
    currency: str = config.CURRENCY,
) -> CheckoutRedirect:
    """
    Creates a one-line Stripe Checkout session in payment mode.
    - amount_minor_units: total in pence
    - client_reference: our sale id, handed back by get_session
    - success_url must carry {CHECKOUT_SESSION_ID}, Stripe fills it in
    """
    require_stripe()
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_minor_units,
                        "product_data": {"name": description},
                    },
                    "quantity": 1,
                }
            ],
            client_reference_id=client_reference,
            success_url=success_url,
            cancel_url=cancel_url,
            invoice_creation={
                "enabled": invoice,
                "invoice_data": {"description": description},
            } if invoice else {"enabled": False},
            payment_method_types=["card"],
        )
    except stripe.StripeError as e:
        logger.exception("payments.create_session failed reference=%s", client_reference)
        raise GatewayError(f"the payment service refused the checkout: {e}") from e
    if not session.id or not session.url:
        raise GatewayError("the payment service returned no checkout page")
    return CheckoutRedirect(session_id=session.id, url=session.url)


def get_session(session_id: str) -> GatewaySession:
    """Retrieves a Checkout session by its id."""
    require_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logger.exception("payments.get_session failed session_id=%s", session_id)
        raise GatewayError(f"cannot retrieve the payment session: {e}") from e
    return GatewaySession(
        session_id=session.id or session_id,
        client_reference=session.client_reference_id or "",
        payment_status=session.payment_status or "",
    )
