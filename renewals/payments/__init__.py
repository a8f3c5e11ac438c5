"""
Module 'payments': the hosted-checkout gateway (Stripe).
"""

from .stripe_client import CheckoutRedirect, GatewaySession, require_stripe, create_session, get_session

__all__ = [
    "CheckoutRedirect",
    "GatewaySession",
    "require_stripe",
    "create_session",
    "get_session",
]
