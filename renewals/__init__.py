"""
Membership renewal service: online renewal of society membership paid
through a hosted Stripe Checkout page.
"""

__version__ = "1.0.0"
