# renewals.config
from pathlib import Path
import os
from dotenv import load_dotenv

from renewals.errors import ConfigError

# Project root first, then the .env beside it
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = PACKAGE_DIR / "templates"

"""
Central configuration of the renewal service.

- Loads the .env file at the project root (BASE_DIR/.env) when there is one
- Exposes the fee strings parsed at startup by renewals.fees
- Exposes the database (Supabase) and gateway (Stripe) secrets
- Exposes the membership-year policy (cutoff day, time zone)
- Exposes the TLS files, which also decide the URL scheme handed to Stripe
"""

def _clean_env(v: str) -> str:
    """
    Cleans an environment value:
    - strips whitespace, single/double quotes and backticks
    - always returns a string (never None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

# Tariffs: raw strings, parsed and checked once by renewals.fees.load_fee_catalog
ORDINARY_MEMBER_FEE = _clean_env(os.getenv("ORDINARY_MEMBER_FEE"))
ASSOCIATE_MEMBER_FEE = _clean_env(os.getenv("ASSOCIATE_MEMBER_FEE"))
FRIEND_FEE = _clean_env(os.getenv("FRIEND_FEE"))

# Supabase: the members database, reached with the service-role key
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")
SUPABASE_TIMEOUT = int(_clean_env(os.getenv("SUPABASE_TIMEOUT")) or "10")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
PAYMENT_SERVICE = "Stripe"
CURRENCY = "gbp"

# TLS: with a certificate the server speaks https and so do the gateway URLs
TLS_CERTIFICATE_FILE = _clean_env(os.getenv("TLS_CERTIFICATE_FILE") or "")
TLS_CERTIFICATE_KEY_FILE = _clean_env(os.getenv("TLS_CERTIFICATE_KEY_FILE") or "")

# Display and contact details
ORGANISATION_NAME = _clean_env(os.getenv("ORGANISATION_NAME") or "Local History Society")
EMAIL_ADDRESS_FOR_QUESTIONS = _clean_env(os.getenv("EMAIL_ADDRESS_FOR_QUESTIONS") or "membership@example.org")
# After payment, problems go to somebody who can refund
EMAIL_ADDRESS_FOR_FAILURES = _clean_env(os.getenv("EMAIL_ADDRESS_FOR_FAILURES") or "treasurer@example.org")

# Membership year: from this month/day on, next year's membership is sold
SELLING_YEAR_START = _clean_env(os.getenv("SELLING_YEAR_START") or "10-01")
TIMEZONE = _clean_env(os.getenv("TIMEZONE") or "Europe/London")

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]


def url_scheme() -> str:
    """'https' when a TLS certificate is configured, 'http' otherwise."""
    return "https" if TLS_CERTIFICATE_FILE else "http"


def check_tls_files() -> None:
    """
    Fails fast on a half-configured or missing TLS setup.
    - A certificate without its key (or the reverse) is a ConfigError.
    - Both files must exist when configured.
    """
    if bool(TLS_CERTIFICATE_FILE) != bool(TLS_CERTIFICATE_KEY_FILE):
        raise ConfigError("TLS_CERTIFICATE_FILE and TLS_CERTIFICATE_KEY_FILE must be set together")
    for path in (TLS_CERTIFICATE_FILE, TLS_CERTIFICATE_KEY_FILE):
        if path and not Path(path).is_file():
            raise ConfigError(f"TLS file not found: {path}")
