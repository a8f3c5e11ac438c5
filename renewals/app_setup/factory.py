"""
Application factory used by the entry points (renewals.asgi, python -m renewals).
Runs the startup checks, then wires the app in a readable, testable order.
"""
import logging
from typing import Optional
from fastapi import FastAPI

from renewals import __version__, config
from renewals.fees import FeeCatalog, load_fee_catalog
from renewals.membership.dates import check_year_policy
from .lifespan import lifespan
from .middlewares import register_basic_middlewares, register_security_middleware, register_no_cache_middleware
from .exceptions import register_exception_handlers
from .routers import register_routers

logger = logging.getLogger(__name__)


def create_app(fees: Optional[FeeCatalog] = None) -> FastAPI:
    """
    Builds the FastAPI app.
      - startup checks: fee catalog, membership-year policy, TLS files (ConfigError if wrong)
      - basic, security and no-cache middlewares
      - exception handlers, then the routers
    fees: an already-built catalog (tests); read from the environment otherwise.
    """
    fees = fees or load_fee_catalog()
    check_year_policy()
    config.check_tls_files()

    app = FastAPI(title=f"{config.ORGANISATION_NAME} membership renewals", version=__version__, lifespan=lifespan)
    app.state.fees = fees
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_no_cache_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    logger.info("app created scheme=%s", config.url_scheme())
    return app
