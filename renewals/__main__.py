"""
Main entry point of the renewal service.

Usage:
    python -m renewals

Runs uvicorn directly and reads a few environment variables:
- HOST, PORT: where to listen (default 0.0.0.0:8000)
- UVICORN_RELOAD: auto reload in development ("1"/"true"/"yes")
- LOG_LEVEL: uvicorn log level (e.g. "info", "debug")
- TLS_CERTIFICATE_FILE, TLS_CERTIFICATE_KEY_FILE: serve https when set
"""
import logging
import os
import sys

import uvicorn

from renewals import config
from renewals.errors import ConfigError
from renewals.fees import load_fee_catalog
from renewals.membership.dates import check_year_policy

logger = logging.getLogger("uvicorn.error")


def main() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info")
    logging.basicConfig(level=log_level.upper())
    try:
        # Fail before binding; the factory checks again in the worker
        load_fee_catalog()
        check_year_policy()
        config.check_tls_files()
    except ConfigError as e:
        logger.error("configuration error: %s", e.message)
        sys.exit(1)

    tls = {}
    if config.TLS_CERTIFICATE_FILE:
        tls = {"ssl_certfile": config.TLS_CERTIFICATE_FILE, "ssl_keyfile": config.TLS_CERTIFICATE_KEY_FILE}
    uvicorn.run(
        "renewals.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=log_level,
        **tls,
    )


if __name__ == "__main__":
    main()
