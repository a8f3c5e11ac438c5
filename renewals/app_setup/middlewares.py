"""
Cross-cutting middlewares.
- register_basic_middlewares: TrustedHost and trust of the proxy X-Forwarded-* headers.
- register_security_middleware: basic security headers on every response.
- register_no_cache_middleware: the renewal flow pages are never cached.
Notes:
- Middlewares added last run first.
"""
from fastapi import FastAPI, Request
from starlette.middleware.trustedhost import TrustedHostMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from renewals.config import ALLOWED_HOSTS, TLS_CERTIFICATE_FILE

NO_STORE_PATHS = {"/", "/displayPaymentForm", "/subscribe", "/checkout", "/success"}


def register_basic_middlewares(app: FastAPI) -> None:
    """
    - TrustedHostMiddleware: only the configured hosts (the host ends up in the Stripe URLs).
    - ProxyHeadersMiddleware: client address and scheme from the reverse proxy.
    """
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])


def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        if "X-Frame-Options" not in response.headers:
            response.headers["X-Frame-Options"] = "DENY"
        if "X-Content-Type-Options" not in response.headers:
            response.headers["X-Content-Type-Options"] = "nosniff"
        if "Referrer-Policy" not in response.headers:
            response.headers["Referrer-Policy"] = "no-referrer"
        if TLS_CERTIFICATE_FILE and "Strict-Transport-Security" not in response.headers:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response


def register_no_cache_middleware(app: FastAPI) -> None:
    """
    The form, checkout and receipt pages carry personal details and a
    one-off sale: the browser must not keep or replay them.
    """
    @app.middleware("http")
    async def no_cache_for_renewal_flow(request: Request, call_next):
        response = await call_next(request)
        path = request.url.path
        if path != "/":
            path = path.rstrip("/")
        if path in NO_STORE_PATHS:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        return response
