"""
Exception handlers: every RenewalError becomes the error page.
- The page shows the underlying message and somebody to write to.
- On /success the member may already have paid, so the contact is the
  address for failures (someone able to refund); elsewhere it is the
  address for questions.
- If the error template itself cannot be rendered, a minimal inline page is sent.
"""
import html
import logging
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from starlette.exceptions import HTTPException

from renewals import config
from renewals.errors import RenewalError, TemplateError
from renewals.utils.templates import render_page

logger = logging.getLogger(__name__)

MINIMAL_ERROR_PAGE = (
    "<!DOCTYPE html><html><head><title>Error</title></head><body>"
    "<h1>Something went wrong</h1><p>{message}</p>"
    "<p>Please contact <a href=\"mailto:{contact}\">{contact}</a>.</p>"
    "</body></html>"
)


def contact_for(request: Request) -> str:
    if request.url.path.rstrip("/") == "/success":
        return config.EMAIL_ADDRESS_FOR_FAILURES
    return config.EMAIL_ADDRESS_FOR_QUESTIONS


def error_page(request: Request, message: str, status_code: int) -> HTMLResponse:
    contact = contact_for(request)
    try:
        return render_page(
            request,
            "error.html",
            {"message": message, "contact_email": contact},
            status_code=status_code,
        )
    except TemplateError:
        return HTMLResponse(
            MINIMAL_ERROR_PAGE.format(message=html.escape(message), contact=html.escape(contact)),
            status_code=status_code,
        )


def register_exception_handlers(app: FastAPI) -> None:
    """
    - RenewalError: error page with the exception's own status.
    - HTTPException (429 from the rate limit, 404...): the same page, with its detail.
    """
    @app.exception_handler(RenewalError)
    async def render_renewal_error(request: Request, exc: RenewalError):
        if exc.status_code < 500:
            logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
        return error_page(request, exc.message, exc.status_code)

    @app.exception_handler(HTTPException)
    async def render_http_error(request: Request, exc: HTTPException):
        response = error_page(request, str(exc.detail), exc.status_code)
        for name, value in (getattr(exc, "headers", None) or {}).items():
            response.headers[name] = value
        return response
