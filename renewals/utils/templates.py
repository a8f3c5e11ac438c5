# module renewals.utils.templates
import logging
from typing import Any, Dict, Optional

import jinja2
from fastapi import Request
from fastapi.templating import Jinja2Templates
from starlette.responses import HTMLResponse

from renewals import config
from renewals.errors import TemplateError

logger = logging.getLogger(__name__)

# Loaded once at import, shared read-only by every request
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))
templates.env.globals["organisation_name"] = config.ORGANISATION_NAME


def render_page(
    request: Request,
    name: str,
    context: Optional[Dict[str, Any]] = None,
    status_code: int = 200,
) -> HTMLResponse:
    """
    Renders one of the package templates.
    - Any Jinja2 failure (missing template, syntax, undefined value) becomes TemplateError.
    """
    try:
        return templates.TemplateResponse(request, name, context or {}, status_code=status_code)
    except jinja2.TemplateError as e:
        logger.exception("utils.templates.render_page failed template=%s", name)
        raise TemplateError(f"cannot render page {name}: {e}") from e
