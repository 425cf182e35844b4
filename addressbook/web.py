"""Template rendering, redirects and CSRF protection for the HTML views."""

import secrets
from pathlib import Path
from urllib.parse import urlencode

from fastapi import HTTPException, Request, status
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

CSRF_SESSION_KEY = "csrf_token"
CSRF_FORM_FIELD = "csrf_token"


def csrf_token(request: Request) -> str:
    """Return the session's anti-forgery token, creating it on first use."""
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = token
    return token


async def verify_csrf(request: Request) -> None:
    """
    Dependency rejecting a form post whose token does not match the session.

    Raises:
        HTTPException: 403 when the token is missing or wrong.
    """
    form = await request.form()
    submitted = form.get(CSRF_FORM_FIELD)
    expected = request.session.get(CSRF_SESSION_KEY)
    if (
        not isinstance(submitted, str)
        or not expected
        or not secrets.compare_digest(submitted, expected)
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid anti-forgery token",
        )


def render(
    request: Request,
    name: str,
    context: dict | None = None,
    status_code: int = status.HTTP_200_OK,
):
    """Render a template with the CSRF token available as ``csrf_token``."""
    context = dict(context or {})
    context.setdefault("csrf_token", csrf_token(request))
    return templates.TemplateResponse(
        request, name, context, status_code=status_code
    )


def redirect(path: str, **params) -> RedirectResponse:
    """
    Redirect a browser to ``path`` with a follow-up GET.

    Keyword arguments with a value other than ``None`` become query
    parameters.
    """
    query = {key: value for key, value in params.items() if value is not None}
    url = f"{path}?{urlencode(query)}" if query else path
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)
