"""Render login flow outcomes and errors as HTTP responses."""

from __future__ import annotations

import logging
from html import escape

from fastapi import Response
from fastapi.responses import HTMLResponse, RedirectResponse

from samlflow.core.errors import LoginFlowError
from samlflow.core.settings import settings
from samlflow.services.host_session import JwtHostSession
from samlflow.services.login_flow import (
    NO_CACHE_HEADERS,
    LogoutChoice,
    MetaRefresh,
    Outcome,
    Redirect,
)

logger = logging.getLogger(__name__)

_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
{head}<title>{title}</title>
</head>
<body>
{body}
</body>
</html>
"""


def _page(title: str, body: str, head: str = "") -> str:
    return _PAGE.format(title=escape(title), body=body, head=head)


def render_outcome(outcome: Outcome, host_session: JwtHostSession | None = None) -> Response:
    """Turn a login flow outcome into a response carrying pending session cookies."""
    response: Response
    if isinstance(outcome, Redirect):
        response = RedirectResponse(outcome.url, status_code=302, headers=dict(outcome.headers))
    elif isinstance(outcome, MetaRefresh):
        url = escape(outcome.url, quote=True)
        response = HTMLResponse(
            _page(
                "Signing in",
                f'<p><a href="{url}">Continue</a></p>',
                head=f'<meta http-equiv="refresh" content="0;url={url}">\n',
            ),
            headers=NO_CACHE_HEADERS,
        )
    elif isinstance(outcome, LogoutChoice):
        provider = escape(outcome.provider_name or "your identity provider")
        response = HTMLResponse(
            _page(
                "Signed out",
                "<p>You have been signed out of this application.</p>\n"
                f'<p><a href="{escape(outcome.return_url, quote=True)}">Return to the login page</a></p>\n'
                f'<p><a href="{escape(outcome.provider_logout_url, quote=True)}">'
                f"Also sign out of {provider}</a></p>",
            ),
            headers=NO_CACHE_HEADERS,
        )
    else:
        raise TypeError(f"Unsupported outcome {outcome!r}")

    if host_session is not None:
        host_session.apply(response)
    return response


def error_page(err: LoginFlowError) -> HTMLResponse:
    """Log ``err`` with its context and return the terminal error page."""
    logger.error(
        "Login flow stopped with %s: %s context=%s",
        err.kind,
        err.detail,
        err.context,
    )
    message = err.user_message
    if err.admin_facing and settings.debug:
        message = f"{message} ({err.detail})"
    body = (
        f"<p>{escape(message)}</p>\n"
        f'<p><a href="{escape(settings.public_base_url, quote=True)}/">Return to the login page</a></p>'
    )
    return HTMLResponse(_page("Login failed", body), status_code=err.status_code)


def metadata_error(message: str) -> Response:
    return Response(
        f"<xml><error>{escape(message)}</error></xml>",
        media_type="application/xml",
        status_code=404,
    )
