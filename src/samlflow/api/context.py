"""Translate framework requests into ``RequestContext`` values."""

from __future__ import annotations

from fastapi import Request

from samlflow.core.context import RequestContext
from samlflow.services.host_session import HostSessionService


async def read_form(request: Request) -> dict[str, str]:
    """Return the text fields of a form body; uploads are ignored."""
    if request.method != "POST":
        return {}
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def build_request_context(
    request: Request,
    host_session: HostSessionService,
    form: dict[str, str] | None = None,
) -> RequestContext:
    client = request.client
    return RequestContext.create(
        request.url.path,
        query=dict(request.query_params),
        form=form,
        headers=dict(request.headers),
        method=request.method,
        scheme=request.url.scheme,
        host=request.url.hostname or "localhost",
        port=request.url.port,
        remote_addr=client.host if client else None,
        session_id=host_session.session_id,
        session_name=host_session.session_name,
        host_authenticated=host_session.is_authenticated(),
        host_user_name=host_session.user_name,
    )
