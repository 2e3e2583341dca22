"""HTTP middleware running the login flow in front of host routes."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from samlflow.api.context import build_request_context
from samlflow.api.responses import error_page, render_outcome
from samlflow.api.v1.dependencies import get_saml_toolkit
from samlflow.core.errors import LoginFlowError
from samlflow.core.settings import settings
from samlflow.db.session import get_db
from samlflow.repositories import LoginStateRepository, ProviderRepository
from samlflow.services.exclusions import is_excluded
from samlflow.services.host_session import JwtHostSession
from samlflow.services.login_flow import LoginFlow

logger = logging.getLogger(__name__)


def _resolve(request: Request, dependency: Callable):
    # Honour dependency overrides so tests can swap the database and toolkit.
    return request.app.dependency_overrides.get(dependency, dependency)


async def enforce_login(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Send unauthenticated visitors of host routes through the login flow."""
    path = request.url.path
    if (
        not settings.enforce_on_all_requests
        or path.startswith(settings.route_prefix + "/")
        or is_excluded(path, settings.excluded_paths)
    ):
        return await call_next(request)

    host_session = JwtHostSession(request.cookies)
    if host_session.is_authenticated():
        return await call_next(request)

    ctx = build_request_context(request, host_session)
    db_gen = _resolve(request, get_db)()
    db = next(db_gen)
    try:
        flow = LoginFlow(
            LoginStateRepository(db),
            ProviderRepository(db),
            _resolve(request, get_saml_toolkit)(),
            host_session,
        )
        outcome = flow.do_auth(ctx)
    except LoginFlowError as err:
        return error_page(err)
    finally:
        db_gen.close()

    if outcome is not None:
        return render_outcome(outcome, host_session)

    response = await call_next(request)
    host_session.apply(response)
    return response
