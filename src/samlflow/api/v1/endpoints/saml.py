"""SAML login, logout, assertion consumer and metadata endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import RedirectResponse

from samlflow.api.context import build_request_context, read_form
from samlflow.api.responses import metadata_error, render_outcome
from samlflow.api.v1.dependencies import (
    AssertionConsumerDep,
    HostSessionDep,
    LoginFlowDep,
    ProviderRepoDep,
    ToolkitDep,
)
from samlflow.core.errors import ConfigurationInvalid
from samlflow.core.settings import settings
from samlflow.schemas.login import LoginButton, LoginScreen

router = APIRouter(prefix=settings.route_prefix, tags=["saml"])


def _home() -> RedirectResponse:
    return RedirectResponse(f"{settings.public_base_url}/", status_code=307)


@router.api_route("/login", methods=["GET", "POST"], response_model=None)
async def login(
    request: Request,
    response: Response,
    flow: LoginFlowDep,
    providers: ProviderRepoDep,
    host_session: HostSessionDep,
) -> Response | LoginScreen:
    """Run the login flow for the login page.

    Returns a redirect when a provider was selected, otherwise the data the
    host login page needs to render the provider selection.
    """
    ctx = build_request_context(request, host_session, await read_form(request))
    outcome = flow.do_auth(ctx)
    if outcome is not None:
        return render_outcome(outcome, host_session)

    host_session.apply(response)
    bypass = ctx.query.get(settings.bypass_param) == settings.bypass_value
    return LoginScreen(
        buttons=[
            LoginButton(
                provider_id=provider.id,
                name=provider.name[: settings.login_button_name_length],
                icon=provider.conf_icon,
            )
            for provider in providers.login_buttons()
        ],
        enforced=providers.is_enforced(),
        hide_login_fields=providers.hide_login_fields() and not bypass,
        selector_field=settings.provider_param,
        bypass_active=bypass,
    )


@router.get("/logout", response_model=None)
async def logout(request: Request, flow: LoginFlowDep, host_session: HostSessionDep) -> Response:
    """End the local session, offering provider logout where supported."""
    outcome = flow.do_auth(build_request_context(request, host_session))
    if outcome is None:
        return _home()
    return render_outcome(outcome, host_session)


@router.get("/slo", response_model=None)
async def single_logout(
    request: Request, flow: LoginFlowDep, host_session: HostSessionDep
) -> Response:
    """Redirect to the provider logout service when the logout flag is set."""
    outcome = flow.do_auth(build_request_context(request, host_session))
    if outcome is None:
        response = _home()
        host_session.apply(response)
        return response
    return render_outcome(outcome, host_session)


async def _consume(
    request: Request,
    provider_id: str | None,
    consumer: AssertionConsumerDep,
    host_session: HostSessionDep,
) -> Response:
    form = await read_form(request)
    ctx = build_request_context(request, host_session, form)
    outcome = consumer.consume(ctx, form.get("SAMLResponse"), provider_id)
    return render_outcome(outcome, host_session)


@router.post("/acs/{provider_id}", response_model=None)
async def assertion_consumer(
    provider_id: str,
    request: Request,
    consumer: AssertionConsumerDep,
    host_session: HostSessionDep,
) -> Response:
    """Consume a provider response posted to the per-provider ACS URL."""
    return await _consume(request, provider_id, consumer, host_session)


@router.post("/acs", response_model=None)
async def assertion_consumer_query(
    request: Request,
    consumer: AssertionConsumerDep,
    host_session: HostSessionDep,
) -> Response:
    """Consume a provider response that names its provider in ``idpId``."""
    return await _consume(request, request.query_params.get("idpId"), consumer, host_session)


@router.get("/meta/{provider_id}", response_model=None)
async def metadata(provider_id: int, providers: ProviderRepoDep, toolkit: ToolkitDep) -> Response:
    """Return service provider metadata when the provider exposes it."""
    provider = providers.get(provider_id)
    if provider is None:
        return metadata_error(f"Provider {provider_id} does not exist")
    if not provider.debug:
        return metadata_error("Metadata is only exposed while the provider is in debug mode")
    try:
        xml = toolkit.sp_metadata(provider)
    except ConfigurationInvalid as err:
        return metadata_error(err.detail)
    return Response(xml, media_type="application/xml")
