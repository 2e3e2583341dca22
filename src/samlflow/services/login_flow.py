"""Flow orchestrator.

``LoginFlow.do_auth`` runs once per unauthenticated request and decides
whether the browser is sent to an identity provider. It returns an outcome
the HTTP layer renders, or ``None`` when the request should continue to the
host application untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote, urlencode

from samlflow.core.context import RequestContext
from samlflow.core.errors import ConfigurationInvalid, LoginFlowError
from samlflow.core.settings import Settings, settings as default_settings
from samlflow.core.transaction import Phase
from samlflow.models.identity_provider import IdentityProvider
from samlflow.repositories.login_state_repo import LoginStateRepository
from samlflow.repositories.provider_repo import ProviderRepository
from samlflow.services.claims import resolve_principal
from samlflow.services.exclusions import is_excluded
from samlflow.services.host_session import HostSessionService
from samlflow.services.login_state import PROVIDER_ID_MAX, LoginState
from samlflow.services.saml_toolkit import Assertion, SamlToolkit

__all__ = [
    "LoginFlow",
    "LogoutChoice",
    "MetaRefresh",
    "NO_CACHE_HEADERS",
    "Outcome",
    "Redirect",
    "redacted_params",
]

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Pragma": "no-cache",
    "Cache-Control": "no-cache, must-revalidate",
}
NO_AUTO_PARAM = "noAUTO"
LOGIN_NAME_FIELD = "login_name"
PAYLOAD_FIELD = "SAMLResponse"


@dataclass(frozen=True)
class Redirect:
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetaRefresh:
    """Browser side redirect that drops the cross-site request chain."""

    url: str


@dataclass(frozen=True)
class LogoutChoice:
    return_url: str
    provider_logout_url: str
    provider_name: str = ""


Outcome = Redirect | MetaRefresh | LogoutChoice


def redacted_params(ctx: RequestContext) -> dict[str, dict[str, str]]:
    """Return the inbound parameters with the assertion payload reduced to its length."""
    form = {
        key: (f"<{len(value)} chars>" if key == PAYLOAD_FIELD else value)
        for key, value in ctx.form.items()
    }
    return {"query": dict(ctx.query), "form": form}


def _provider_number(value: str | None) -> int:
    """Return ``value`` as a provider id, or 0 if it is not a usable one."""
    if value is None:
        return 0
    value = value.strip()
    if not value.isdigit():
        return 0
    number = int(value)
    return number if 0 < number <= PROVIDER_ID_MAX else 0


def _safe_location(value: str | None) -> str | None:
    # Only local absolute paths are replayed after login.
    if not value or not value.startswith("/") or value.startswith("//"):
        return None
    return value


class LoginFlow:
    """Decides, per request, whether and where to start a SAML sign-in."""

    def __init__(
        self,
        store: LoginStateRepository,
        providers: ProviderRepository,
        toolkit: SamlToolkit,
        host_session: HostSessionService,
        config: Settings | None = None,
    ) -> None:
        self.store = store
        self.providers = providers
        self.toolkit = toolkit
        self.host_session = host_session
        self.config = config or default_settings

    # --- Entry point --------------------------------------------------------------
    def do_auth(self, ctx: RequestContext) -> Outcome | None:
        """Run the decision chain for one request; the first matching step wins."""
        excluded = is_excluded(ctx.path, self.config.excluded_paths)
        if excluded is not None:
            logger.debug("Path %s excluded by %s", ctx.path, excluded)
            return None

        if ctx.form.get("impersonate") == "1" and ctx.form.get("id"):
            logger.debug("Impersonation in progress, deferring to host authentication")
            return None

        state = LoginState.for_session(self.store, ctx)
        try:
            return self._decide(state, ctx)
        except LoginFlowError as err:
            err.with_context(trace=state.trace_summary(), params=redacted_params(ctx))
            raise

    def _decide(self, state: LoginState, ctx: RequestContext) -> Outcome | None:
        if ctx.path == self.config.logout_path:
            return self._logout(state)

        if ctx.path == self.config.slo_path:
            if ctx.query.get(self.config.slo_flag_param) == "1":
                return self._single_logout(state, ctx)
            return None

        if ctx.host_authenticated:
            return None

        if self._bypass_requested(ctx):
            state.add_trace("bypassUsed", True)
            if NO_AUTO_PARAM not in ctx.query:
                query = urlencode({self.config.bypass_param: self.config.bypass_value, NO_AUTO_PARAM: 1})
                return Redirect(f"{self.config.public_base_url}{ctx.path}?{query}", NO_CACHE_HEADERS)
            return None

        provider_id = self._select_provider(state, ctx)
        if not provider_id:
            return None

        state.add_trace("finalIdp", provider_id)
        state.set_provider_id(provider_id)
        return self.perform_sso(state, ctx)

    def _bypass_requested(self, ctx: RequestContext) -> bool:
        return (
            ctx.query.get(self.config.bypass_param) == self.config.bypass_value
            or NO_AUTO_PARAM in ctx.query
        )

    def _select_provider(self, state: LoginState, ctx: RequestContext) -> int:
        """Pick a provider; later sources override earlier ones."""
        selected = 0

        from_form = _provider_number(ctx.form.get(self.config.provider_param))
        if from_form:
            state.add_trace("loginViaSelector", from_form)
            selected = from_form

        for key, value in ctx.form.items():
            if LOGIN_NAME_FIELD not in key or not value:
                continue
            matched = self.providers.find_by_email_domain(value)
            if matched:
                state.add_trace("loginViaUserfield", value)
                selected = matched
                break

        from_query = _provider_number(ctx.query.get(self.config.provider_param))
        if from_query:
            state.add_trace("loginViaGetter", from_query)
            selected = from_query

        if not selected and state.phase in (Phase.INITIAL, Phase.LOGGED_OFF):
            enforced = self.providers.single_enforced_id()
            if enforced:
                state.add_trace("OnlyOneIdpEnforced", enforced)
                selected = enforced
            elif self.providers.is_enforced():
                # Enforcement without a single active provider falls back to host login.
                state.add_trace("enforcementIgnored", "no single active enforced provider")

        return selected

    def _active_provider(self, provider_id: int) -> IdentityProvider:
        provider = self.providers.get(provider_id)
        if provider is None or not provider.is_active:
            raise ConfigurationInvalid(
                f"Identity provider {provider_id} is missing or inactive"
            ).with_context(provider_id=provider_id)
        return provider

    # --- Sign-in ------------------------------------------------------------------
    def perform_sso(self, state: LoginState, ctx: RequestContext) -> Redirect:
        """Send the browser to the selected provider.

        The request id and the ``SAML_ACS`` phase are persisted before the
        redirect is returned.
        """
        provider = self._active_provider(state.provider_id)

        requested = _safe_location(ctx.query.get("redirect"))
        if requested:
            state.set_location(requested)

        url, request_id = self.toolkit.build_login(provider, ctx)
        state.set_request_id(request_id)
        state.set_phase(Phase.SAML_ACS)
        logger.info("Redirecting session to provider %s with request %s", provider.id, request_id)
        return Redirect(url, NO_CACHE_HEADERS)

    def complete_login(
        self, assertion: Assertion, state: LoginState, ctx: RequestContext
    ) -> MetaRefresh:
        """Start a host session for the asserted principal and leave via meta refresh."""
        principal = resolve_principal(assertion)

        self.host_session.destroy()
        self.host_session.start()
        self.host_session.init(principal)

        state.set_principal(principal.user_name, principal.user_id)
        state.set_session_binding(self.host_session.session_id, self.host_session.session_name)
        state.set_phase(Phase.HOST_AUTH)
        logger.info("Login state %s completed for %s", state.record.id, principal.user_name)

        base = self.config.public_base_url
        location = state.record.location
        if (
            self.config.process_redirects
            and _safe_location(location)
            and location != "/"
            and not location.startswith(self.config.route_prefix)
        ):
            return MetaRefresh(f"{base}/?redirect={quote(location, safe='/')}")
        return MetaRefresh(f"{base}/")

    # --- Logout -------------------------------------------------------------------
    def _logout(self, state: LoginState) -> Outcome:
        state.add_trace("logoutPressed", True)
        # Read before LOGGED_OFF, which sets the flag as a side effect.
        provider_authenticated = state.record.provider_authenticated
        state.set_phase(Phase.LOGGED_OFF)
        self.host_session.destroy()

        base = self.config.public_base_url
        provider = self.providers.get(state.provider_id) if state.provider_id else None
        if (
            provider is not None
            and provider.supports_single_logout
            and provider_authenticated
        ):
            query = urlencode({self.config.slo_flag_param: 1, self.config.provider_param: provider.id})
            return LogoutChoice(
                return_url=f"{base}/",
                provider_logout_url=f"{base}{self.config.slo_path}?{query}",
                provider_name=provider.name,
            )
        return Redirect(f"{base}/", NO_CACHE_HEADERS)

    def _single_logout(self, state: LoginState, ctx: RequestContext) -> Redirect:
        provider_id = _provider_number(ctx.query.get(self.config.provider_param)) or state.provider_id
        if not provider_id:
            state.add_trace("sloWithoutProvider", True)
            return Redirect(f"{self.config.public_base_url}/", NO_CACHE_HEADERS)

        provider = self._active_provider(provider_id)
        url = self.toolkit.build_logout(
            provider,
            ctx,
            name_id=state.record.user_name if state.record.provider_authenticated else None,
            return_to=f"{self.config.public_base_url}/",
        )
        state.add_trace("sloRequested", provider_id)
        return Redirect(url, NO_CACHE_HEADERS)
