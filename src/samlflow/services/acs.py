"""Assertion consumer.

Handles the provider callback: correlates it with the login state that
issued the request, enforces the replay and phase guards, delegates
validation to the toolkit and hands the result to the login flow.
"""

from __future__ import annotations

import logging

from samlflow.core.context import RequestContext
from samlflow.core.errors import (
    ConfigurationInvalid,
    IncompleteCallback,
    LoginFlowError,
    ReplayedAssertion,
    UnexpectedPhase,
    UnsolicitedCorrelationMiss,
)
from samlflow.core.settings import Settings, settings as default_settings
from samlflow.core.transaction import Phase
from samlflow.repositories.login_state_repo import LoginStateRepository
from samlflow.repositories.provider_repo import ProviderRepository
from samlflow.services.login_flow import LoginFlow, MetaRefresh, redacted_params
from samlflow.services.login_state import LoginState
from samlflow.services.saml_toolkit import SamlToolkit

__all__ = ["AssertionConsumer"]

logger = logging.getLogger(__name__)


class AssertionConsumer:
    """Processes one provider callback per call to :meth:`consume`."""

    def __init__(
        self,
        store: LoginStateRepository,
        providers: ProviderRepository,
        toolkit: SamlToolkit,
        flow: LoginFlow,
        config: Settings | None = None,
    ) -> None:
        self.store = store
        self.providers = providers
        self.toolkit = toolkit
        self.flow = flow
        self.config = config or default_settings

    def consume(
        self, ctx: RequestContext, payload: str | None, provider_id_raw: str | int | None
    ) -> MetaRefresh:
        """Validate the callback and complete the login.

        Raises:
            LoginFlowError: Any terminal condition. The error carries the
                login state trace and the redacted request parameters.
        """
        state: LoginState | None = None
        try:
            provider_id = self._provider_id(payload, provider_id_raw)
            provider = self.providers.get(provider_id)
            if provider is None or not provider.is_active:
                raise ConfigurationInvalid(
                    f"Callback for unknown or inactive provider {provider_id}"
                ).with_context(provider_id=provider_id)

            assertion = self.toolkit.parse_response(provider, ctx, payload or "")
            state = LoginState.for_response(self.store, assertion.in_response_to, ctx)

            if state.unsolicited and not self.config.allow_unsolicited:
                raise UnsolicitedCorrelationMiss(
                    f"No login state issued request {assertion.in_response_to!r}"
                )

            if not state.unsolicited and state.provider_id and state.provider_id != provider_id:
                raise UnexpectedPhase(
                    f"Request {state.request_id} was issued for provider {state.provider_id}, "
                    f"answered at the endpoint of provider {provider_id}"
                ).with_context(issued_for=state.provider_id, received_at=provider_id)

            if state.is_replayed(assertion.id):
                raise ReplayedAssertion(f"Response {assertion.id} was already consumed")
            if state.response_id:
                # The request was already answered by a different response.
                raise UnexpectedPhase(
                    f"Request {state.request_id} already consumed response {state.response_id}"
                )
            # Persists the session rebinding together with the anti-replay key.
            state.set_response_id(assertion.id)

            if state.phase != Phase.SAML_ACS:
                raise UnexpectedPhase(
                    f"Callback received while login state is in {state.phase.name}"
                )
            state.set_phase(Phase.SAML_AUTH)

            request_id = None if state.unsolicited else state.request_id
            self.toolkit.validate(provider, ctx, assertion, request_id)
            state.add_trace("assertionValidated", assertion.id)
            if state.unsolicited:
                state.add_trace("unsolicitedResponse", provider_id)
            # Unsolicited records learn their provider from the callback.
            if state.provider_id != provider_id:
                state.set_provider_id(provider_id)

            return self.flow.complete_login(assertion, state, ctx)
        except LoginFlowError as err:
            err.with_context(
                trace=state.trace_summary() if state is not None else [],
                params=redacted_params(ctx),
            )
            raise

    @staticmethod
    def _provider_id(payload: str | None, provider_id_raw: str | int | None) -> int:
        if not payload:
            raise IncompleteCallback("Callback carries no SAMLResponse payload")
        raw = str(provider_id_raw).strip() if provider_id_raw is not None else ""
        if not raw.isdigit() or int(raw) == 0:
            raise IncompleteCallback(f"Callback provider id {raw!r} is missing or not numeric")
        return int(raw)
