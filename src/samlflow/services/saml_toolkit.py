"""Adapter around the python3-saml toolkit.

Only this module imports ``onelogin.saml2``. Everything above it works with
the toolkit-neutral :class:`Assertion` and receives toolkit failures as
``ToolkitValidationFailure`` or ``ConfigurationInvalid``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from onelogin.saml2.auth import OneLogin_Saml2_Auth
from onelogin.saml2.errors import OneLogin_Saml2_Error, OneLogin_Saml2_ValidationError
from onelogin.saml2.response import OneLogin_Saml2_Response
from onelogin.saml2.settings import OneLogin_Saml2_Settings

from samlflow.core.context import RequestContext
from samlflow.core.errors import ConfigurationInvalid, ToolkitValidationFailure
from samlflow.core.settings import Settings, settings as default_settings
from samlflow.models.identity_provider import IdentityProvider

__all__ = ["Assertion", "SamlToolkit"]

logger = logging.getLogger(__name__)

BINDING_POST = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
BINDING_REDIRECT = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"


@dataclass
class Assertion:
    """Toolkit-neutral view of a provider response.

    ``id`` and ``in_response_to`` are known after parsing; the identity
    fields are filled in by :meth:`SamlToolkit.validate`.
    """

    id: str
    in_response_to: str | None = None
    name_id: str | None = None
    session_index: str | None = None
    attributes: dict[str, list[str]] = field(default_factory=dict)
    raw: Any = None


def _authn_context(value: str | None) -> list[str] | bool:
    if not value:
        return False
    return [item.strip() for item in value.split(",") if item.strip()]


class SamlToolkit:
    """Builds python3-saml objects from provider rows and request contexts."""

    def __init__(self, config: Settings | None = None) -> None:
        self.config = config or default_settings

    # --- URLs ---------------------------------------------------------------------
    def sp_entity_id(self, provider_id: int) -> str:
        return f"{self.config.public_base_url}{self.config.route_prefix}/meta/{provider_id}"

    def acs_url(self, provider_id: int) -> str:
        return f"{self.config.public_base_url}{self.config.route_prefix}/acs/{provider_id}"

    def slo_url(self) -> str:
        return f"{self.config.public_base_url}{self.config.slo_path}"

    # --- Settings -----------------------------------------------------------------
    def build_settings(self, provider: IdentityProvider) -> dict[str, Any]:
        """Return the python3-saml settings dict for ``provider``."""
        data: dict[str, Any] = {
            "strict": provider.strict,
            "debug": provider.debug,
            "sp": {
                "entityId": self.sp_entity_id(provider.id),
                "assertionConsumerService": {
                    "url": self.acs_url(provider.id),
                    "binding": BINDING_POST,
                },
                "singleLogoutService": {
                    "url": self.slo_url(),
                    "binding": BINDING_REDIRECT,
                },
                "NameIDFormat": provider.sp_nameid_format,
                "x509cert": provider.sp_certificate or "",
                "privateKey": provider.sp_private_key or "",
            },
            "idp": {
                "entityId": provider.idp_entity_id,
                "singleSignOnService": {
                    "url": provider.idp_single_sign_on_service,
                    "binding": BINDING_REDIRECT,
                },
                "x509cert": provider.idp_certificate or "",
            },
            "security": {
                "nameIdEncrypted": provider.security_nameidencrypted,
                "authnRequestsSigned": provider.security_authnrequestssigned,
                "logoutRequestSigned": provider.security_logoutrequestsigned,
                "logoutResponseSigned": provider.security_logoutresponsesigned,
                "requestedAuthnContext": _authn_context(provider.requested_authn_context),
                "requestedAuthnContextComparison": provider.requested_authn_context_comparison,
                "wantXMLValidation": provider.validate_xml,
                "relaxDestinationValidation": not provider.validate_destination,
            },
        }
        if provider.idp_single_logout_service:
            data["idp"]["singleLogoutService"] = {
                "url": provider.idp_single_logout_service,
                "binding": BINDING_REDIRECT,
            }
        return data

    def _settings(self, provider: IdentityProvider, sp_validation_only: bool = False):
        try:
            return OneLogin_Saml2_Settings(
                settings=self.build_settings(provider),
                sp_validation_only=sp_validation_only,
            )
        except (OneLogin_Saml2_Error, ValueError) as err:
            raise ConfigurationInvalid(
                f"Provider {provider.id} has an invalid SAML configuration: {err}"
            ).with_context(provider_id=provider.id) from err

    def prepare_request(self, ctx: RequestContext, proxied: bool = False) -> dict[str, Any]:
        """Convert a request context into the dict python3-saml expects.

        Behind a proxy the forwarded headers describe the URL the provider
        posted to, which destination validation compares against.
        """
        scheme = ctx.scheme
        host = ctx.host
        port = ctx.port
        if proxied:
            scheme = ctx.header("x-forwarded-proto") or scheme
            host = ctx.header("x-forwarded-host") or host
            forwarded_port = ctx.header("x-forwarded-port")
            if forwarded_port and forwarded_port.isdigit():
                port = int(forwarded_port)
            elif ctx.header("x-forwarded-proto"):
                port = None
        if port is None:
            port = 443 if scheme == "https" else 80
        return {
            "https": "on" if scheme == "https" else "off",
            "http_host": host,
            "server_port": str(port),
            "script_name": ctx.path,
            "get_data": dict(ctx.query),
            "post_data": dict(ctx.form),
        }

    def _request_data(self, provider: IdentityProvider, ctx: RequestContext) -> dict[str, Any]:
        data = self.prepare_request(ctx, proxied=provider.proxied)
        if provider.lowercase_url_encoding:
            data["lowercase_urlencoding"] = True
        return data

    # --- Sign-in ------------------------------------------------------------------
    def build_login(
        self, provider: IdentityProvider, ctx: RequestContext, return_to: str | None = None
    ) -> tuple[str, str]:
        """Return the provider sign-in URL and the id of the request it carries."""
        auth = OneLogin_Saml2_Auth(
            self._request_data(provider, ctx), old_settings=self._settings(provider)
        )
        try:
            url = auth.login(return_to=return_to)
        except OneLogin_Saml2_Error as err:
            raise ConfigurationInvalid(
                f"Could not build a sign-in request for provider {provider.id}: {err}"
            ).with_context(provider_id=provider.id) from err
        return url, auth.get_last_request_id()

    def parse_response(
        self, provider: IdentityProvider, ctx: RequestContext, payload: str
    ) -> Assertion:
        """Decode ``payload`` without validating it."""
        saml_settings = self._settings(provider)
        try:
            response = OneLogin_Saml2_Response(saml_settings, payload)
            response_id = response.get_id()
        except Exception as err:  # lxml, base64 and the toolkit raise unrelated types
            raise ToolkitValidationFailure(f"Could not parse the provider response: {err}") from err

        if not response_id:
            raise ToolkitValidationFailure("Provider response carries no ID attribute")
        return Assertion(
            id=response_id,
            in_response_to=response.document.get("InResponseTo") or None,
            raw=response,
        )

    def validate(
        self,
        provider: IdentityProvider,
        ctx: RequestContext,
        assertion: Assertion,
        request_id: str | None,
    ) -> Assertion:
        """Run signature and schema validation and fill in the identity fields."""
        response = assertion.raw
        request_data = self._request_data(provider, ctx)
        try:
            response.is_valid(request_data, request_id, raise_exceptions=True)
            assertion.name_id = response.get_nameid()
            assertion.session_index = response.get_session_index()
            assertion.attributes = response.get_attributes()
        except (OneLogin_Saml2_Error, OneLogin_Saml2_ValidationError) as err:
            logger.debug("Toolkit error for response %s: %s", assertion.id, response.get_error())
            raise ToolkitValidationFailure(
                f"Provider response failed validation: {err}"
            ).with_context(response_id=assertion.id) from err
        return assertion

    # --- Logout and metadata ------------------------------------------------------
    def build_logout(
        self,
        provider: IdentityProvider,
        ctx: RequestContext,
        name_id: str | None = None,
        session_index: str | None = None,
        return_to: str | None = None,
    ) -> str:
        if not provider.supports_single_logout:
            raise ConfigurationInvalid(
                f"Provider {provider.id} has no single logout service configured"
            ).with_context(provider_id=provider.id)
        auth = OneLogin_Saml2_Auth(
            self._request_data(provider, ctx), old_settings=self._settings(provider)
        )
        try:
            return auth.logout(return_to=return_to, name_id=name_id, session_index=session_index)
        except OneLogin_Saml2_Error as err:
            raise ToolkitValidationFailure(f"Could not build a logout request: {err}") from err

    def sp_metadata(self, provider: IdentityProvider) -> str:
        saml_settings = self._settings(provider, sp_validation_only=True)
        metadata = saml_settings.get_sp_metadata()
        errors = saml_settings.validate_metadata(metadata)
        if errors:
            raise ConfigurationInvalid(
                f"Generated metadata is invalid: {', '.join(errors)}"
            ).with_context(provider_id=provider.id)
        return metadata.decode("utf-8") if isinstance(metadata, bytes) else metadata
