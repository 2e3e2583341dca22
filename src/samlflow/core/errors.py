"""Error kinds raised by the login flow.

Every error is fatal to the request that raised it. Components below the
HTTP layer raise; the exception handler registered in ``samlflow.main``
logs the error and renders a terminal error page.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

GENERIC_LOGIN_MESSAGE = "We are unable to log you in. Please return to the login page and try again."


class LoginFlowError(RuntimeError):
    """Base exception for all terminal login flow failures."""

    kind: str = "LoginFlowError"
    status_code: int = 400
    # Administrator-facing errors may expose their detail when DEBUG is on.
    admin_facing: bool = False
    user_message: str = GENERIC_LOGIN_MESSAGE

    def __init__(self, detail: str, *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context: dict[str, Any] = dict(context or {})

    def with_context(self, **context: Any) -> LoginFlowError:
        """Attach additional diagnostic context and return self."""
        self.context.update(context)
        return self


class ConfigurationInvalid(LoginFlowError):
    """The selected identity provider is missing, inactive or misconfigured."""

    kind = "ConfigurationInvalid"
    status_code = 500
    admin_facing = True


class ReplayedAssertion(LoginFlowError):
    """An assertion id was presented that is already registered."""

    kind = "ReplayedAssertion"
    user_message = (
        "This login response has already been processed. For security reasons a "
        "processed response can not be used again. Please log in again."
    )


class UnexpectedPhase(LoginFlowError):
    """A phase transition or assertion arrived in the wrong transaction phase."""

    kind = "UnexpectedPhase"
    user_message = (
        "We did not expect a login response for this session. Please log in again."
    )


class UnsolicitedCorrelationMiss(LoginFlowError):
    """A callback carried no request id known to the store."""

    kind = "UnsolicitedCorrelationMiss"


class ToolkitValidationFailure(LoginFlowError):
    """The SAML toolkit rejected the assertion or could not process it."""

    kind = "ToolkitValidationFailure"


class PersistenceFailure(LoginFlowError):
    """The correlation store could not read or write a record."""

    kind = "PersistenceFailure"
    status_code = 500


class IncompleteCallback(LoginFlowError):
    """The assertion consumer was called without payload or provider id."""

    kind = "IncompleteCallback"
