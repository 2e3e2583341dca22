"""Login flow services."""

from .acs import AssertionConsumer
from .login_flow import LoginFlow, LogoutChoice, MetaRefresh, Redirect
from .login_state import LoginState
from .saml_toolkit import Assertion, SamlToolkit

__all__ = [
    "Assertion",
    "AssertionConsumer",
    "LoginFlow",
    "LoginState",
    "LogoutChoice",
    "MetaRefresh",
    "Redirect",
    "SamlToolkit",
]
