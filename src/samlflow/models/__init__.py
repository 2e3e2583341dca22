"""SQLAlchemy models for the samlflow service."""

from .identity_provider import IdentityProvider
from .login_state import LoginStateRow

__all__ = [
    "IdentityProvider",
    "LoginStateRow",
]
