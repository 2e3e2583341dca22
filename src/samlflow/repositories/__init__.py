"""Data access layer."""

from .login_state_repo import LoginStateRepository
from .provider_repo import ProviderRepository

__all__ = ["LoginStateRepository", "ProviderRepository"]
