"""Version 1 API endpoints."""

from .endpoints import saml_router

__all__ = ["saml_router"]
