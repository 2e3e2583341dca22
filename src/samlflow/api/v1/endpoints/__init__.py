"""API endpoint modules for version 1."""

from .saml import router as saml_router

__all__ = ["saml_router"]
