"""SAML login-transaction correlation service."""

__version__ = "0.1.0"
