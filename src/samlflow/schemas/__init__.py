"""Pydantic schemas for the samlflow API."""

from .login import LoginButton, LoginScreen
from .report import TransactionReport

__all__ = ["LoginButton", "LoginScreen", "TransactionReport"]
