"""Schemas describing the provider selection offered on the login screen."""
from __future__ import annotations

from pydantic import BaseModel, Field


class LoginButton(BaseModel):
    """One provider offered as a sign-in button."""

    provider_id: int
    name: str = Field(..., description="Provider name, truncated for display.")
    icon: str = ""


class LoginScreen(BaseModel):
    """Data the host login page needs to render the provider selection."""

    buttons: list[LoginButton]
    enforced: bool
    hide_login_fields: bool = Field(
        ..., description="True when domain based login replaces the password form."
    )
    selector_field: str
    bypass_active: bool = False
