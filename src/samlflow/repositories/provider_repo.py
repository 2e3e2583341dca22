"""Read-only access to identity provider configuration."""

from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from samlflow.models.identity_provider import IdentityProvider

__all__ = ["ProviderRepository"]

_EMAIL_RE = re.compile(r"^[^@\s]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})$")
_PLACEHOLDER_DOMAINS = {"youruserdomain.tld"}


class ProviderRepository:
    """Thin wrapper around database access for provider configuration."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def _visible(self):
        return select(IdentityProvider).where(IdentityProvider.is_deleted.is_(False))

    def get(self, provider_id: int) -> IdentityProvider | None:
        """Return a provider by identifier, ignoring deleted rows."""
        return (
            self.session.execute(self._visible().where(IdentityProvider.id == provider_id))
            .scalars()
            .first()
        )

    def list_active(self) -> list[IdentityProvider]:
        result = self.session.execute(
            self._visible()
            .where(IdentityProvider.is_active.is_(True))
            .order_by(IdentityProvider.id)
        )
        return list(result.scalars())

    def find_by_email_domain(self, login_name: str) -> int:
        """Return the id of the active provider serving the login name's domain.

        Returns 0 when the login name is not an e-mail address or no provider
        lists its domain.
        """
        match = _EMAIL_RE.match(login_name.strip())
        if match is None:
            return 0
        user_domain = match.group(1).lower()
        for provider in self.list_active():
            if user_domain in provider.domains:
                return provider.id
        return 0

    def single_enforced_id(self) -> int:
        """Return the id of the only active provider if it enforces SSO, else 0."""
        active = self.list_active()
        if len(active) == 1 and active[0].enforce_sso:
            return active[0].id
        return 0

    def is_enforced(self) -> bool:
        """Return True if any configured provider enforces SSO."""
        stmt = self._visible().where(IdentityProvider.enforce_sso.is_(True)).limit(1)
        return self.session.execute(stmt).scalars().first() is not None

    def login_buttons(self) -> list[IdentityProvider]:
        """Return active providers offered as buttons (those without a domain list)."""
        return [provider for provider in self.list_active() if not provider.domains]

    def hide_login_fields(self) -> bool:
        """Return True if domain based login is configured for any provider."""
        for provider in self.session.execute(self._visible()).scalars():
            if any(domain not in _PLACEHOLDER_DOMAINS for domain in provider.domains):
                return True
        return False
