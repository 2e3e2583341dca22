"""Host session collaborator.

The login flow never touches cookies itself. It talks to a
``HostSessionService``; the default ``JwtHostSession`` keeps an opaque
session id in one cookie and a signed token binding the principal to that
session id in another.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Protocol

from fastapi import Response
from jose import JWTError, jwt

from samlflow.core.settings import Settings, settings as default_settings
from samlflow.services.claims import Principal

__all__ = ["HostSessionService", "JwtHostSession"]

logger = logging.getLogger(__name__)


class HostSessionService(Protocol):
    """Operations the login flow needs from the host's session layer."""

    @property
    def session_id(self) -> str: ...

    @property
    def session_name(self) -> str: ...

    @property
    def user_name(self) -> str | None: ...

    def start(self) -> None: ...

    def destroy(self) -> None: ...

    def init(self, principal: Principal) -> None: ...

    def is_authenticated(self) -> bool: ...


class JwtHostSession:
    """Cookie backed host session with a python-jose signed auth token."""

    def __init__(self, cookies: Mapping[str, str], config: Settings | None = None) -> None:
        self.config = config or default_settings
        self._pending: dict[str, str | None] = {}
        self._session_id = cookies.get(self.config.session_cookie_name) or ""
        self._claims = self._decode(cookies.get(self.config.auth_cookie_name))
        if not self._session_id:
            self._rotate()

    def _decode(self, token: str | None) -> dict[str, object] | None:
        if not token:
            return None
        try:
            return jwt.decode(token, self.config.secret_key, algorithms=[self.config.jwt_algorithm])
        except JWTError as err:
            logger.debug("Discarding invalid host session token: %s", err)
            return None

    def _rotate(self) -> None:
        self._session_id = secrets.token_urlsafe(32)
        self._pending[self.config.session_cookie_name] = self._session_id

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def session_name(self) -> str:
        return self.config.session_cookie_name

    @property
    def user_name(self) -> str | None:
        if not self.is_authenticated():
            return None
        return str(self._claims["sub"])  # type: ignore[index]

    def is_authenticated(self) -> bool:
        """Return True when the auth token is valid for the current session id."""
        if not self._claims or not self._claims.get("sub"):
            return False
        return self._claims.get("sid") == self._session_id

    def start(self) -> None:
        """Begin a fresh session under a new identifier."""
        self._rotate()

    def destroy(self) -> None:
        self._claims = None
        self._session_id = ""
        self._pending[self.config.auth_cookie_name] = None
        self._pending[self.config.session_cookie_name] = None

    def init(self, principal: Principal) -> None:
        """Authenticate the current session as ``principal``."""
        if not self._session_id:
            self._rotate()
        expire = datetime.now(UTC) + timedelta(minutes=self.config.access_token_expire_minutes)
        claims: dict[str, object] = {"sub": principal.user_name, "sid": self._session_id}
        if principal.email:
            claims["email"] = principal.email
        if principal.display_name:
            claims["name"] = principal.display_name
        token = jwt.encode(
            {**claims, "exp": expire},
            self.config.secret_key,
            algorithm=self.config.jwt_algorithm,
        )
        self._claims = claims
        self._pending[self.config.auth_cookie_name] = token

    def apply(self, response: Response) -> None:
        """Write pending cookie changes onto ``response``."""
        for name, value in self._pending.items():
            if value is None:
                response.delete_cookie(name, path="/")
            else:
                response.set_cookie(
                    name,
                    value,
                    path="/",
                    httponly=True,
                    secure=self.config.cookie_secure,
                    samesite="lax",
                )
        self._pending.clear()
