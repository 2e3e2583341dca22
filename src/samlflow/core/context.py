"""Immutable view of one inbound request.

Components never read the framework request or ambient session state
directly; the HTTP layer builds a ``RequestContext`` and passes it down.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


def _frozen(data: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class RequestContext:
    """Request data the login flow is allowed to see."""

    path: str
    method: str = "GET"
    scheme: str = "http"
    host: str = "localhost"
    port: int | None = None
    query: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    form: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    headers: Mapping[str, str] = field(default_factory=lambda: _frozen(None))
    remote_addr: str | None = None
    session_id: str = ""
    session_name: str = ""
    host_authenticated: bool = False
    host_user_name: str | None = None

    @classmethod
    def create(
        cls,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        form: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> RequestContext:
        """Build a context, freezing the supplied mappings."""
        lowered = {key.lower(): value for key, value in (headers or {}).items()}
        return cls(
            path=path,
            query=_frozen(query),
            form=_frozen(form),
            headers=_frozen(lowered),
            **kwargs,
        )

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def forwarded_for(self) -> str | None:
        value = self.header("x-forwarded-for")
        if not value:
            return None
        return value.split(",")[0].strip() or None

    @property
    def client_label(self) -> str:
        """Return the caller's network address, used as a provisional user name."""
        return self.forwarded_for or self.remote_addr or "CLI"
