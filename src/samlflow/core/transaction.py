"""Plain data entity describing one login transaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

from samlflow.db.time import utcnow


class Phase(IntEnum):
    """Phases a login transaction moves through.

    The numeric values are persisted and must not be renumbered.
    """

    INITIAL = 1  # No authentication attempted yet
    SAML_ACS = 2  # Redirected to the provider, callback expected at the ACS
    SAML_AUTH = 3  # Provider assertion accepted
    HOST_AUTH = 4  # Host application completed its own login
    FILE_EXCLUDED = 5  # Request path exempt from tracking
    FORCED_LOGOFF = 6  # Session invalidated by an external trigger
    TIMED_OUT = 7  # Idle timeout reached
    LOGGED_OFF = 8  # User initiated sign-out completed


PHASE_MIN = min(Phase)
PHASE_MAX = max(Phase)


@dataclass
class TraceEntry:
    """A single labelled diagnostic entry."""

    label: str
    detail: str
    at: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "detail": self.detail, "at": self.at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TraceEntry:
        return cls(
            label=str(data.get("label", "")),
            detail=str(data.get("detail", "")),
            at=str(data.get("at", "")),
        )


@dataclass
class LoginTransaction:
    """Correlation record linking a login initiation to its provider callback.

    ``from_store`` tells the repository whether to insert or update; it is
    never derived from ``id``.
    """

    session_id: str
    session_name: str
    user_name: str
    id: int | None = None
    user_id: int = 0
    provider_id: int = 0
    request_id: str | None = None
    response_id: str | None = None
    unsolicited: bool = False
    host_authenticated: bool = False
    provider_authenticated: bool = False
    phase: Phase = Phase.INITIAL
    trace: list[TraceEntry] = field(default_factory=list)
    location: str = ""
    excluded_path: str | None = None
    enforce_logoff: bool = False
    login_time: datetime = field(default_factory=utcnow)
    last_activity: datetime = field(default_factory=utcnow)
    from_store: bool = False

    def trace_labels(self) -> list[str]:
        return [entry.label for entry in self.trace]

    def trace_detail(self, label: str) -> str | None:
        """Return the detail recorded for ``label`` if present."""
        for entry in self.trace:
            if entry.label == label:
                return entry.detail
        return None
