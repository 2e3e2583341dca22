"""Login transaction state machine.

``LoginState`` wraps one ``LoginTransaction`` together with the store it
came from. Every setter validates its argument, applies the change and
persists the record before returning; there is no deferred commit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from samlflow.core.context import RequestContext
from samlflow.core.errors import LoginFlowError, ReplayedAssertion, UnexpectedPhase
from samlflow.core.transaction import PHASE_MAX, PHASE_MIN, LoginTransaction, Phase, TraceEntry
from samlflow.db.time import utcnow
from samlflow.repositories.login_state_repo import LoginStateRepository

__all__ = ["LoginState", "PROVIDER_ID_MAX", "REQUIRED_PREDECESSOR"]

logger = logging.getLogger(__name__)

PROVIDER_ID_MAX = 998

# Phases that may only be entered from one specific phase.
REQUIRED_PREDECESSOR: dict[Phase, Phase] = {
    Phase.SAML_AUTH: Phase.SAML_ACS,
    Phase.HOST_AUTH: Phase.SAML_AUTH,
}


class LoginState:
    """State machine operating on a single login transaction."""

    def __init__(self, store: LoginStateRepository, record: LoginTransaction) -> None:
        self.store = store
        self.record = record

    # --- Loading ----------------------------------------------------------------
    @classmethod
    def for_session(cls, store: LoginStateRepository, ctx: RequestContext) -> LoginState:
        """Load (or create) and persist the record for the caller's session."""
        state = cls(store, store.load_by_session(ctx))
        store.save(state.record)
        return state

    @classmethod
    def for_response(
        cls, store: LoginStateRepository, in_response_to: str | None, ctx: RequestContext
    ) -> LoginState:
        """Load the record correlated with a provider callback.

        The record is not persisted here; the session rebinding is written
        together with the response id once the replay check has passed.
        """
        return cls(store, store.load_by_request_id(in_response_to, ctx))

    # --- Read accessors ---------------------------------------------------------
    @property
    def phase(self) -> Phase:
        return self.record.phase

    @property
    def provider_id(self) -> int:
        return self.record.provider_id

    @property
    def request_id(self) -> str | None:
        return self.record.request_id

    @property
    def response_id(self) -> str | None:
        return self.record.response_id

    @property
    def unsolicited(self) -> bool:
        return self.record.unsolicited

    @property
    def is_loaded_from_store(self) -> bool:
        return self.record.from_store

    # --- Mutations ----------------------------------------------------------------
    @contextmanager
    def _mutation(
        self,
        *fields: str,
        expect: dict[str, Any] | None = None,
        conflict: LoginFlowError | None = None,
    ) -> Iterator[None]:
        """Persist changes made inside the block, restoring the fields on failure.

        With ``expect`` the write only happens while the stored row still
        holds those values; otherwise ``conflict`` is raised.
        """
        previous: dict[str, Any] = {name: getattr(self.record, name) for name in fields}
        try:
            yield
            self.record.last_activity = utcnow()
            if expect is None:
                self.store.save(self.record)
            elif not self.store.save_if_unchanged(self.record, expect):
                raise conflict or UnexpectedPhase("Login state changed concurrently")
        except Exception:
            for name, value in previous.items():
                setattr(self.record, name, value)
            raise

    def set_phase(self, new_phase: int | Phase) -> None:
        """Move the transaction to ``new_phase`` and persist it.

        Raises:
            ValueError: If ``new_phase`` lies outside the defined phases.
            UnexpectedPhase: If ``new_phase`` requires a predecessor the
                record is not in.
        """
        value = int(new_phase)
        if not PHASE_MIN <= value <= PHASE_MAX:
            raise ValueError(f"Phase {value} is outside the range {PHASE_MIN}-{PHASE_MAX}")
        target = Phase(value)

        required = REQUIRED_PREDECESSOR.get(target)
        if required is not None and self.record.phase != required:
            raise UnexpectedPhase(
                f"Transition to {target.name} requires {required.name}, "
                f"record is in {self.record.phase.name}"
            ).with_context(record_id=self.record.id)

        guard: dict[str, Any] | None = None
        conflict: LoginFlowError | None = None
        if required is not None:
            # The stored row must still be in the predecessor phase.
            guard = {"phase": int(required)}
            conflict = UnexpectedPhase(
                f"Login state {self.record.id} left {required.name} "
                f"before the transition to {target.name}"
            ).with_context(record_id=self.record.id)

        with self._mutation(
            "phase", "provider_authenticated", "host_authenticated",
            expect=guard, conflict=conflict,
        ):
            self.record.phase = target
            # Reaching the provider implies the provider vouches for the session.
            if target >= Phase.SAML_ACS:
                self.record.provider_authenticated = True
            if target == Phase.HOST_AUTH:
                self.record.host_authenticated = True
        logger.debug("Login state %s moved to %s", self.record.id, target.name)

    def add_trace(self, label: str, detail: Any = True) -> None:
        """Record a diagnostic entry; a repeated label overwrites the earlier entry."""
        entry = TraceEntry(label=label, detail=str(detail), at=utcnow().isoformat())
        trace = list(self.record.trace)
        for index, existing in enumerate(trace):
            if existing.label == label:
                trace[index] = entry
                break
        else:
            trace.append(entry)

        with self._mutation("trace"):
            self.record.trace = trace

    def set_request_id(self, request_id: str) -> None:
        if not request_id:
            raise ValueError("Request id must not be empty")
        with self._mutation("request_id"):
            self.record.request_id = request_id

    def set_response_id(self, response_id: str) -> None:
        if not response_id:
            raise ValueError("Response id must not be empty")
        conflict = ReplayedAssertion(
            f"Login state {self.record.id} was answered concurrently"
        ).with_context(response_id=response_id)
        # Registers the response only on a row that has not been answered yet.
        with self._mutation("response_id", expect={"response_id": None}, conflict=conflict):
            self.record.response_id = response_id

    def set_provider_id(self, provider_id: int) -> None:
        if not 0 < provider_id <= PROVIDER_ID_MAX:
            raise ValueError(f"Provider id {provider_id} is outside 1-{PROVIDER_ID_MAX}")
        with self._mutation("provider_id"):
            self.record.provider_id = provider_id

    def set_session_binding(self, session_id: str, session_name: str | None = None) -> None:
        """Bind the record to a (new) host session identifier."""
        if not session_id:
            raise ValueError("Session id must not be empty")
        with self._mutation("session_id", "session_name"):
            self.record.session_id = session_id
            if session_name:
                self.record.session_name = session_name

    def set_principal(self, user_name: str, user_id: int = 0) -> None:
        if not user_name:
            raise ValueError("User name must not be empty")
        with self._mutation("user_name", "user_id"):
            self.record.user_name = user_name
            self.record.user_id = user_id

    def set_location(self, location: str) -> None:
        with self._mutation("location"):
            self.record.location = location

    # --- Replay protection --------------------------------------------------------
    def is_replayed(self, response_id: str) -> bool:
        """Return True when ``response_id`` is already registered anywhere in the store."""
        return self.store.response_id_exists(response_id)

    def trace_summary(self) -> list[str]:
        return [f"{entry.label} => {entry.detail}" for entry in self.record.trace]
