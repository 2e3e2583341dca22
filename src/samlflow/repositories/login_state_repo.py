"""Correlation store for login transactions."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, exists, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from samlflow.core.context import RequestContext
from samlflow.core.errors import PersistenceFailure, ReplayedAssertion
from samlflow.core.transaction import LoginTransaction, Phase, TraceEntry
from samlflow.db.time import utcnow
from samlflow.models.login_state import LoginStateRow

__all__ = ["LoginStateRepository"]

logger = logging.getLogger(__name__)

_COLUMNS = (
    "user_id",
    "user_name",
    "session_id",
    "session_name",
    "host_authenticated",
    "provider_authenticated",
    "login_time",
    "last_activity",
    "location",
    "enforce_logoff",
    "excluded_path",
    "provider_id",
    "request_id",
    "unsolicited",
    "response_id",
)


def _to_entity(row: LoginStateRow) -> LoginTransaction:
    record = LoginTransaction(
        id=row.id,
        session_id=row.session_id,
        session_name=row.session_name,
        user_name=row.user_name or "",
        phase=Phase(row.phase),
        trace=[TraceEntry.from_dict(item) for item in (row.trace or [])],
        from_store=True,
    )
    for column in _COLUMNS:
        if column in ("session_id", "session_name", "user_name"):
            continue
        setattr(record, column, getattr(row, column))
    return record


def _values(record: LoginTransaction) -> dict[str, Any]:
    values = {column: getattr(record, column) for column in _COLUMNS}
    values["phase"] = int(record.phase)
    # A fresh list so the JSON column is flagged dirty.
    values["trace"] = [entry.to_dict() for entry in record.trace]
    return values


def _apply(row: LoginStateRow, record: LoginTransaction) -> None:
    for column, value in _values(record).items():
        setattr(row, column, value)


class LoginStateRepository:
    """Persistence for login transactions keyed by session id or request id."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def _fetch_one(self, stmt) -> LoginStateRow | None:
        try:
            # More than one match is possible for a reused session id; the newest wins.
            return self.session.execute(stmt.order_by(LoginStateRow.id.desc())).scalars().first()
        except SQLAlchemyError as err:
            raise PersistenceFailure("Could not fetch login state from the database") from err

    def new_record(self, ctx: RequestContext) -> LoginTransaction:
        """Return a fresh, unsaved record bound to the caller's session."""
        return LoginTransaction(
            session_id=ctx.session_id,
            session_name=ctx.session_name,
            user_name=ctx.host_user_name or ctx.client_label,
            host_authenticated=ctx.host_authenticated,
            phase=Phase.HOST_AUTH if ctx.host_authenticated else Phase.INITIAL,
            location=ctx.path,
        )

    def load_by_session(self, ctx: RequestContext) -> LoginTransaction:
        """Return the record bound to the current session, or a new INITIAL record."""
        row = self._fetch_one(
            select(LoginStateRow).where(LoginStateRow.session_id == ctx.session_id)
        )
        if row is None:
            return self.new_record(ctx)

        record = _to_entity(row)
        record.unsolicited = False
        record.location = ctx.path
        record.last_activity = utcnow()
        record.user_name = ctx.host_user_name or ctx.client_label
        return record

    def load_by_request_id(self, request_id: str | None, ctx: RequestContext) -> LoginTransaction:
        """Return the record issued ``request_id``.

        When no record matches, the callback was not requested by this
        service and a new record flagged ``unsolicited`` in phase
        ``SAML_ACS`` is returned instead.
        """
        row = None
        if request_id:
            row = self._fetch_one(
                select(LoginStateRow).where(LoginStateRow.request_id == request_id)
            )

        if row is None:
            record = self.new_record(ctx)
            record.request_id = request_id or None
            record.unsolicited = True
            record.phase = Phase.SAML_ACS
            return record

        record = _to_entity(row)
        # The host rotates its session id across the provider redirect.
        record.session_id = ctx.session_id
        record.session_name = ctx.session_name
        record.last_activity = utcnow()
        return record

    def response_id_exists(self, response_id: str) -> bool:
        """Return True when any record already carries ``response_id``."""
        try:
            return bool(
                self.session.execute(
                    select(exists().where(LoginStateRow.response_id == response_id))
                ).scalar()
            )
        except SQLAlchemyError as err:
            raise PersistenceFailure("Could not query registered response ids") from err

    @contextmanager
    def _writing(self, record: LoginTransaction) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except IntegrityError as err:
            self.session.rollback()
            if record.response_id:
                raise ReplayedAssertion(
                    "Response id collided with an already registered response"
                ).with_context(response_id=record.response_id) from err
            raise PersistenceFailure("Could not write login state") from err
        except SQLAlchemyError as err:
            self.session.rollback()
            logger.error("Writing login state %s failed: %s", record.id, err)
            raise PersistenceFailure("Could not write login state") from err

    def save(self, record: LoginTransaction) -> LoginTransaction:
        """Insert or update ``record`` and commit.

        Raises:
            ReplayedAssertion: If the write collides with a registered response id.
            PersistenceFailure: For any other database error.
        """
        with self._writing(record):
            if not record.from_store:
                row = LoginStateRow()
                _apply(row, record)
                self.session.add(row)
                self.session.flush()
                record.id = row.id
            else:
                row = self.session.get(LoginStateRow, record.id)
                if row is None:
                    raise PersistenceFailure(
                        f"Login state {record.id} vanished from the database"
                    )
                _apply(row, record)

        record.from_store = True
        return record

    def save_if_unchanged(self, record: LoginTransaction, expect: Mapping[str, Any]) -> bool:
        """Update ``record`` only while its stored row still holds ``expect``.

        The comparison and the write are a single UPDATE statement, so of two
        callers racing on the same row at most one succeeds. A record that
        was never stored is inserted by :meth:`save` instead.

        Returns:
            False when the stored row no longer matches ``expect``; nothing
            is written in that case.
        """
        if not record.from_store:
            self.save(record)
            return True

        conditions = [LoginStateRow.id == record.id]
        for column, value in expect.items():
            attribute = getattr(LoginStateRow, column)
            conditions.append(attribute.is_(None) if value is None else attribute == value)

        with self._writing(record):
            result = self.session.execute(
                update(LoginStateRow)
                .where(*conditions)
                .values(**_values(record))
                .execution_options(synchronize_session=False)
            )
        # Rows loaded before the statement are stale now.
        self.session.expire_all()
        return bool(result.rowcount)

    def purge_inactive(self, cutoff: datetime) -> int:
        """Delete records whose last activity predates ``cutoff``."""
        try:
            result = self.session.execute(
                delete(LoginStateRow).where(LoginStateRow.last_activity < cutoff)
            )
            self.session.commit()
        except SQLAlchemyError as err:
            self.session.rollback()
            raise PersistenceFailure("Could not purge login states") from err
        return int(result.rowcount or 0)

    def list_for_provider(self, provider_id: int) -> list[LoginTransaction]:
        """Return records handled by ``provider_id``, newest login first."""
        try:
            rows = self.session.execute(
                select(LoginStateRow)
                .where(LoginStateRow.provider_id == provider_id)
                .order_by(LoginStateRow.login_time.desc(), LoginStateRow.id.desc())
            ).scalars()
            return [_to_entity(row) for row in rows]
        except SQLAlchemyError as err:
            raise PersistenceFailure("Could not list login states") from err
