"""SQLAlchemy model for persisted login transactions."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from samlflow.db.session import Base
from samlflow.db.time import utcnow


class LoginStateRow(Base):
    """One row per login attempt, keyed by session id or by request id."""

    __tablename__ = "login_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    session_name: Mapped[str] = mapped_column(String(255), nullable=False)
    host_authenticated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    provider_authenticated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    login_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    location: Mapped[str] = mapped_column(Text, nullable=False, default="")
    enforce_logoff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    excluded_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    provider_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    # Issued by the toolkit when this service starts a sign-in; matched against InResponseTo.
    request_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    unsolicited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Anti-replay key; the unique constraint closes the check-then-act window.
    response_id: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    phase: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    trace: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
