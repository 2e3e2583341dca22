"""Schemas for login state reports."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TransactionReport(BaseModel):
    """A login state with its trace rendered as numbered lines."""

    id: int | None
    user_name: str
    phase: str
    login_time: datetime
    unsolicited: bool
    trace: list[str]
