"""Out-of-band maintenance over the correlation store."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from samlflow.db.time import utcnow
from samlflow.repositories.login_state_repo import LoginStateRepository

logger = logging.getLogger(__name__)


def purge_inactive_transactions(db: Session, days: int) -> int:
    """Delete login states idle for more than ``days`` days.

    A value of zero or less keeps every record and returns 0.
    """
    if days <= 0:
        return 0
    cutoff = utcnow() - timedelta(days=days)
    removed = LoginStateRepository(db).purge_inactive(cutoff)
    logger.info("Purged %d login states inactive since %s", removed, cutoff.isoformat())
    return removed


def trace_report(db: Session, provider_id: int) -> list[dict[str, object]]:
    """Return the login states of one provider with their trace rendered as lines."""
    report = []
    for record in LoginStateRepository(db).list_for_provider(provider_id):
        report.append(
            {
                "id": record.id,
                "user_name": record.user_name,
                "phase": record.phase.name,
                "login_time": record.login_time,
                "unsolicited": record.unsolicited,
                "trace": [
                    f"{index} : {entry.label} => {entry.detail}"
                    for index, entry in enumerate(record.trace, start=1)
                ],
            }
        )
    return report
