"""Maintenance commands for persisted login states.

    samlflow-states purge [--days N]
    samlflow-states report --provider N [--json]
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from samlflow.core.errors import LoginFlowError
from samlflow.core.settings import settings
from samlflow.db.session import SessionLocal
from samlflow.schemas.report import TransactionReport
from samlflow.services.retention import purge_inactive_transactions, trace_report


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="samlflow-states", description="Maintain samlflow login states"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    purge = sub.add_parser("purge", help="Delete login states past the retention period")
    purge.add_argument(
        "--days",
        type=int,
        default=settings.retention_days,
        help="Keep records active within this many days (0 keeps everything).",
    )

    report = sub.add_parser("report", help="Show login states and traces for a provider")
    report.add_argument("--provider", type=int, required=True, help="Identity provider id")
    report.add_argument("--json", action="store_true", help="Emit JSON lines instead of text")
    return parser


def _print_report(rows: list[TransactionReport], as_json: bool) -> None:
    for row in rows:
        if as_json:
            print(row.model_dump_json())
            continue
        print(f"#{row.id} {row.user_name} {row.phase} {row.login_time.isoformat()}"
              + (" unsolicited" if row.unsolicited else ""))
        for line in row.trace:
            print(f"    {line}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    db = SessionLocal()
    try:
        if args.command == "purge":
            removed = purge_inactive_transactions(db, args.days)
            print(f"[samlflow-states] purged {removed} login states")
        else:
            rows = [TransactionReport(**item) for item in trace_report(db, args.provider)]
            if not rows:
                print(f"[samlflow-states] no login states for provider {args.provider}")
            _print_report(rows, args.json)
    except LoginFlowError as exc:
        print(f"[samlflow-states] ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
