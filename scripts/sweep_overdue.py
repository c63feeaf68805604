#!/usr/bin/env python3
"""Mark a tenant's stale pending fees as overdue."""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from clubdesk.config import SessionLocal, settings  # noqa: E402
from clubdesk.core.logging import configure_logging  # noqa: E402
from clubdesk.services.fees import local_today, sweep_overdue  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--tenant", required=True, help="Tenant id to sweep")
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD); defaults to today in the club timezone",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(settings.log_level.upper(), json_output=settings.log_json)  # type: ignore[arg-type]
    as_of = args.today or local_today()
    with SessionLocal() as session:
        updated = sweep_overdue(session, args.tenant, as_of)
    if updated:
        print(f"Marked {updated} fee(s) overdue as of {as_of.isoformat()}.")
    else:
        print("No pending fees past due.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
