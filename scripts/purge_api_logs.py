#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from timeclock.db import SessionLocal
from timeclock.logging_utils import setup_json_logging
from timeclock.services.api_logs import purge_api_logs
from timeclock.settings import get_settings


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete api_logs rows older than N days.")
    parser.add_argument(
        "--days",
        type=int,
        default=get_settings().api_log_retention_days,
        help="retention window in days (default: API_LOG_RETENTION_DAYS)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.days < 0:
        print("--days must be zero or positive", file=sys.stderr)
        return 2

    setup_json_logging(get_settings().log_level)
    db = SessionLocal()
    try:
        removed = purge_api_logs(db, days=args.days)
    finally:
        db.close()

    print(
        json.dumps(
            {
                "generated_at_utc": datetime.now(timezone.utc).isoformat(),
                "days": args.days,
                "removed": removed,
            },
            ensure_ascii=False,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
