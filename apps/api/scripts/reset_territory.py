#!/usr/bin/env python3
"""
Administrative reset: wipe tile history, ownership and activities
(optionally users too).

Run: python scripts/reset_territory.py --yes [--include-users]
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import get_db_sync
from core.logging import setup_logging
from services.territory_admin import reset_territory


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reset all territory state.")
    parser.add_argument("--include-users", action="store_true", help="Also delete users")
    parser.add_argument("--yes", action="store_true", help="Required: confirm the reset")
    args = parser.parse_args(argv)

    if not args.yes:
        print("Refusing to reset without --yes")
        return 1

    setup_logging()
    db = get_db_sync()
    try:
        counts = reset_territory(db, include_users=args.include_users)
    finally:
        db.close()

    for table, count in counts.items():
        print(f"  {table}: {count} rows deleted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
