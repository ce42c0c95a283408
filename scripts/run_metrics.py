"""
Run one aggregation pass and print the writer outcome.

Usage:
  python scripts/run_metrics.py [YYYY-MM-DD] [--open]

Without a date the current local day is used. --open creates the day's
snapshot row first when it does not exist.
"""
from pathlib import Path
import argparse
import os
import sys
import uuid
from datetime import date

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from metrics_engine.logging import setup_logging
from metrics_engine.pipeline.orchestrator import open_today, run

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Recompute the daily metrics snapshot")
    parser.add_argument("day", nargs="?", help="local day, YYYY-MM-DD")
    parser.add_argument("--open", action="store_true", help="create the snapshot row if missing")
    args = parser.parse_args()

    setup_logging()
    day = date.fromisoformat(args.day) if args.day else None
    if args.open:
        open_today(day=day)
    run_id = str(uuid.uuid4())
    print('Run', run_id)
    result = run(day=day, run_id=run_id, trigger="cli")
    outcome = result.outcome.value if result.outcome else "none"
    print('Done.', 'day:', result.day.isoformat(), '| outcome:', outcome, '| attempts:', result.attempts)
    if result.error:
        print('Error:', result.error)
        sys.exit(1)
