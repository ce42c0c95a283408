import sqlite3
import time
import uuid
from dataclasses import dataclass
from datetime import date

import structlog

from ..config import settings
from ..db import get_conn, migrate
from ..utils import local_today
from .errors import SourceReadError
from .repository import finish_run, get_run_status, load_rule_sets, start_run
from .snapshots import compute_columns, load_snapshots, open_day, prior_days_provider
from .sources import SqliteSourceReader
from .writer import WriteOutcome, write_snapshot

log = structlog.get_logger()

_RUN_STATUS = {
    WriteOutcome.SUCCESS: "succeeded",
    WriteOutcome.CONFLICT: "skipped",
    WriteOutcome.NOT_INITIALIZED: "skipped",
    WriteOutcome.FATAL: "failed",
}


@dataclass
class RunResult:
    run_id: str
    day: date
    outcome: WriteOutcome | None
    attempts: int = 0
    error: str | None = None


def trigger_run(background, trigger: str = "refresh", day: date | None = None) -> str:
    run_id = str(uuid.uuid4())
    background.add_task(run, day=day, run_id=run_id, trigger=trigger)
    return run_id

def run(day: date | None = None, run_id: str | None = None, trigger: str = "manual",
        conn: sqlite3.Connection | None = None, sleep=time.sleep) -> RunResult:
    """One aggregation pass for a day: read sources, recompute, write once."""
    conn = conn or get_conn(settings.db_path)
    migrate(conn)
    run_id = run_id or str(uuid.uuid4())
    day = day or local_today(settings.local_tz)
    day_key = day.isoformat()
    start_run(conn, run_id, day_key, trigger)
    started = time.monotonic()
    log.info("metrics_run_started", run_id=run_id, as_of_date_local=day_key, trigger=trigger)

    try:
        rule_sets = load_rule_sets(conn)
        if not rule_sets:
            log.info("metrics_run_no_rules", run_id=run_id)
            finish_run(conn, run_id, "skipped", err="no_rule_sets")
            return RunResult(run_id, day, None, error="no_rule_sets")

        # All source reads happen before any write
        rows_by_table = SqliteSourceReader(conn).fetch_all(rs.source_table for rs in rule_sets)
        prior_days = prior_days_provider(conn, day)

        result = write_snapshot(
            conn,
            day,
            lambda current: compute_columns(rule_sets, current, rows_by_table, prior_days),
            run_id=run_id,
            sleep=sleep,
        )
    except SourceReadError as exc:
        log.error("metrics_run_failed", run_id=run_id, stage="source_read", table=exc.table, err=str(exc))
        finish_run(conn, run_id, "failed", outcome=WriteOutcome.FATAL.value, err=str(exc))
        return RunResult(run_id, day, WriteOutcome.FATAL, error=str(exc))
    except Exception as e:
        log.error("metrics_run_failed", run_id=run_id, err=str(e))
        finish_run(conn, run_id, "failed", err=str(e))
        raise

    finish_run(conn, run_id, _RUN_STATUS[result.outcome], outcome=result.outcome.value,
               attempts=result.attempts, err=result.error)
    log.info(
        "metrics_run_finished",
        run_id=run_id,
        outcome=result.outcome.value,
        attempts=result.attempts,
        elapsed_sec=round(time.monotonic() - started, 3),
    )
    return RunResult(run_id, day, result.outcome, result.attempts, result.error)

def open_today(conn: sqlite3.Connection | None = None, day: date | None = None) -> bool:
    conn = conn or get_conn(settings.db_path)
    migrate(conn)
    return open_day(conn, day or local_today(settings.local_tz))

def get_status(run_id: str):
    conn = get_conn(settings.db_path)
    migrate(conn)
    return get_run_status(conn, run_id)

def get_snapshots(start: date, end: date):
    conn = get_conn(settings.db_path)
    migrate(conn)
    return load_snapshots(conn, start, end)
