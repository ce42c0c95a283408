"""
Optimistic snapshot writer.

No lock is taken. Each attempt re-reads the day's row, recomputes the full
column set from it and issues a single UPDATE filtered by the day key. An
update that matches no row is a conflict and is retried with linear backoff;
any datastore error is fatal and is not retried.
"""
from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable

import structlog

from ..config import settings
from ..utils import now_utc_iso
from .snapshots import DailySnapshot, columns_json, load_snapshot

log = structlog.get_logger()


class WriteOutcome(str, Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    FATAL = "fatal"
    NOT_INITIALIZED = "not_initialized"


@dataclass
class WriteResult:
    outcome: WriteOutcome
    day: date
    attempts: int
    columns: dict | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is WriteOutcome.SUCCESS


def _update_snapshot(conn: sqlite3.Connection, day: date, columns: dict, run_id: str | None) -> int:
    cur = conn.execute(
        """
        UPDATE snapshot_metrics_daily
        SET columns_json=?, built_from_run_id=?, updated_at_utc=?
        WHERE as_of_date_local=?
        """,
        (columns_json(columns), run_id, now_utc_iso(), day.isoformat()),
    )
    return cur.rowcount


def write_snapshot(
    conn: sqlite3.Connection,
    day: date,
    compute: Callable[[DailySnapshot], dict],
    run_id: str | None = None,
    max_attempts: int | None = None,
    backoff_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> WriteResult:
    max_attempts = max_attempts or settings.write_max_attempts
    backoff = settings.write_backoff_seconds if backoff_seconds is None else backoff_seconds
    day_key = day.isoformat()

    for attempt in range(1, max_attempts + 1):
        try:
            current = load_snapshot(conn, day)
            if current is None:
                log.info("snapshot_not_initialized", run_id=run_id, as_of_date_local=day_key, attempt=attempt)
                return WriteResult(WriteOutcome.NOT_INITIALIZED, day, attempt)
            columns = compute(current)
            affected = _update_snapshot(conn, day, columns, run_id)
        except sqlite3.Error as exc:
            log.error("snapshot_write_fatal", run_id=run_id, as_of_date_local=day_key, attempt=attempt, err=str(exc))
            return WriteResult(WriteOutcome.FATAL, day, attempt, error=str(exc))

        if affected > 0:
            log.info("snapshot_written", run_id=run_id, as_of_date_local=day_key, attempt=attempt, columns=len(columns))
            return WriteResult(WriteOutcome.SUCCESS, day, attempt, columns=columns)

        log.warning("snapshot_write_conflict", run_id=run_id, as_of_date_local=day_key, attempt=attempt)
        if attempt < max_attempts:
            sleep(backoff * attempt)

    log.warning("snapshot_write_gave_up", run_id=run_id, as_of_date_local=day_key, attempts=max_attempts)
    return WriteResult(WriteOutcome.CONFLICT, day, max_attempts)
