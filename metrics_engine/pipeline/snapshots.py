"""
Daily snapshot lifecycle.

One row per local day in snapshot_metrics_daily. The row is opened empty at
day start, grouped columns are seeded from the most recent prior day that had
entities, and every run then recomputes all tracked columns in place.
"""
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Mapping

import structlog

from ..config import settings
from ..utils import now_utc_iso
from .aggregate import aggregate, entity_count, filter_to_day
from .rules import GroupedShape, MetricRuleSet
from .values import ColumnValue, EntityCount, dump_columns, entity_names, is_entity_list, load_column_value, load_columns

log = structlog.get_logger()

# (column, limit) -> values for that column on prior days, most recent first
PriorDaysProvider = Callable[[str, int], list]


@dataclass
class DailySnapshot:
    day: date
    columns: dict[str, ColumnValue | None] = field(default_factory=dict)
    updated_at_utc: str | None = None

    def get(self, column: str):
        return self.columns.get(column)


def _json_path(column: str) -> str:
    # column names never contain a double quote (see MetricRuleSet)
    return '$."' + column + '"'


def _row_to_snapshot(row) -> DailySnapshot:
    try:
        raw = json.loads(row[1]) if row[1] else {}
    except json.JSONDecodeError:
        log.warning("snapshot_json_invalid", as_of_date_local=row[0])
        raw = {}
    return DailySnapshot(day=date.fromisoformat(row[0]), columns=load_columns(raw), updated_at_utc=row[2])


def open_day(conn: sqlite3.Connection, day: date) -> bool:
    now = now_utc_iso()
    cur = conn.execute(
        """
        INSERT OR IGNORE INTO snapshot_metrics_daily(as_of_date_local, columns_json, created_at_utc, updated_at_utc)
        VALUES(?,?,?,?)
        """,
        (day.isoformat(), "{}", now, now),
    )
    created = cur.rowcount > 0
    if created:
        log.info("snapshot_day_opened", as_of_date_local=day.isoformat())
    return created


def load_snapshot(conn: sqlite3.Connection, day: date) -> DailySnapshot | None:
    row = conn.execute(
        "SELECT as_of_date_local, columns_json, updated_at_utc FROM snapshot_metrics_daily WHERE as_of_date_local=?",
        (day.isoformat(),),
    ).fetchone()
    return _row_to_snapshot(row) if row else None


def load_snapshots(conn: sqlite3.Connection, start: date, end: date) -> dict[date, DailySnapshot]:
    rows = conn.execute(
        """
        SELECT as_of_date_local, columns_json, updated_at_utc
        FROM snapshot_metrics_daily
        WHERE as_of_date_local >= ? AND as_of_date_local <= ?
        ORDER BY as_of_date_local
        """,
        (start.isoformat(), end.isoformat()),
    ).fetchall()
    out = {}
    for row in rows:
        snap = _row_to_snapshot(row)
        out[snap.day] = snap
    return out


def prior_days_provider(conn: sqlite3.Connection, day: date) -> PriorDaysProvider:
    def _provider(column: str, limit: int) -> list:
        path = _json_path(column)
        rows = conn.execute(
            """
            SELECT as_of_date_local, value FROM (
              SELECT as_of_date_local,
                     CASE WHEN json_valid(columns_json) THEN json_extract(columns_json, ?) END AS value
              FROM snapshot_metrics_daily
              WHERE as_of_date_local < ?
            )
            WHERE value IS NOT NULL
            ORDER BY as_of_date_local DESC
            LIMIT ?
            """,
            (path, day.isoformat(), limit),
        ).fetchall()
        out = []
        for as_of, raw in rows:
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except json.JSONDecodeError:
                    raw = None
            out.append((as_of, load_column_value(raw, column=column)))
        return out
    return _provider


def resolve(
    rule_set: MetricRuleSet,
    current_value,
    prior_days: PriorDaysProvider,
    backfill_enabled: bool | None = None,
    lookback_days: int | None = None,
) -> list[EntityCount] | None:
    """Seed value for a column before recomputation.

    Scalar columns have no seed. A grouped column keeps its current entities;
    when it has none and backfill is enabled, the entity names of the most
    recent prior day with a non-empty list are copied with zero counts.
    """
    if not isinstance(rule_set.shape, GroupedShape):
        return None
    if is_entity_list(current_value) and current_value:
        return list(current_value)
    enabled = rule_set.backfill if backfill_enabled is None else backfill_enabled
    if not enabled:
        return []
    limit = lookback_days or settings.backfill_lookback_days
    for as_of, value in prior_days(rule_set.column, limit):
        if is_entity_list(value) and value:
            seed = [EntityCount(entity=name, count=0) for name in entity_names(value)]
            log.info(
                "snapshot_backfilled",
                column=rule_set.column,
                from_day=as_of,
                entities=[ec.entity for ec in seed],
            )
            return seed
    log.info("snapshot_backfill_empty", column=rule_set.column, lookback_days=limit)
    return []


def merge(rule_set: MetricRuleSet, seed, rows: Iterable[Mapping], day: date, local_tz: str | None = None) -> ColumnValue:
    shape = rule_set.shape
    if not isinstance(shape, GroupedShape):
        return aggregate(rule_set, rows, day, local_tz)
    filtered = filter_to_day(rule_set, rows, day, local_tz)
    names = entity_names(seed or [])
    known = set(names)
    for item in shape.items:
        if item.name not in known:
            names.append(item.name)
            known.add(item.name)
    return [EntityCount(entity=name, count=entity_count(shape, filtered, name)) for name in names]


def compute_columns(
    rule_sets: Iterable[MetricRuleSet],
    current: DailySnapshot,
    rows_by_table: Mapping[str, list],
    prior_days: PriorDaysProvider,
    local_tz: str | None = None,
) -> dict[str, ColumnValue | None]:
    """Recompute every tracked column; untracked columns are carried over."""
    columns = dict(current.columns)
    for rule_set in rule_sets:
        rows = rows_by_table.get(rule_set.source_table, [])
        seed = resolve(rule_set, current.get(rule_set.column), prior_days)
        columns[rule_set.column] = merge(rule_set, seed, rows, current.day, local_tz)
    return columns


def columns_json(columns: dict[str, ColumnValue | None]) -> str:
    return json.dumps(dump_columns(columns), ensure_ascii=False, sort_keys=True)
