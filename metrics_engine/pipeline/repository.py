from __future__ import annotations

import json
import sqlite3

import structlog

from ..utils import now_utc_iso
from .errors import RuleConfigError
from .rules import (
    DisplayItem,
    MetricRuleSet,
    dump_display_items,
    dump_rule_set,
    parse_display_items,
    parse_rule_set,
)

log = structlog.get_logger()

DISPLAY_DEFAULT = "default"


def save_rule_set(conn: sqlite3.Connection, rule_set: MetricRuleSet):
    conn.execute(
        """
        INSERT INTO metric_rules(column_name, rules_json, updated_at_utc) VALUES(?,?,?)
        ON CONFLICT(column_name) DO UPDATE SET rules_json=excluded.rules_json, updated_at_utc=excluded.updated_at_utc
        """,
        (rule_set.column, json.dumps(dump_rule_set(rule_set), ensure_ascii=False), now_utc_iso()),
    )


def get_rule_set(conn: sqlite3.Connection, column: str) -> MetricRuleSet | None:
    row = conn.execute("SELECT rules_json FROM metric_rules WHERE column_name=?", (column,)).fetchone()
    if not row:
        return None
    return parse_rule_set(json.loads(row[0]), column=column)


def delete_rule_set(conn: sqlite3.Connection, column: str) -> bool:
    cur = conn.execute("DELETE FROM metric_rules WHERE column_name=?", (column,))
    return cur.rowcount > 0


def load_rule_sets(conn: sqlite3.Connection, strict: bool = False) -> list[MetricRuleSet]:
    """All stored rule-sets, in column order. Bad entries are skipped unless strict."""
    out = []
    for column, raw in conn.execute("SELECT column_name, rules_json FROM metric_rules ORDER BY column_name").fetchall():
        try:
            out.append(parse_rule_set(json.loads(raw), column=column))
        except (RuleConfigError, json.JSONDecodeError) as exc:
            if strict:
                raise
            log.error("rule_set_invalid", column=column, err=str(exc))
    return out


def save_display_items(conn: sqlite3.Connection, items: list[DisplayItem], name: str = DISPLAY_DEFAULT):
    conn.execute(
        """
        INSERT INTO display_config(name, items_json, updated_at_utc) VALUES(?,?,?)
        ON CONFLICT(name) DO UPDATE SET items_json=excluded.items_json, updated_at_utc=excluded.updated_at_utc
        """,
        (name, json.dumps(dump_display_items(items), ensure_ascii=False), now_utc_iso()),
    )


def load_display_items(conn: sqlite3.Connection, name: str = DISPLAY_DEFAULT) -> list[DisplayItem]:
    row = conn.execute("SELECT items_json FROM display_config WHERE name=?", (name,)).fetchone()
    if not row:
        return []
    return parse_display_items(json.loads(row[0]))


def start_run(conn: sqlite3.Connection, run_id: str, as_of_date_local: str, trigger: str):
    conn.execute(
        "INSERT OR REPLACE INTO runs(run_id, as_of_date_local, trigger, started_at_utc, status) VALUES(?,?,?,?,?)",
        (run_id, as_of_date_local, trigger, now_utc_iso(), 'running'),
    )

def finish_run(conn: sqlite3.Connection, run_id: str, status: str, outcome: str | None = None,
               attempts: int | None = None, err: str | None = None):
    conn.execute(
        "UPDATE runs SET finished_at_utc=?, status=?, outcome=?, attempts=?, error_message=? WHERE run_id=?",
        (now_utc_iso(), status, outcome, attempts, err[:1000] if err else None, run_id),
    )

def get_run_status(conn: sqlite3.Connection, run_id: str):
    row = conn.execute(
        """
        SELECT run_id, as_of_date_local, trigger, status, outcome, attempts, started_at_utc, finished_at_utc, error_message
        FROM runs WHERE run_id=?
        """,
        (run_id,),
    ).fetchone()
    if not row:
        return None
    keys = ("run_id", "as_of_date_local", "trigger", "status", "outcome", "attempts",
            "started_at_utc", "finished_at_utc", "error_message")
    return dict(zip(keys, row))

def last_run(conn: sqlite3.Connection):
    row = conn.execute("SELECT run_id FROM runs ORDER BY started_at_utc DESC LIMIT 1").fetchone()
    return get_run_status(conn, row[0]) if row else None
