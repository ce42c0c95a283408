import sqlite3
from pathlib import Path

def get_conn(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)  # autocommit
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA busy_timeout=5000;")
    return conn

DDL = [
    # One row per local day; columns_json maps metric column -> value
    """
CREATE TABLE IF NOT EXISTS snapshot_metrics_daily (
  as_of_date_local TEXT PRIMARY KEY,
  columns_json TEXT NOT NULL DEFAULT '{}',
  built_from_run_id TEXT,
  created_at_utc TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",

    # Rule-set per computed column (authored externally)
    """
CREATE TABLE IF NOT EXISTS metric_rules (
  column_name TEXT PRIMARY KEY,
  rules_json TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",

    # Display items for the report, stored as one ordered JSON list
    """
CREATE TABLE IF NOT EXISTS display_config (
  name TEXT PRIMARY KEY,
  items_json TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",

    # Runs table
    """
CREATE TABLE IF NOT EXISTS runs (
  run_id TEXT PRIMARY KEY,
  as_of_date_local TEXT,
  trigger TEXT,
  started_at_utc TEXT NOT NULL,
  finished_at_utc TEXT,
  status TEXT NOT NULL,   -- 'running'|'succeeded'|'failed'|'skipped'
  outcome TEXT,           -- writer outcome
  attempts INTEGER,
  error_message TEXT
);
""",
    "CREATE INDEX IF NOT EXISTS ix_runs_started ON runs(started_at_utc DESC);",
]

def migrate(conn: sqlite3.Connection):
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    cols = {row[1] for row in cur.execute("PRAGMA table_info(runs)").fetchall()}
    if cols:
        if "outcome" not in cols:
            cur.execute("ALTER TABLE runs ADD COLUMN outcome TEXT")
        if "attempts" not in cols:
            cur.execute("ALTER TABLE runs ADD COLUMN attempts INTEGER")
    conn.commit()
