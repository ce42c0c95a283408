from __future__ import annotations

import sqlite3
from typing import Iterable

import structlog

from .errors import SourceReadError

log = structlog.get_logger()


def _quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class SqliteSourceReader:
    """Read-only access to the source tables rule-sets point at."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _table_exists(self, table: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type IN ('table','view') AND name=?",
            (table,),
        ).fetchone()
        return row is not None

    def fetch(self, table: str) -> list[dict]:
        try:
            if not self._table_exists(table):
                raise SourceReadError(table, LookupError("no such table"))
            cur = self.conn.execute(f"SELECT * FROM {_quote_ident(table)}")
            names = [d[0] for d in cur.description]
            return [dict(zip(names, row)) for row in cur.fetchall()]
        except sqlite3.Error as exc:
            raise SourceReadError(table, exc) from exc

    def fetch_all(self, tables: Iterable[str]) -> dict[str, list[dict]]:
        out = {}
        for table in sorted(set(tables)):
            out[table] = self.fetch(table)
            log.debug("source_rows_fetched", table=table, rows=len(out[table]))
        return out
