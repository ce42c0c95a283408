from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

import pandas as pd

from .rollup import NOT_FOUND, Snapshots, group_total, individual_value, subitem_value, sum_total
from .rules import DisplayItem, DisplayKind


@dataclass
class ReportRow:
    kind: str
    label: str
    values: list = field(default_factory=list)
    styling: dict[str, Any] = field(default_factory=dict)
    level: int = 0  # 1 for group subitems


def _group_rows(item: DisplayItem, snapshots: Snapshots, days: Sequence[date]) -> list[ReportRow]:
    rows = [ReportRow(
        kind=item.kind.value,
        label=item.label,
        values=[group_total(snapshots, d, item.column) for d in days],
        styling=item.styling,
    )]
    for sub in item.subitems:
        rows.append(ReportRow(
            kind="subitem",
            label=sub.label,
            values=[subitem_value(snapshots, d, item.column, sub.entity) for d in days],
            styling=item.styling,
            level=1,
        ))
    return rows


def build_report(items: Sequence[DisplayItem], snapshots: Snapshots, days: Sequence[date]) -> list[ReportRow]:
    rows: list[ReportRow] = []
    for item in items:
        if item.kind is DisplayKind.INDIVIDUAL:
            values = [individual_value(snapshots, d, item.column) for d in days]
            rows.append(ReportRow(kind=item.kind.value, label=item.label, values=values, styling=item.styling))
        elif item.kind is DisplayKind.GROUP:
            rows.extend(_group_rows(item, snapshots, days))
        elif item.kind is DisplayKind.SUM:
            values = [sum_total(snapshots, d, item.columns) for d in days]
            rows.append(ReportRow(kind=item.kind.value, label=item.label, values=values, styling=item.styling))
        elif item.kind is DisplayKind.DIVIDER:
            rows.append(ReportRow(kind=item.kind.value, label=item.label, styling=item.styling))
    return rows


def render_value(value):
    return str(value) if value is NOT_FOUND else value


def report_rows_json(rows: Sequence[ReportRow]) -> list[dict]:
    return [
        {
            "kind": row.kind,
            "label": row.label,
            "level": row.level,
            "values": [render_value(v) for v in row.values],
            "styling": row.styling,
        }
        for row in rows
    ]


def report_frame(rows: Sequence[ReportRow], days: Sequence[date]) -> pd.DataFrame:
    """Metrics as rows, days as columns. Divider rows stay as blank lines."""
    day_labels = [d.isoformat() for d in days]
    records = []
    for row in rows:
        record = {"metric": row.label, "kind": row.kind}
        if row.kind == DisplayKind.DIVIDER.value:
            record.update({label: "" for label in day_labels})
        else:
            record.update({label: render_value(v) for label, v in zip(day_labels, row.values)})
        records.append(record)
    return pd.DataFrame.from_records(records, columns=["metric", "kind", *day_labels])
