from __future__ import annotations

from datetime import date
from typing import Mapping, Sequence

from .snapshots import DailySnapshot
from .values import coerce_number, is_entity_list


class _NotFound:
    """No snapshot, or no value for the column. Distinct from zero."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "NOT_FOUND"

    def __str__(self):
        return "-"


NOT_FOUND = _NotFound()

Snapshots = Mapping[date, DailySnapshot]


def _value(snapshots: Snapshots, day: date, column: str):
    snap = snapshots.get(day)
    if snap is None:
        return None
    return snap.get(column)


def individual_value(snapshots: Snapshots, day: date, column: str):
    snap = snapshots.get(day)
    if snap is None or column not in snap.columns:
        return NOT_FOUND
    value = snap.get(column)
    if value is None:
        return NOT_FOUND
    if is_entity_list(value):
        return sum(ec.count for ec in value)
    return value


def group_total(snapshots: Snapshots, day: date, column: str):
    value = _value(snapshots, day, column)
    if not is_entity_list(value):
        return 0
    return sum(ec.count for ec in value)


def subitem_value(snapshots: Snapshots, day: date, column: str, entity: str):
    value = _value(snapshots, day, column)
    if not is_entity_list(value):
        return 0
    for ec in value:
        if ec.entity == entity:
            return ec.count
    return 0


def sum_total(snapshots: Snapshots, day: date, columns: Sequence[str]):
    total = 0
    for column in columns or ():
        value = _value(snapshots, day, column)
        if is_entity_list(value):
            total += group_total(snapshots, day, column)
        else:
            total += coerce_number(value) or 0
    return total
