from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Union

import structlog

log = structlog.get_logger()


@dataclass(frozen=True)
class EntityCount:
    entity: str
    count: int


# A snapshot column holds either a number or an ordered entity list.
Scalar = Union[int, float]
EntityList = list[EntityCount]
ColumnValue = Union[Scalar, EntityList]


def is_entity_list(value) -> bool:
    return isinstance(value, list)


def coerce_number(val):
    if isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        return None if isinstance(val, float) and not math.isfinite(val) else val
    if isinstance(val, str):
        text = val.strip()
        if not text:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
        if not math.isfinite(num):
            return None
        return int(num) if num.is_integer() and "." not in text else num
    return None


def _coerce_entity(entry) -> EntityCount | None:
    if isinstance(entry, str):
        # bare name from a hand-edited list
        name, count = entry.strip(), 0
    elif isinstance(entry, dict) and "entity" in entry:
        name = entry.get("entity")
        count = coerce_number(entry.get("count"))
    elif isinstance(entry, dict) and entry:
        # legacy {"Ana": 3}; extra keys after the first are ignored
        name, raw = next(iter(entry.items()))
        count = coerce_number(raw)
    else:
        return None
    if not isinstance(name, str) or not name:
        return None
    return EntityCount(entity=name, count=max(int(count or 0), 0))


def load_column_value(raw, column: str | None = None) -> ColumnValue | None:
    """Normalize a persisted JSON value; anything unrecognized is absent.

    Within an entity list only the unreadable entries are dropped.
    """
    if raw is None:
        return None
    if isinstance(raw, list):
        out = []
        for entry in raw:
            ec = _coerce_entity(entry)
            if ec is None:
                log.warning("snapshot_value_rejected", column=column, reason="bad_entity", entry=repr(entry)[:200])
                continue
            out.append(ec)
        return out
    num = coerce_number(raw)
    if num is None:
        log.warning("snapshot_value_rejected", column=column, reason="not_numeric", value=repr(raw)[:200])
    return num


def dump_column_value(value: ColumnValue | None):
    if value is None:
        return None
    if is_entity_list(value):
        return [{"entity": ec.entity, "count": ec.count} for ec in value]
    return value


def load_columns(raw: dict | None) -> dict[str, ColumnValue | None]:
    if not isinstance(raw, dict):
        return {}
    return {str(k): load_column_value(v, column=str(k)) for k, v in raw.items()}


def dump_columns(columns: dict[str, ColumnValue | None]) -> dict:
    return {k: dump_column_value(v) for k, v in columns.items()}


def entity_names(value) -> list[str]:
    if not is_entity_list(value):
        return []
    return [ec.entity for ec in value]
