"""
Attribution aggregator.

Turns a batch of source rows into a column value: a scalar count, a numeric
total, or one EntityCount per named entity. Entity attribution is by
case-insensitive name substring on the shape's attribution column, on top of
whatever rules the item itself carries.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping, Sequence

from ..config import settings
from ..utils import day_bounds, parse_local_datetime
from .predicates import evaluate_all
from .rules import Combinator, Comparator, GroupedShape, MetricRuleSet, Rule, ScalarShape, TotalShape
from .values import ColumnValue, EntityCount, coerce_number


def filter_to_day(rule_set: MetricRuleSet, rows: Iterable[Mapping], day: date, local_tz: str | None = None) -> list[Mapping]:
    rows = [r for r in rows if r is not None]
    if not rule_set.restrict_to_today:
        return rows
    tz_name = local_tz or settings.local_tz
    start, end = day_bounds(day, tz_name)
    kept = []
    for row in rows:
        dt = parse_local_datetime(row.get(rule_set.date_column), tz_name)
        if dt is not None and start <= dt < end:
            kept.append(row)
    return kept


def count_matching(rows: Iterable[Mapping], rules: Sequence[Rule]) -> int:
    return sum(1 for row in rows if evaluate_all(row, rules))


def attribution_rule(column: str, entity: str) -> Rule:
    return Rule(column=column, comparator=Comparator.CONTAINS, terms=(entity,), combinator=Combinator.OR)


def entity_count(shape: GroupedShape, rows: Sequence[Mapping], entity: str) -> int:
    """Count rows attributed to one entity; rows are already day-filtered."""
    item = shape.item(entity)
    if item is None and not shape.attribution_column:
        return 0
    rules = list(shape.rules)
    if item is not None:
        rules.extend(item.rules)
    if shape.attribution_column:
        rules.append(attribution_rule(shape.attribution_column, entity))
    return count_matching(rows, rules)


def _total(shape: TotalShape, rows: Sequence[Mapping]):
    total = 0.0
    for row in rows:
        if not evaluate_all(row, shape.rules):
            continue
        num = coerce_number(row.get(shape.sum_column))
        if num is not None:
            total += num
    return round(total, 2)


def aggregate(rule_set: MetricRuleSet, rows: Iterable[Mapping], day: date, local_tz: str | None = None) -> ColumnValue:
    filtered = filter_to_day(rule_set, rows, day, local_tz)
    shape = rule_set.shape
    if isinstance(shape, ScalarShape):
        return count_matching(filtered, shape.rules)
    if isinstance(shape, TotalShape):
        return _total(shape, filtered)
    if isinstance(shape, GroupedShape):
        return [EntityCount(entity=item.name, count=entity_count(shape, filtered, item.name)) for item in shape.items]
    raise TypeError(f"unsupported metric shape: {type(shape).__name__}")


def count_entity(rule_set: MetricRuleSet, rows: Iterable[Mapping], day: date, entity: str, local_tz: str | None = None) -> int:
    if not isinstance(rule_set.shape, GroupedShape):
        raise TypeError(f"{rule_set.column} is not a grouped metric")
    filtered = filter_to_day(rule_set, rows, day, local_tz)
    return entity_count(rule_set.shape, filtered, entity)
