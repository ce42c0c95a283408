from __future__ import annotations

from typing import Iterable, Mapping

from .rules import Combinator, Comparator, Rule


def _field_text(row: Mapping | None, column: str) -> str:
    if not row:
        return ""
    val = row.get(column)
    if val is None:
        return ""
    return val if isinstance(val, str) else str(val)


def _combine(results: Iterable[bool], combinator: Combinator) -> bool:
    # AND over distinct Equals terms is never true for one field; kept as is
    if combinator is Combinator.AND:
        return all(results)
    return any(results)


def is_empty(row: Mapping | None, column: str) -> bool:
    return not _field_text(row, column).strip()


def evaluate(row: Mapping | None, rule: Rule) -> bool:
    """Decide whether one row satisfies one rule. Never raises on bad data."""
    comparator = rule.comparator
    if comparator is Comparator.EMPTY:
        return is_empty(row, rule.source_column)
    if comparator is Comparator.NOT_EMPTY:
        return not is_empty(row, rule.source_column)
    if not rule.terms:
        return False

    text = _field_text(row, rule.source_column)
    if comparator is Comparator.EQUALS:
        results = (text == term for term in rule.terms)
    elif comparator is Comparator.NOT_EQUALS:
        results = (text != term for term in rule.terms)
    else:
        lowered = text.lower()
        if comparator is Comparator.CONTAINS:
            results = (term.lower() in lowered for term in rule.terms)
        else:
            results = (term.lower() not in lowered for term in rule.terms)
    return _combine(results, rule.combinator)


def evaluate_all(row: Mapping | None, rules: Iterable[Rule]) -> bool:
    return all(evaluate(row, rule) for rule in rules)
