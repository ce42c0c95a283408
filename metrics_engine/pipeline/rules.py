"""
Typed rule configuration.

Rule-sets and display items are authored by the dashboard UI and stored as
JSON. They are parsed here, once, into frozen pydantic models; everything
downstream matches on these types instead of probing raw dicts.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import RuleConfigError


class Comparator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EMPTY = "empty"
    NOT_EMPTY = "not_empty"

    @property
    def uses_terms(self) -> bool:
        return self not in (Comparator.EMPTY, Comparator.NOT_EMPTY)


class Combinator(str, Enum):
    AND = "and"
    OR = "or"
    NONE = "none"


# Combinator the authoring UI falls back to when a term rule omits it.
_DEFAULT_COMBINATOR = {
    Comparator.EQUALS: Combinator.OR,
    Comparator.CONTAINS: Combinator.OR,
    Comparator.NOT_EQUALS: Combinator.AND,
    Comparator.NOT_CONTAINS: Combinator.AND,
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class Rule(_Frozen):
    source_column: str = Field(alias="column", min_length=1)
    comparator: Comparator
    terms: tuple[str, ...] = ()
    combinator: Combinator = Combinator.NONE

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        try:
            comparator = Comparator(data.get("comparator"))
        except ValueError:
            return data  # field validation reports it
        if not comparator.uses_terms:
            data["terms"] = ()
            data["combinator"] = Combinator.NONE
        elif not data.get("combinator"):
            data["combinator"] = _DEFAULT_COMBINATOR[comparator]
        return data

    @model_validator(mode="after")
    def _check_combinator(self):
        if self.comparator.uses_terms and self.combinator is Combinator.NONE:
            raise ValueError(f"combinator is required for comparator {self.comparator.value}")
        return self


class ScalarShape(_Frozen):
    kind: Literal["scalar"] = "scalar"
    rules: tuple[Rule, ...] = ()


class GroupedItem(_Frozen):
    name: str = Field(min_length=1)
    rules: tuple[Rule, ...] = ()


class GroupedShape(_Frozen):
    kind: Literal["grouped"] = "grouped"
    items: tuple[GroupedItem, ...] = ()
    # Shared by every item
    rules: tuple[Rule, ...] = ()
    # When set, an entity only counts rows whose value here contains its name
    attribution_column: str | None = None

    def item(self, name: str) -> GroupedItem | None:
        for item in self.items:
            if item.name == name:
                return item
        return None


class TotalShape(_Frozen):
    kind: Literal["total"] = "total"
    sum_column: str = Field(min_length=1)
    rules: tuple[Rule, ...] = ()


MetricShape = Annotated[Union[ScalarShape, GroupedShape, TotalShape], Field(discriminator="kind")]


class MetricRuleSet(_Frozen):
    # Used as a quoted JSON path label in sqlite, which has no escape for \"
    column: str = Field(min_length=1, pattern=r'^[^"]+$')
    source_table: str = Field(min_length=1)
    date_column: str | None = None
    restrict_to_today: bool = False
    backfill: bool = True
    shape: MetricShape

    @model_validator(mode="after")
    def _check_date_column(self):
        if self.restrict_to_today and not self.date_column:
            raise ValueError("date_column is required when restrict_to_today is set")
        return self

    @property
    def is_grouped(self) -> bool:
        return isinstance(self.shape, GroupedShape)


class DisplayKind(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"
    SUM = "sum"
    DIVIDER = "divider"


class DisplaySubitem(_Frozen):
    label: str
    entity: str


class DisplayItem(_Frozen):
    kind: DisplayKind
    label: str = ""
    column: str | None = None
    columns: tuple[str, ...] = ()
    subitems: tuple[DisplaySubitem, ...] = ()
    # Colors and the like; owned by the UI, passed through untouched
    styling: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_target(self):
        if self.kind in (DisplayKind.INDIVIDUAL, DisplayKind.GROUP) and not self.column:
            raise ValueError(f"{self.kind.value} display item needs a column")
        return self


def parse_rule_set(raw: dict, column: str | None = None) -> MetricRuleSet:
    if not isinstance(raw, dict):
        raise RuleConfigError("rule-set must be a JSON object", column=column)
    if column is not None:
        raw = {**raw, "column": raw.get("column") or column}
    try:
        return MetricRuleSet.model_validate(raw)
    except ValidationError as exc:
        raise RuleConfigError(str(exc), column=column or raw.get("column")) from exc


def parse_display_items(raw) -> list[DisplayItem]:
    if not isinstance(raw, list):
        raise RuleConfigError("display items must be a JSON list")
    items = []
    for idx, entry in enumerate(raw):
        try:
            items.append(DisplayItem.model_validate(entry))
        except ValidationError as exc:
            raise RuleConfigError(f"display item {idx}: {exc}") from exc
    return items


def dump_rule_set(rule_set: MetricRuleSet) -> dict:
    return rule_set.model_dump(mode="json", by_alias=True)


def dump_display_items(items: list[DisplayItem]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]
