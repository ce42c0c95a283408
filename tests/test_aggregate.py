import unittest
from datetime import date

from metrics_engine.pipeline.aggregate import aggregate, count_entity, filter_to_day
from metrics_engine.pipeline.rules import parse_rule_set
from metrics_engine.pipeline.values import EntityCount
from metrics_engine.utils import parse_local_datetime

TZ = "America/Sao_Paulo"
DAY = date(2026, 3, 10)


def _scalar(rules, **extra):
    return parse_rule_set({"column": "m", "source_table": "registros", "shape": {"kind": "scalar", "rules": rules}, **extra})


def _grouped(items, attribution_column="operador", rules=(), **extra):
    return parse_rule_set({
        "column": "g",
        "source_table": "conexao_vendedores",
        "shape": {"kind": "grouped", "items": items, "attribution_column": attribution_column, "rules": list(rules)},
        **extra,
    })


class DayFilterTests(unittest.TestCase):
    def test_keeps_rows_inside_local_day(self):
        rs = _scalar([], date_column="data", restrict_to_today=True)
        rows = [
            {"id": 1, "data": "2026-03-10T10:00:00"},         # naive, local
            {"id": 2, "data": "2026-03-10T02:00:00Z"},        # 23:00 on the 9th locally
            {"id": 3, "data": "2026-03-11T02:00:00+00:00"},   # 23:00 on the 10th locally
            {"id": 4, "data": "2026-03-10"},
            {"id": 5, "data": "2026-03-11T00:00:00"},         # end is exclusive
            {"id": 6, "data": None},
            {"id": 7, "data": "not a date"},
            {"id": 8},
            {"id": 9, "data": "10 March 2026"},               # not ISO 8601
        ]
        kept = filter_to_day(rs, rows, DAY, TZ)
        self.assertEqual([r["id"] for r in kept], [1, 3, 4])

    def test_partial_values_are_not_dates(self):
        self.assertIsNone(parse_local_datetime("10", TZ))
        self.assertIsNone(parse_local_datetime("March", TZ))
        self.assertEqual(parse_local_datetime("2026-03-10 09:00:00-03", TZ).hour, 9)

    def test_unrestricted_keeps_everything(self):
        rs = _scalar([])
        rows = [{"data": "2020-01-01"}, {"data": None}, {}]
        self.assertEqual(len(filter_to_day(rs, rows, DAY, TZ)), 3)


class ScalarTests(unittest.TestCase):
    def test_vendedor_ana_scenario(self):
        rows = [
            {"status": "Vendedor A", "obs": "Ana fechou venda"},
            {"status": "Inválido", "obs": "Ana ligou"},
        ]
        rs = _scalar([
            {"column": "status", "comparator": "contains", "terms": ["Vendedor"]},
            {"column": "obs", "comparator": "contains", "terms": ["ana"], "combinator": "or"},
        ])
        self.assertEqual(aggregate(rs, rows, DAY, TZ), 1)

    def test_name_rule_alone_counts_all_prefiltered_rows(self):
        rows = [{"obs": "Ana fechou venda"}, {"obs": "Ana ligou"}, {"obs": "Bia"}]
        rs = _scalar([{"column": "obs", "comparator": "contains", "terms": ["ana"]}])
        self.assertEqual(aggregate(rs, rows, DAY, TZ), 2)

    def test_no_rules_counts_day_rows(self):
        rs = _scalar([], date_column="data", restrict_to_today=True)
        rows = [{"data": "2026-03-10T08:00:00"}, {"data": "2026-03-09T08:00:00"}]
        self.assertEqual(aggregate(rs, rows, DAY, TZ), 1)

    def test_empty_rows(self):
        self.assertEqual(aggregate(_scalar([]), [], DAY, TZ), 0)


class TotalTests(unittest.TestCase):
    def test_sums_numeric_column_for_day(self):
        rs = parse_rule_set({
            "column": "valor",
            "source_table": "registros",
            "date_column": "data",
            "restrict_to_today": True,
            "shape": {"kind": "total", "sum_column": "valor"},
        })
        rows = [
            {"data": "2026-03-10T09:00:00", "valor": 100},
            {"data": "2026-03-10T11:00:00", "valor": "49.999"},
            {"data": "2026-03-10T12:00:00", "valor": "n/a"},
            {"data": "2026-03-10T13:00:00", "valor": None},
            {"data": "2026-03-09T13:00:00", "valor": 1000},
        ]
        self.assertEqual(aggregate(rs, rows, DAY, TZ), 150.0)


class GroupedTests(unittest.TestCase):
    ROWS = [
        {"operador": "Ana Souza", "tipo_conexao": "Nova"},
        {"operador": "ana", "tipo_conexao": "Reconexão"},
        {"operador": "Bia", "tipo_conexao": "Nova"},
        {"operador": "Anabia", "tipo_conexao": "Nova"},
        {"operador": None, "tipo_conexao": "Nova"},
    ]

    def test_counts_per_item_in_item_order(self):
        rs = _grouped([{"name": "Bia"}, {"name": "Ana"}, {"name": "Caio"}])
        value = aggregate(rs, self.ROWS, DAY, TZ)
        self.assertEqual(value, [
            EntityCount("Bia", 2),
            EntityCount("Ana", 3),
            EntityCount("Caio", 0),
        ])

    def test_shared_and_item_rules_combine(self):
        rs = _grouped(
            [{"name": "Ana", "rules": [{"column": "tipo_conexao", "comparator": "equals", "terms": ["Nova"]}]}, {"name": "Bia"}],
            rules=[{"column": "operador", "comparator": "not_empty"}],
        )
        self.assertEqual(aggregate(rs, self.ROWS, DAY, TZ), [EntityCount("Ana", 2), EntityCount("Bia", 2)])

    def test_items_without_attribution_use_own_rules(self):
        rs = _grouped(
            [
                {"name": "Novas", "rules": [{"column": "tipo_conexao", "comparator": "equals", "terms": ["Nova"]}]},
                {"name": "Recon", "rules": [{"column": "tipo_conexao", "comparator": "equals", "terms": ["Reconexão"]}]},
            ],
            attribution_column=None,
        )
        self.assertEqual(aggregate(rs, self.ROWS, DAY, TZ), [EntityCount("Novas", 4), EntityCount("Recon", 1)])

    def test_count_entity_outside_configured_items(self):
        rs = _grouped([{"name": "Ana"}])
        self.assertEqual(count_entity(rs, self.ROWS, DAY, "bia", TZ), 2)
        unattributed = _grouped([{"name": "Ana"}], attribution_column=None)
        self.assertEqual(count_entity(unattributed, self.ROWS, DAY, "Bia", TZ), 0)

    def test_count_entity_rejects_scalar(self):
        with self.assertRaises(TypeError):
            count_entity(_scalar([]), self.ROWS, DAY, "Ana", TZ)

    def test_aggregation_is_repeatable(self):
        rs = _grouped([{"name": "Ana"}, {"name": "Bia"}], date_column="data", restrict_to_today=False)
        first = aggregate(rs, self.ROWS, DAY, TZ)
        second = aggregate(rs, list(self.ROWS), DAY, TZ)
        self.assertEqual(first, second)
        self.assertEqual(repr(first), repr(second))


if __name__ == "__main__":
    unittest.main()
