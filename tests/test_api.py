import json
import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from metrics_engine.config import settings
from metrics_engine.db import get_conn, migrate
from metrics_engine.main import app

VALOR_RULES = {
    "source_table": "registros",
    "date_column": "data",
    "restrict_to_today": True,
    "shape": {"kind": "total", "sum_column": "valor"},
}

DISPLAY = [
    {"kind": "individual", "label": "Valor", "column": "valor"},
    {"kind": "divider"},
    {"kind": "group", "label": "Criados", "column": "criados_pp", "subitems": [{"label": "Ana", "entity": "Ana"}]},
    {"kind": "sum", "label": "Total", "columns": ["valor", "criados_pp"]},
]


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmp.name, "metrics.db")
        self.patcher = patch.object(settings, "db_path", self.db_path)
        self.patcher.start()
        self.client = TestClient(app)

    def tearDown(self):
        self.patcher.stop()
        self.tmp.cleanup()

    def _put_snapshot(self, day, columns):
        conn = get_conn(self.db_path)
        migrate(conn)
        conn.execute(
            "INSERT OR REPLACE INTO snapshot_metrics_daily(as_of_date_local, columns_json, created_at_utc, updated_at_utc) VALUES(?,?,?,?)",
            (day, json.dumps(columns), "t", "t"),
        )
        conn.close()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["ok"])

    def test_rules_round_trip(self):
        resp = self.client.put("/rules/valor", json=VALOR_RULES)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["column"], "valor")
        resp = self.client.get("/rules/valor")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["shape"]["sum_column"], "valor")
        self.assertEqual([r["column"] for r in self.client.get("/rules").json()], ["valor"])
        self.assertEqual(self.client.delete("/rules/valor").status_code, 200)
        self.assertEqual(self.client.get("/rules/valor").status_code, 404)

    def test_invalid_rules_are_rejected(self):
        bad = {**VALOR_RULES, "shape": {"kind": "nope"}}
        self.assertEqual(self.client.put("/rules/valor", json=bad).status_code, 422)
        mismatched = {**VALOR_RULES, "column": "outra"}
        self.assertEqual(self.client.put("/rules/valor", json=mismatched).status_code, 400)
        self.assertEqual(self.client.get("/rules").json(), [])

    def test_display_round_trip(self):
        resp = self.client.put("/display", json=DISPLAY)
        self.assertEqual(resp.status_code, 200)
        kinds = [item["kind"] for item in self.client.get("/display").json()]
        self.assertEqual(kinds, ["individual", "divider", "group", "sum"])
        self.assertEqual(self.client.put("/display", json=[{"kind": "group"}]).status_code, 422)

    def test_report(self):
        self.client.put("/display", json=DISPLAY)
        self._put_snapshot("2026-03-10", {"valor": 150, "criados_pp": [{"entity": "Ana", "count": 3}, {"entity": "Bia", "count": 2}]})
        resp = self.client.get("/report", params={"start": "2026-03-09", "end": "2026-03-10"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["days"], ["2026-03-09", "2026-03-10"])
        rows = body["rows"]
        self.assertEqual([r["kind"] for r in rows], ["individual", "divider", "group", "subitem", "sum"])
        self.assertEqual(rows[0]["values"], ["-", 150])
        self.assertEqual(rows[2]["values"], [0, 5])
        self.assertEqual(rows[3]["values"], [0, 3])
        self.assertEqual(rows[4]["values"], [0, 155])

    def test_report_csv(self):
        self.client.put("/display", json=DISPLAY)
        self._put_snapshot("2026-03-10", {"valor": 150})
        resp = self.client.get("/report.csv", params={"start": "2026-03-09", "end": "2026-03-10"})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.headers["content-type"].startswith("text/csv"))
        lines = resp.text.strip().splitlines()
        self.assertEqual(lines[0], "metric,kind,2026-03-09,2026-03-10")
        self.assertEqual(lines[1], "Valor,individual,-,150")

    def test_report_rejects_bad_window(self):
        self.assertEqual(self.client.get("/report", params={"start": "2026-03-11", "end": "2026-03-10"}).status_code, 400)
        self.assertEqual(self.client.get("/report", params={"start": "10/03/2026"}).status_code, 400)
        resp = self.client.get("/report", params={"start": "0001-01-01", "end": "2026-03-10"})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("366", resp.json()["detail"])
        self.assertEqual(self.client.get("/report.csv", params={"start": "2025-03-09", "end": "2026-03-10"}).status_code, 400)
        self.assertEqual(self.client.get("/report", params={"start": "2025-03-10", "end": "2026-03-10"}).status_code, 200)

    def test_snapshot_lookup(self):
        self.assertEqual(self.client.get("/snapshots/2026-03-10").status_code, 404)
        self._put_snapshot("2026-03-10", {"valor": 150})
        resp = self.client.get("/snapshots/2026-03-10")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["columns"], {"valor": 150})

    def test_open_day(self):
        first = self.client.post("/metrics/open-day").json()
        second = self.client.post("/metrics/open-day").json()
        self.assertTrue(first["created"])
        self.assertFalse(second["created"])
        self.assertEqual(first["as_of_date_local"], second["as_of_date_local"])

    def test_refresh_runs_in_background(self):
        resp = self.client.post("/metrics/refresh")
        self.assertEqual(resp.status_code, 202)
        run_id = resp.json()["run_id"]
        status = self.client.get(f"/status/{run_id}")
        self.assertEqual(status.status_code, 200)
        # no rule-sets configured
        self.assertEqual(status.json()["status"], "skipped")
        self.assertEqual(self.client.get("/status/unknown").status_code, 404)

    def test_events_for_unrelated_tables_are_ignored(self):
        self.client.put("/rules/valor", json=VALOR_RULES)
        resp = self.client.post("/metrics/events", json={"table": "emails"})
        self.assertEqual(resp.status_code, 202)
        self.assertTrue(resp.json()["ignored"])
        resp = self.client.post("/metrics/events", json={"table": "registros", "row_id": "7"})
        self.assertFalse(resp.json()["ignored"])
        self.assertIsNotNone(resp.json()["run_id"])


if __name__ == "__main__":
    unittest.main()
