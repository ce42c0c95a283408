"""
Load rule-set and display configuration from JSON files into the config store.

Usage:
  python scripts/load_rules.py rules/*.json [--display display.json]

Each rule file holds one rule-set object, or a list of them. Every file is
validated before anything is written.
"""
from pathlib import Path
import argparse
import json
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from metrics_engine.db import get_conn, migrate
from metrics_engine.config import settings
from metrics_engine.pipeline.errors import RuleConfigError
from metrics_engine.pipeline.repository import save_display_items, save_rule_set
from metrics_engine.pipeline.rules import parse_display_items, parse_rule_set


def _read(path: str):
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Load metric rule-sets into the database")
    parser.add_argument("files", nargs="*")
    parser.add_argument("--display", help="JSON list of display items")
    args = parser.parse_args()

    try:
        rule_sets = []
        for path in args.files:
            raw = _read(path)
            for entry in raw if isinstance(raw, list) else [raw]:
                rule_sets.append(parse_rule_set(entry))
        display = parse_display_items(_read(args.display)) if args.display else None
    except RuleConfigError as e:
        print('Invalid configuration:', e)
        sys.exit(1)

    conn = get_conn(settings.db_path)
    migrate(conn)
    for rule_set in rule_sets:
        save_rule_set(conn, rule_set)
        print('Saved', rule_set.column, '->', rule_set.source_table)
    if display is not None:
        save_display_items(conn, display)
        print('Saved', len(display), 'display items')
