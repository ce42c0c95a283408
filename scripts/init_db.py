from pathlib import Path
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from metrics_engine.db import get_conn, migrate
from metrics_engine.config import settings
from metrics_engine.pipeline.orchestrator import open_today

if __name__ == '__main__':
    conn = get_conn(settings.db_path)
    migrate(conn)
    created = open_today(conn)
    rules = conn.execute("SELECT COUNT(*) FROM metric_rules").fetchone()[0]
    print('DB ready at', settings.db_path, '| rule-sets:', rules, '| opened today:', created)
