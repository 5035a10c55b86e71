import sqlite3
from typing import Optional

SCHEMA = '''
CREATE TABLE IF NOT EXISTS suggestions (
  namespace TEXT NOT NULL,
  key TEXT NOT NULL,
  model TEXT NOT NULL,
  suggested TEXT NOT NULL,
  PRIMARY KEY (namespace, key, model)
);
'''

class SuggestionCache:
    """Suggested values already returned by a model, keyed by namespace/key."""

    def __init__(self, path: str) -> None:
        self.conn = sqlite3.connect(path)
        self.conn.execute("PRAGMA journal_mode=WAL;")
        self.conn.execute(SCHEMA)
        self.conn.commit()

    def get(self, namespace: str, key: str, model: str) -> Optional[str]:
        cur = self.conn.execute(
            "SELECT suggested FROM suggestions WHERE namespace=? AND key=? AND model=?",
            (namespace, key, model),
        )
        row = cur.fetchone()
        return row[0] if row else None

    def put(self, namespace: str, key: str, model: str, suggested: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO suggestions (namespace, key, model, suggested) VALUES (?, ?, ?, ?)",
            (namespace, key, model, suggested),
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()
