"""Append-only step ledger backed by SQLite.

Every completed step is inserted once as a (step, bucket) row. The ledger is
replayed once when it is opened into a bucket -> highest-step map; the table
stays the single source of truth and the map is only a cache of it.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Tuple

from relocate_types import FINAL_STEP
from relocate_utils import archive_file, get_utc_now

STEP_LOG_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS step_log (
        step INTEGER NOT NULL,
        bucket TEXT NOT NULL,
        completed_at TEXT NOT NULL,
        PRIMARY KEY (step, bucket)
    )
"""

INDEX_DEFINITIONS = ("CREATE INDEX IF NOT EXISTS idx_step_log_bucket ON step_log(bucket)",)


class DatabaseConnection:  # pylint: disable=too-few-public-methods
    """Handles database connection and schema initialization"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init_schema()

    @contextmanager
    def get_connection(self):
        """Yield a SQLite connection with the configured row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.get_connection() as conn:
            conn.execute(STEP_LOG_TABLE_SQL)
            for statement in INDEX_DEFINITIONS:
                conn.execute(statement)
            conn.commit()


class StepLedger:
    """Durable record of the steps completed for each bucket"""

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self.db_conn = DatabaseConnection(str(self.db_path))
        self._last_steps: Dict[str, int] = self._replay()

    def _replay(self) -> Dict[str, int]:
        """Rebuild the bucket -> highest completed step map from the table."""
        last_steps: Dict[str, int] = {}
        with self.db_conn.get_connection() as conn:
            for row in conn.execute("SELECT step, bucket FROM step_log ORDER BY rowid"):
                bucket = row["bucket"]
                last_steps[bucket] = max(last_steps.get(bucket, 0), row["step"])
        return last_steps

    def last_completed_step(self, bucket: str) -> int:
        """Return the highest step recorded for *bucket*, or 0."""
        return self._last_steps.get(bucket, 0)

    def record_step_complete(self, step: int, bucket: str) -> None:
        """Durably append a completed step for *bucket*."""
        with self.db_conn.get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO step_log (step, bucket, completed_at) VALUES (?, ?, ?)",
                (int(step), bucket, get_utc_now()),
            )
            conn.commit()
        self._last_steps[bucket] = max(self._last_steps.get(bucket, 0), int(step))

    def snapshot(self) -> Dict[str, int]:
        """Return a copy of the bucket -> highest completed step map."""
        return dict(self._last_steps)

    def _rows_for(self, buckets: List[str]) -> List[Tuple[int, str, str]]:
        if not buckets:
            return []
        placeholders = ", ".join("?" for _ in buckets)
        with self.db_conn.get_connection() as conn:
            cursor = conn.execute(
                "SELECT step, bucket, completed_at FROM step_log "
                f"WHERE bucket IN ({placeholders}) ORDER BY rowid",
                buckets,
            )
            return [(row["step"], row["bucket"], row["completed_at"]) for row in cursor]

    def archive(self) -> Path | None:
        """Rename the ledger with the completion marker and start a fresh one.

        Buckets that have not reached the final step keep their rows in the fresh
        ledger, so archiving never loses another bucket's resume position.
        """
        unfinished = [bucket for bucket, step in self._last_steps.items() if step < FINAL_STEP]
        carried_rows = self._rows_for(unfinished)
        archived = archive_file(self.db_path)
        self.db_conn = DatabaseConnection(str(self.db_path))
        if carried_rows:
            with self.db_conn.get_connection() as conn:
                conn.executemany(
                    "INSERT OR IGNORE INTO step_log (step, bucket, completed_at) VALUES (?, ?, ?)",
                    carried_rows,
                )
                conn.commit()
        self._last_steps = {bucket: self._last_steps[bucket] for bucket in unfinished}
        return archived
