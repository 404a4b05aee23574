from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from assignbot.core.models import ReviewPrefs, RotationMode
from assignbot.engine.preferences import DEFAULT_PREFS, validate_prefs


class SqliteStorage:
    """Review preferences and assignment tracking state in ``state.db``."""

    def __init__(self, data_dir: str) -> None:
        self._db_path = Path(data_dir) / "state.db"
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS review_prefs (
                    username TEXT PRIMARY KEY,
                    capacity INTEGER,
                    rotation_mode TEXT NOT NULL DEFAULT 'on',
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS assignment_state (
                    repo TEXT NOT NULL,
                    issue_number INTEGER NOT NULL,
                    assignee TEXT,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (repo, issue_number)
                );
                """
            )

    # Review preferences

    def upsert_review_prefs(
        self,
        username: str,
        capacity: int | None,
        rotation_mode: RotationMode | str = RotationMode.ON_ROTATION,
    ) -> ReviewPrefs:
        prefs = validate_prefs(capacity, rotation_mode)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO review_prefs (username, capacity, rotation_mode, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(username) DO UPDATE SET
                    capacity = excluded.capacity,
                    rotation_mode = excluded.rotation_mode,
                    updated_at = excluded.updated_at
                """,
                (username.lower(), prefs.capacity, prefs.rotation_mode.value, _now()),
            )
        return prefs

    def get_review_prefs(self, username: str) -> ReviewPrefs:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT capacity, rotation_mode FROM review_prefs WHERE username = ?",
                (username.lower(),),
            ).fetchone()
        if row is None:
            return DEFAULT_PREFS
        return ReviewPrefs(capacity=row["capacity"], rotation_mode=RotationMode(row["rotation_mode"]))

    def list_review_prefs(self) -> dict[str, ReviewPrefs]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT username, capacity, rotation_mode FROM review_prefs ORDER BY username"
            ).fetchall()
        return {
            row["username"]: ReviewPrefs(
                capacity=row["capacity"], rotation_mode=RotationMode(row["rotation_mode"])
            )
            for row in rows
        }

    async def get(self, username: str) -> ReviewPrefs:
        return await asyncio.to_thread(self.get_review_prefs, username)

    # Assignment tracking (intended assignee when the bot holds the assignment)

    def get_tracked_assignee(self, repo: str, issue_number: int) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT assignee FROM assignment_state WHERE repo = ? AND issue_number = ?",
                (repo, issue_number),
            ).fetchone()
        return row["assignee"] if row is not None else None

    def set_tracked_assignee(self, repo: str, issue_number: int, assignee: str | None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO assignment_state (repo, issue_number, assignee, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(repo, issue_number) DO UPDATE SET
                    assignee = excluded.assignee,
                    updated_at = excluded.updated_at
                """,
                (repo, issue_number, assignee, _now()),
            )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
