"""Candidate profile repository and fire-and-forget sync."""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Set

import aiosqlite
import structlog

from src.core.exceptions import PersistenceError

log = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProfileRepository:
    """Repository for interview sessions and their collected fields."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    async def create_session(self, session_id: str) -> None:
        """Create a session row (no-op if it already exists)."""
        async with aiosqlite.connect(self.db_path) as db:
            now = _now()
            await db.execute(
                "INSERT OR IGNORE INTO interview_sessions "
                "(id, status, current_step, created_at, updated_at) "
                "VALUES (?, 'active', NULL, ?, ?)",
                (session_id, now, now),
            )
            await db.commit()

    async def update_session(
        self,
        session_id: str,
        current_step: Optional[str] = None,
        status: Optional[str] = None,
    ) -> None:
        """Record the current step and/or status of a session."""
        async with aiosqlite.connect(self.db_path) as db:
            now = _now()
            await db.execute(
                "INSERT OR IGNORE INTO interview_sessions "
                "(id, status, current_step, created_at, updated_at) "
                "VALUES (?, 'active', NULL, ?, ?)",
                (session_id, now, now),
            )
            await db.execute(
                "UPDATE interview_sessions SET "
                "current_step = COALESCE(?, current_step), "
                "status = COALESCE(?, status), updated_at = ? "
                "WHERE id = ?",
                (current_step, status, _now(), session_id),
            )
            await db.commit()

    async def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM interview_sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def save_field(self, session_id: str, field_name: str, value: Any) -> None:
        """
        Upsert one collected field as JSON.

        Raises:
            PersistenceError: The value is not JSON-serializable or the write failed
        """
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Field {field_name} is not serializable: {e}") from e

        try:
            async with aiosqlite.connect(self.db_path) as db:
                now = _now()
                await db.execute(
                    "INSERT OR IGNORE INTO interview_sessions "
                    "(id, status, current_step, created_at, updated_at) "
                    "VALUES (?, 'active', NULL, ?, ?)",
                    (session_id, now, now),
                )
                await db.execute(
                    "INSERT INTO candidate_fields (session_id, field_name, value, updated_at) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(session_id, field_name) "
                    "DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
                    (session_id, field_name, encoded, now),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to save field {field_name}: {e}") from e

    async def get_fields(self, session_id: str) -> Dict[str, Any]:
        """All collected fields of a session, JSON-decoded."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT field_name, value FROM candidate_fields "
                "WHERE session_id = ? ORDER BY field_name",
                (session_id,),
            )
            rows = await cursor.fetchall()
            return {row["field_name"]: json.loads(row["value"]) for row in rows}


class ProfileSync:
    """
    Best-effort mirror of collected fields to the store.

    Saves run as background tasks; failures are logged and never reach the
    caller. Tasks are held in a set until done so they are not collected
    mid-flight.
    """

    def __init__(self, repo: ProfileRepository, session_id: str):
        self.repo = repo
        self.session_id = session_id
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, field_name: str, value: Any) -> asyncio.Task:
        task = asyncio.create_task(self._save(field_name, value))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def schedule_step(self, step_name: str, status: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(self._save_step(step_name, status))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _save(self, field_name: str, value: Any) -> None:
        try:
            await self.repo.save_field(self.session_id, field_name, value)
            log.debug("profile_field_saved", field=field_name)
        except Exception as e:
            log.warning(
                "profile_field_save_failed",
                field=field_name,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def _save_step(self, step_name: str, status: Optional[str]) -> None:
        try:
            await self.repo.update_session(
                self.session_id, current_step=step_name, status=status
            )
        except Exception as e:
            log.warning("session_step_save_failed", step=step_name, error=str(e))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for outstanding saves (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
