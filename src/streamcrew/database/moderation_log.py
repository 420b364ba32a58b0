"""
Persistent log of executed timeouts.

Only timeouts the platform accepted are recorded. The log is an audit trail
for the operator console; nothing in the moderation flow reads it back.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import aiosqlite

from streamcrew.database.db_connection import ConnectionManager
from streamcrew.datatypes.moderation_datatypes import TimeoutRecord
from streamcrew.util.logger import get_logger

logger = get_logger("moderation_log")

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS moderation_timeouts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        channel TEXT NOT NULL,
        username TEXT NOT NULL,
        user_id TEXT NOT NULL,
        duration_seconds INTEGER NOT NULL,
        reason TEXT NOT NULL DEFAULT '',
        moderator TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_timeouts_channel_created ON moderation_timeouts(channel, created_at DESC)",
]


class ModerationLog:
    """SQLite-backed action log for executed timeouts."""

    def __init__(self, db_path: Path, connection: ConnectionManager | None = None) -> None:
        self.db_path = db_path
        self._connection = connection or ConnectionManager(db_path)
        self._initialized = False

    async def initialize(self) -> bool:
        """Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise.
        """
        if self._initialized:
            logger.debug("[MODERATION LOG] Already initialized, skipping")
            return True

        try:
            await self._connection.open()
            await self._connection.ensure_schema(_SCHEMA)
        except (aiosqlite.Error, OSError) as exc:
            logger.error("[MODERATION LOG] Initialization failed: %s", exc)
            return False

        self._initialized = True
        logger.info("[MODERATION LOG] Ready at %s", self.db_path)
        return True

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self._connection.close()
        self._initialized = False

    async def record_timeout(self, record: TimeoutRecord) -> None:
        await self._connection.execute_write(
            """
            INSERT INTO moderation_timeouts
                (channel, username, user_id, duration_seconds, reason, moderator, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.channel,
                record.username,
                record.user_id,
                record.duration_seconds,
                record.reason,
                record.moderator,
                record.created_at.isoformat(),
            ),
        )
        logger.debug("[MODERATION LOG] Logged timeout of %s in #%s", record.username, record.channel)

    async def recent_timeouts(self, channel: str, limit: int = 10) -> List[TimeoutRecord]:
        """Return the latest timeouts in ``channel``, newest first."""
        rows = await self._connection.fetch_all(
            """
            SELECT channel, username, user_id, duration_seconds, reason, moderator, created_at
            FROM moderation_timeouts
            WHERE channel = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (channel, limit),
        )

        return [
            TimeoutRecord(
                channel=row["channel"],
                username=row["username"],
                user_id=row["user_id"],
                duration_seconds=row["duration_seconds"],
                reason=row["reason"],
                moderator=row["moderator"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    async def cleanup_old_timeouts(self, days_to_keep: int = 30) -> int:
        """Delete entries older than ``days_to_keep`` days and return the count."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days_to_keep)).isoformat()
        deleted = await self._connection.execute_write(
            "DELETE FROM moderation_timeouts WHERE created_at < ?", (cutoff,)
        )
        if deleted:
            logger.info("[MODERATION LOG] Deleted %d timeout(s) older than %d days", deleted, days_to_keep)
        return deleted
