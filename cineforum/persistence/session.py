"""Session store for the versioned session document and its message log.

Provides the SessionStore class that wraps low-level database operations
with Pydantic schema serialization/deserialization. Session writes go
through compare_and_swap so concurrent callers never overwrite each other;
the message log is append-only.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import aiosqlite

from cineforum.schemas.messages import EventMessage
from cineforum.schemas.session import CineSession, SessionQuery, SessionSummary

logger = logging.getLogger(__name__)


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


class SessionStore:
    """Persistent session store backed by SQLite.

    All methods are async and operate on an aiosqlite connection
    initialized by database.init_db().
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._db.row_factory = aiosqlite.Row

    # ── Sessions ──────────────────────────────────────────────

    async def create_session(self, session: CineSession) -> CineSession:
        """Insert a brand-new session document at version 0."""
        session.version = 0
        await self._db.execute(
            """
            INSERT INTO sessions
                (session_id, version, phase, theme_title, episode_number,
                 created_at, closed_at, state_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.version,
                session.phase.value,
                session.theme_title,
                session.episode_number,
                session.created_at.isoformat(),
                session.closed_at.isoformat() if session.closed_at else None,
                session.model_dump_json(),
            ),
        )
        await self._db.commit()
        logger.info("Created session %s (%s)", session.session_id, session.theme_title)
        return session

    async def compare_and_swap(
        self, session: CineSession, expected_version: int,
    ) -> bool:
        """Write ``session`` only if the stored version is still ``expected_version``.

        On success the session's version is bumped and True is returned.
        On a lost race nothing is written and False is returned; the caller
        should reload and re-apply its operation.
        """
        candidate = session.model_copy(update={"version": expected_version + 1})
        cursor = await self._db.execute(
            """
            UPDATE sessions
               SET version = ?, phase = ?, theme_title = ?, closed_at = ?,
                   state_json = ?
             WHERE session_id = ? AND version = ?
            """,
            (
                candidate.version,
                candidate.phase.value,
                candidate.theme_title,
                candidate.closed_at.isoformat() if candidate.closed_at else None,
                candidate.model_dump_json(),
                candidate.session_id,
                expected_version,
            ),
        )
        await self._db.commit()
        if cursor.rowcount != 1:
            return False
        session.version = candidate.version
        return True

    async def get_session(self, session_id: str) -> CineSession | None:
        """Retrieve a session by ID or unique ID prefix.

        Tries an exact match first, then a prefix match of at least 4
        characters. Returns None when nothing matches or the prefix is
        ambiguous.
        """
        full_id = await self.resolve_session_id(session_id)
        if not full_id:
            return None
        async with self._db.execute(
            "SELECT state_json FROM sessions WHERE session_id = ?",
            (full_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return CineSession.model_validate_json(row["state_json"])

    async def active_session(self) -> CineSession | None:
        """The most recently created session that is not closed."""
        async with self._db.execute(
            "SELECT state_json FROM sessions WHERE closed_at IS NULL"
            " ORDER BY created_at DESC LIMIT 1",
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return CineSession.model_validate_json(row["state_json"])

    async def resolve_session_id(self, prefix: str) -> str | None:
        """Resolve a session ID prefix to a full session ID.

        Returns the full ID if exactly one match is found, None otherwise.
        Accepts full IDs as well (exact match always wins).
        """
        async with self._db.execute(
            "SELECT session_id FROM sessions WHERE session_id = ?",
            (prefix,),
        ) as cursor:
            row = await cursor.fetchone()
        if row:
            return row["session_id"]
        if len(prefix) >= 4:
            async with self._db.execute(
                "SELECT session_id FROM sessions WHERE session_id LIKE ?"
                " LIMIT 2",
                (prefix + "%",),
            ) as cursor:
                rows = await cursor.fetchall()
            if len(rows) == 1:
                return rows[0]["session_id"]
        return None

    async def count_sessions(self) -> int:
        async with self._db.execute("SELECT COUNT(*) FROM sessions") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def next_episode_number(self) -> int:
        """Reserve the next episode number.

        The counter only moves forward. On first use it starts after the
        highest episode already stored.
        """
        await self._db.execute(
            """
            INSERT INTO counters (name, value)
            VALUES ('episode', (SELECT COALESCE(MAX(episode_number), 0) FROM sessions) + 1)
            ON CONFLICT(name) DO UPDATE SET value = counters.value + 1
            """,
        )
        await self._db.commit()
        async with self._db.execute(
            "SELECT value FROM counters WHERE name = 'episode'",
        ) as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def list_sessions(self, query: SessionQuery) -> list[SessionSummary]:
        """List sessions matching the given query filters.

        Returns lightweight SessionSummary objects sorted by created_at
        descending (most recent first).
        """
        conditions: list[str] = []
        params: list[object] = []

        if query.phase:
            conditions.append("phase = ?")
            params.append(query.phase.value)

        if query.active_only:
            conditions.append("closed_at IS NULL")

        if query.theme_filter:
            conditions.append("theme_title LIKE ?")
            params.append(f"%{query.theme_filter}%")

        if query.since:
            conditions.append("created_at >= ?")
            params.append(query.since)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        sql = f"""
            SELECT s.state_json,
                   (SELECT COUNT(*) FROM messages m
                     WHERE m.session_id = s.session_id) AS message_count
              FROM sessions s
            {where}
            ORDER BY created_at DESC
            LIMIT ? OFFSET ?
        """  # noqa: S608
        params.extend([query.limit, query.offset])

        summaries: list[SessionSummary] = []
        async with self._db.execute(sql, params) as cursor:
            async for row in cursor:
                session = CineSession.model_validate_json(row["state_json"])
                summaries.append(_to_summary(session, row["message_count"]))
        return summaries

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and its message log.

        Supports both full IDs and unique prefixes (>= 4 chars).
        Returns True if a session was deleted.
        """
        full_id = await self.resolve_session_id(session_id)
        if not full_id:
            return False
        cursor = await self._db.execute(
            "DELETE FROM sessions WHERE session_id = ?",
            (full_id,),
        )
        await self._db.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted session %s", full_id)
        return deleted

    # ── Message log ───────────────────────────────────────────

    async def append_message(self, message: EventMessage) -> EventMessage:
        """Append a message, assigning its timestamp at append time.

        The stored timestamp is max(now, last timestamp in this log), computed
        inside the INSERT so concurrent appends stay ordered.

        Returns:
            The message with its final timestamp.
        """
        now = _to_epoch(datetime.now(UTC))
        cursor = await self._db.execute(
            """
            INSERT INTO messages
                (message_id, session_id, author_id, author_name, role, text,
                 timestamp, audio_ref)
            VALUES (?, ?, ?, ?, ?, ?,
                    MAX(?, COALESCE(
                        (SELECT MAX(timestamp) FROM messages WHERE session_id = ?),
                        0)),
                    ?)
            """,
            (
                message.message_id,
                message.session_id,
                message.author_id,
                message.author_name,
                message.role.value,
                message.text,
                now,
                message.session_id,
                message.audio_ref,
            ),
        )
        await self._db.commit()

        async with self._db.execute(
            "SELECT timestamp FROM messages WHERE id = ?",
            (cursor.lastrowid,),
        ) as ts_cursor:
            row = await ts_cursor.fetchone()
        return message.model_copy(
            update={"timestamp": datetime.fromtimestamp(row["timestamp"], UTC)},
        )

    async def list_messages(self, session_id: str) -> list[EventMessage]:
        """The full log in append order."""
        messages: list[EventMessage] = []
        async with self._db.execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY id",
            (session_id,),
        ) as cursor:
            async for row in cursor:
                messages.append(_row_to_message(row))
        return messages

    async def recent_messages(self, session_id: str, limit: int) -> list[EventMessage]:
        """The last ``limit`` messages, oldest first."""
        async with self._db.execute(
            "SELECT * FROM messages WHERE session_id = ? ORDER BY id DESC LIMIT ?",
            (session_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_message(row) for row in reversed(rows)]

    async def export_session(self, session_id: str) -> dict | None:
        """Export a session and its log as a JSON-serializable dictionary.

        Returns None if the session does not exist.
        """
        session = await self.get_session(session_id)
        if not session:
            return None
        messages = await self.list_messages(session.session_id)
        return {
            "session": session.model_dump(mode="json"),
            "messages": [m.model_dump(mode="json") for m in messages],
        }


def _row_to_message(row: aiosqlite.Row) -> EventMessage:
    return EventMessage(
        message_id=row["message_id"],
        session_id=row["session_id"],
        author_id=row["author_id"],
        author_name=row["author_name"],
        role=row["role"],
        text=row["text"],
        timestamp=datetime.fromtimestamp(row["timestamp"], UTC),
        audio_ref=row["audio_ref"],
    )


def _to_summary(session: CineSession, message_count: int) -> SessionSummary:
    winner = session.winner
    return SessionSummary(
        session_id=session.session_id,
        theme_title=session.theme_title,
        phase=session.phase,
        episode_number=session.episode_number,
        created_at=session.created_at,
        closed_at=session.closed_at,
        candidate_count=len(session.candidates),
        winner_title=winner.title if winner else "",
        final_slot=session.final_slot.label if session.final_slot else "",
        message_count=message_count,
    )
