"""SQLite database layer for session persistence.

Manages the SQLite database connection and schema creation. Uses
aiosqlite for async access with WAL mode for concurrent read performance.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# The session document lives in state_json; the other columns are copies
# kept for listing and filtering.
_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id     TEXT PRIMARY KEY,
    version        INTEGER NOT NULL DEFAULT 0,
    phase          TEXT NOT NULL,
    theme_title    TEXT NOT NULL DEFAULT '',
    episode_number INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL,
    closed_at      TEXT,
    state_json     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id  TEXT NOT NULL UNIQUE,
    session_id  TEXT NOT NULL REFERENCES sessions(session_id) ON DELETE CASCADE,
    author_id   TEXT,
    author_name TEXT NOT NULL DEFAULT '',
    role        TEXT NOT NULL,
    text        TEXT NOT NULL,
    timestamp   REAL NOT NULL,
    audio_ref   TEXT
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, id);
CREATE INDEX IF NOT EXISTS idx_sessions_created ON sessions(created_at);

-- Episode numbers are handed out once and never reused, even after a delete.
CREATE TABLE IF NOT EXISTS counters (
    name  TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode
    and foreign keys, then runs the schema DDL.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion
                 and the special ``:memory:`` name.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if db_path == ":memory:":
        target = db_path
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Session database initialized at %s", target)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
